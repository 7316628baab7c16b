"""Spatial population layouts"""

from .grid import GridTopology

__all__ = ['GridTopology']
