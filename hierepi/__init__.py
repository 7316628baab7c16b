"""Hierarchical stochastic epidemic simulation package"""

from . import core
from . import spatial

__all__ = ['core', 'spatial']
