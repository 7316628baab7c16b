"""Shared utilities"""

from .logging import log_call

__all__ = ["log_call"]
