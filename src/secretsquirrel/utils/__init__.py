"""Utility modules for Secret Squirrel."""

from .logger import get_logger
from .exceptions import *

__all__ = ["get_logger"]
