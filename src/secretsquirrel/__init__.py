"""Secret Squirrel - regex secret scanner for source trees."""

from .version import VERSION

__version__ = VERSION
