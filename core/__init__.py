"""
Core modules for the GeoTag usage ledger.

Contains:
- models: Value types shared by services, routes and the CLI
- errors: Custom exceptions
"""

from . import models
from . import errors

__all__ = ['models', 'errors']
