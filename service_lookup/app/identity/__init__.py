"""
Identity resolution for the Lookup Service.
"""

from .resolver import IdentityResolver

__all__ = ["IdentityResolver"]
