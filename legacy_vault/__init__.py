"""
Legacy Vault - access-control core for a digital legacy vault.
"""

from .core.config import VERSION

__version__ = VERSION
