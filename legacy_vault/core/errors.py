"""
Error kinds raised by the access-control core.
Every error is raised before any state is changed.
"""

from typing import Dict, Optional


class VaultError(Exception):
    """Base exception for all vault core errors."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(VaultError):
    """Referenced user, relationship or request is absent or not owned by the caller."""


class Forbidden(VaultError):
    """Caller has no relationship, no granted access, or no permitted categories."""


class Conflict(VaultError):
    """Duplicate relationship or duplicate pending request."""


class InvalidState(VaultError):
    """Request already processed, or owner not inactive."""


class ValidationError(VaultError):
    """Input rejected before reaching the store."""
