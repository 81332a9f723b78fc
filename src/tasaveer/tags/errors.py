"""Tag store errors."""

from tasaveer.errors import TasaveerError


class TagError(TasaveerError):
    """Base exception for tag store operations."""


class DuplicateNameError(TagError):
    """Raised when a tag name is already in use."""


class UnknownTagError(TagError):
    """Raised when an operation references a tag id that does not exist."""
