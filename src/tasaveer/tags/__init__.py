"""Source tags and their camera/directory aliases."""

from .errors import DuplicateNameError, TagError, UnknownTagError
from .models import Tag
from .store import SETTINGS_FIELD, TagSnapshot, TagStore

__all__ = [
    "DuplicateNameError",
    "SETTINGS_FIELD",
    "Tag",
    "TagError",
    "TagSnapshot",
    "TagStore",
    "UnknownTagError",
]
