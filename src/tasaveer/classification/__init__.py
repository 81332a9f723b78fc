"""Classification of scanned media into source groups."""

from .engine import UNKNOWN_CAMERA, FileClassifier
from .matching import DEFAULT_DIRECTORY_MATCHERS, DirectoryMatcher, match_directory
from .models import Classification, KeywordAssignment, SourceGroup

__all__ = [
    "Classification",
    "DEFAULT_DIRECTORY_MATCHERS",
    "DirectoryMatcher",
    "FileClassifier",
    "KeywordAssignment",
    "SourceGroup",
    "UNKNOWN_CAMERA",
    "match_directory",
]
