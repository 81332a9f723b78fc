"""Path remapping between source, staging and archive trees."""

from .paths import ROOT_KEY, parent_folder_name, relative_to, staged_relative

__all__ = ["ROOT_KEY", "parent_folder_name", "relative_to", "staged_relative"]
