from uilint_duplicates.detection.duplicate_finder import (
    DuplicateFinder,
    DuplicateGroup,
    DuplicateMember,
)

__all__ = ["DuplicateFinder", "DuplicateGroup", "DuplicateMember"]
