from uilint_duplicates.query.api import ProjectIndex, SearchResult, open_project

__all__ = ["ProjectIndex", "SearchResult", "open_project"]
