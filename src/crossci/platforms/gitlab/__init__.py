from .adapter import GitLabCIAdapter

__all__ = ["GitLabCIAdapter"]
