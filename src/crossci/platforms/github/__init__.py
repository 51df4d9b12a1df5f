from .adapter import GitHubActionsAdapter

__all__ = ["GitHubActionsAdapter"]
