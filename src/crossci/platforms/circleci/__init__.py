from .adapter import CircleCIAdapter

__all__ = ["CircleCIAdapter"]
