from .adapter import JenkinsAdapter

__all__ = ["JenkinsAdapter"]
