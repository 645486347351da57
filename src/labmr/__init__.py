"""Create GitLab merge requests from the current repository state."""

__version__ = "0.3.0"
