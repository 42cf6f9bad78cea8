"""Local mirror and instant search over a user's GitHub repos, issues and pull requests."""

__version__ = "0.1.0"
