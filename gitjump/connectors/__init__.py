"""Connector interfaces and implementations."""

from .github_gh import GithubApiError, GithubAuthError, GithubGhSourceAdapter, GithubRateLimitError

__all__ = ["GithubGhSourceAdapter", "GithubApiError", "GithubAuthError", "GithubRateLimitError"]
