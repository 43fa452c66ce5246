"""Hosting platform and local git access."""

from depbot.platform.base import IssueTracker, Platform
from depbot.platform.git import GitRepo
from depbot.platform.github import GitHubPlatform

__all__ = ["GitHubPlatform", "GitRepo", "IssueTracker", "Platform"]
