"""
Providers — Sources of mirror directives (GitLab groups, GitHub orgs).
"""

from .base import ProjectRecord, Provider
from .github import GitHub
from .gitlab import GitLab

PROVIDERS = {
    "GitLab": GitLab,
    "GitHub": GitHub,
}

DEFAULT_URLS = {
    "GitLab": "https://gitlab.com",
    "GitHub": "https://api.github.com",
}

__all__ = [
    "Provider",
    "ProjectRecord",
    "GitLab",
    "GitHub",
    "PROVIDERS",
    "DEFAULT_URLS",
]
