"""
GitLab Provider — List projects of a group and all its subgroups.

Uses the GitLab v4 REST API. Pages are followed through the X-Next-Page
response header.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional
from urllib.parse import quote

import httpx

from ..errors import DiscoveryError
from .base import PER_PAGE, ProjectRecord, Provider

logger = logging.getLogger(__name__)


class GitLab(Provider):
    """GitLab group as a directive source."""

    def __init__(
        self,
        url: str,
        group: str,
        private_token: Optional[str] = None,
        recursive: bool = True,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(url, private_token, client)
        self.group = group
        self.recursive = recursive

    @property
    def label(self) -> str:
        return f"{self.url}/{self.group}"

    def _headers(self) -> Dict[str, str]:
        if self.private_token:
            return {"PRIVATE-TOKEN": self.private_token}
        return {}

    def _get_paged(self, url: str) -> Iterator[dict]:
        page = 1
        while True:
            resp = self._get(url, params={"per_page": PER_PAGE, "page": page})
            yield from self._json_list(resp)

            next_page = resp.headers.get("X-Next-Page", "").strip()
            if not next_page:
                logger.debug("[provider] No more pages")
                return
            try:
                page = int(next_page)
            except ValueError as e:
                raise DiscoveryError(f"Invalid X-Next-Page header: {next_page!r}") from e

    def _group_url(self, group_id: str, resource: str) -> str:
        return f"{self.url}/api/v4/groups/{quote(group_id, safe='')}/{resource}"

    def get_subgroups(self, group_id: str) -> List[str]:
        """Return group_id followed by all of its descendant group ids."""
        groups = [group_id]
        for sub in self._get_paged(self._group_url(group_id, "subgroups")):
            groups.extend(self.get_subgroups(str(sub["id"])))
        return groups

    def list_projects(self) -> Iterator[ProjectRecord]:
        if not self.private_token:
            logger.warning("[provider] PRIVATE_TOKEN not set")

        if self.recursive:
            try:
                groups = self.get_subgroups(self.group)
            except DiscoveryError as e:
                logger.warning(f"[provider] Unable to get subgroups: {e}")
                groups = [self.group]
        else:
            groups = [self.group]

        for group_id in groups:
            for p in self._get_paged(self._group_url(group_id, "projects")):
                try:
                    record = ProjectRecord(
                        name=p.get("path_with_namespace") or p.get("name", ""),
                        description=p.get("description") or "",
                        web_url=p["web_url"],
                        ssh_url=p["ssh_url_to_repo"],
                        http_url=p["http_url_to_repo"],
                    )
                except KeyError as e:
                    raise DiscoveryError(f"Project in group {group_id} lacks field {e}") from e
                yield record
