"""
GitHub Provider — List repositories of an organization.

Uses the GitHub REST API. Pages are followed through the Link header.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional

import httpx

from ..errors import DiscoveryError
from .base import PER_PAGE, USER_AGENT, ProjectRecord, Provider

logger = logging.getLogger(__name__)


class GitHub(Provider):
    """GitHub organization as a directive source."""

    def __init__(
        self,
        url: str,
        org: str,
        private_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(url, private_token, client)
        self.org = org

    @property
    def label(self) -> str:
        return f"{self.url}/orgs/{self.org}"

    def _headers(self) -> Dict[str, str]:
        # GitHub rejects requests without a user agent
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self.private_token:
            headers["Authorization"] = f"Bearer {self.private_token}"
        return headers

    def list_projects(self) -> Iterator[ProjectRecord]:
        url: Optional[str] = f"{self.url}/orgs/{self.org}/repos"
        params: Optional[Dict[str, object]] = {"per_page": PER_PAGE}

        while url:
            resp = self._get(url, params=params)
            for p in self._json_list(resp):
                try:
                    record = ProjectRecord(
                        name=p.get("full_name") or p.get("name", ""),
                        description=p.get("description") or "",
                        web_url=p.get("html_url") or p["url"],
                        ssh_url=p["ssh_url"],
                        http_url=p["clone_url"],
                    )
                except KeyError as e:
                    raise DiscoveryError(f"Repository in {self.label} lacks field {e}") from e
                yield record

            # The next link already carries the query string
            url = resp.links.get("next", {}).get("url")
            params = None
