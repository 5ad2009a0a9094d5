"""
Provider Base Class — Interface for directive sources.

A provider lists the projects of a group or organization together with
their free-text descriptions. Turning descriptions into directives is the
job of the directive store, not of the provider.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

import httpx

from .. import __version__
from ..errors import DiscoveryError

logger = logging.getLogger(__name__)

USER_AGENT = f"git-mirror/{__version__}"

# Items per page requested from paginated endpoints
PER_PAGE = 100


@dataclass(frozen=True)
class ProjectRecord:
    """A project as returned by the provider API."""

    name: str
    description: str
    web_url: str
    ssh_url: str
    http_url: str


class Provider(ABC):
    """
    Abstract base class for all providers.

    Subclasses implement list_projects(); pagination is internal and the
    records are yielded lazily. Any network or API failure raises
    DiscoveryError, which aborts the run before scheduling.
    """

    def __init__(
        self,
        url: str,
        private_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self.url = url.rstrip("/")
        self.private_token = private_token
        self._client = client or httpx.Client(timeout=timeout)

    @property
    @abstractmethod
    def label(self) -> str:
        """Name used to label metrics and reports (e.g. https://gitlab.com/group)."""
        pass

    @abstractmethod
    def list_projects(self) -> Iterator[ProjectRecord]:
        """Yield every project that may carry a mirror directive."""
        pass

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        """Request headers, including authentication."""
        pass

    def _get(self, url: str, params: Optional[Dict[str, object]] = None) -> httpx.Response:
        """GET a URL, mapping transport and status errors to DiscoveryError."""
        logger.debug(f"[provider] GET {url} {params or ''}")
        try:
            resp = self._client.get(url, headers=self._headers(), params=params)
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Unable to connect to: {url} ({e})") from e

        logger.debug(f"[provider] HTTP status received: {resp.status_code}")

        if resp.status_code == 401:
            raise DiscoveryError(
                f"API call received unauthorized ({resp.status_code}) for: {url}. "
                "Please make sure the `PRIVATE_TOKEN` environment variable is set."
            )
        if resp.status_code != 200:
            raise DiscoveryError(
                f"API call received invalid status ({resp.status_code}) for: {url}"
            )
        return resp

    @staticmethod
    def _json_list(resp: httpx.Response) -> list:
        try:
            data = resp.json()
        except ValueError as e:
            raise DiscoveryError(f"Unable to parse response as JSON ({e})") from e
        if not isinstance(data, list):
            raise DiscoveryError(f"Expected a JSON list from {resp.request.url}")
        return data

    def close(self) -> None:
        self._client.close()
