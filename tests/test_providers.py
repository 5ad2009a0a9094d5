"""
Tests for git_mirror.provider

HTTP is served by httpx.MockTransport, so pagination and error handling
are exercised through the real client code.
"""

import httpx
import pytest

from git_mirror.errors import DiscoveryError
from git_mirror.provider import GitHub, GitLab, ProjectRecord

GITLAB = "https://gitlab.test"
GITHUB = "https://api.github.test"


def _gitlab_project(path: str, description: str = "") -> dict:
    return {
        "name": path.rsplit("/", 1)[-1],
        "path_with_namespace": path,
        "description": description,
        "web_url": f"{GITLAB}/{path}",
        "ssh_url_to_repo": f"git@gitlab.test:{path}.git",
        "http_url_to_repo": f"{GITLAB}/{path}.git",
    }


def _github_repo(name: str, description=None) -> dict:
    return {
        "name": name,
        "full_name": f"org/{name}",
        "description": description,
        "html_url": f"https://github.test/org/{name}",
        "url": f"{GITHUB}/repos/org/{name}",
        "ssh_url": f"git@github.test:org/{name}.git",
        "clone_url": f"https://github.test/org/{name}.git",
    }


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestGitLab:
    """Tests for the GitLab provider."""

    def _handler(self, requests):
        groups = {
            "top": {"subgroups": [{"id": 11}], "projects": [[_gitlab_project("top/a", "origin: https://o/a.git")]]},
            "11": {"subgroups": [], "projects": [
                [_gitlab_project("top/sub/b")],
                [_gitlab_project("top/sub/c", "skip: true")],
            ]},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            _, group, resource = request.url.path.rsplit("/", 2)
            if resource == "subgroups":
                return httpx.Response(200, json=groups[group]["subgroups"])
            pages = groups[group]["projects"]
            page = int(request.url.params["page"])
            headers = {"X-Next-Page": str(page + 1) if page < len(pages) else ""}
            return httpx.Response(200, json=pages[page - 1], headers=headers)

        return handler

    def test_lists_projects_of_all_subgroups(self):
        requests = []
        provider = GitLab(GITLAB, "top", private_token="secret", client=_client(self._handler(requests)))

        records = list(provider.list_projects())

        assert [r.name for r in records] == ["top/a", "top/sub/b", "top/sub/c"]
        assert records[0] == ProjectRecord(
            name="top/a",
            description="origin: https://o/a.git",
            web_url=f"{GITLAB}/top/a",
            ssh_url="git@gitlab.test:top/a.git",
            http_url=f"{GITLAB}/top/a.git",
        )

    def test_follows_next_page(self):
        requests = []
        provider = GitLab(GITLAB, "top", client=_client(self._handler(requests)))

        list(provider.list_projects())

        pages = [
            r.url.params["page"] for r in requests
            if r.url.path == "/api/v4/groups/11/projects"
        ]
        assert pages == ["1", "2"]
        assert all(r.url.params["per_page"] == "100" for r in requests)

    def test_sends_private_token(self):
        requests = []
        provider = GitLab(GITLAB, "top", private_token="secret", client=_client(self._handler(requests)))

        list(provider.list_projects())

        assert all(r.headers["PRIVATE-TOKEN"] == "secret" for r in requests)

    def test_non_recursive(self):
        requests = []
        provider = GitLab(GITLAB, "top", recursive=False, client=_client(self._handler(requests)))

        records = list(provider.list_projects())

        assert [r.name for r in records] == ["top/a"]
        assert not any(r.url.path.endswith("/subgroups") for r in requests)

    def test_subgroup_failure_falls_back_to_group(self):
        def handler(request):
            if request.url.path.endswith("/subgroups"):
                return httpx.Response(403)
            return httpx.Response(200, json=[_gitlab_project("top/a")])

        provider = GitLab(GITLAB, "top", client=_client(handler))

        assert [r.name for r in provider.list_projects()] == ["top/a"]

    def test_unauthorized_raises(self):
        provider = GitLab(GITLAB, "top", recursive=False, client=_client(lambda r: httpx.Response(401)))

        with pytest.raises(DiscoveryError, match="unauthorized"):
            list(provider.list_projects())

    def test_server_error_raises(self):
        provider = GitLab(GITLAB, "top", recursive=False, client=_client(lambda r: httpx.Response(502)))

        with pytest.raises(DiscoveryError, match="502"):
            list(provider.list_projects())

    def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = GitLab(GITLAB, "top", recursive=False, client=_client(handler))

        with pytest.raises(DiscoveryError, match="Unable to connect"):
            list(provider.list_projects())

    def test_non_list_body_raises(self):
        provider = GitLab(
            GITLAB, "top", recursive=False,
            client=_client(lambda r: httpx.Response(200, json={"message": "nope"})),
        )

        with pytest.raises(DiscoveryError):
            list(provider.list_projects())

    def test_missing_url_field_raises(self):
        """A project entry without its clone URLs aborts discovery cleanly."""
        project = _gitlab_project("top/a")
        del project["ssh_url_to_repo"]
        provider = GitLab(
            GITLAB, "top", recursive=False,
            client=_client(lambda r: httpx.Response(200, json=[project])),
        )

        with pytest.raises(DiscoveryError, match="ssh_url_to_repo") as exc:
            list(provider.list_projects())

        assert exc.value.exit_code == 4

    def test_label(self):
        assert GitLab(GITLAB + "/", "top", client=_client(lambda r: httpx.Response(200))).label == f"{GITLAB}/top"


class TestGitHub:
    """Tests for the GitHub provider."""

    def test_follows_link_header(self):
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[_github_repo("b", "skip: true")])
            return httpx.Response(
                200,
                json=[_github_repo("a", "origin: https://o/a.git")],
                headers={"Link": f'<{GITHUB}/orgs/org/repos?per_page=100&page=2>; rel="next"'},
            )

        provider = GitHub(GITHUB, "org", private_token="tok", client=_client(handler))

        records = list(provider.list_projects())

        assert [r.name for r in records] == ["org/a", "org/b"]
        assert records[0].web_url == "https://github.test/org/a"
        assert records[0].ssh_url == "git@github.test:org/a.git"
        assert records[0].http_url == "https://github.test/org/a.git"
        assert len(requests) == 2
        assert requests[0].headers["Authorization"] == "Bearer tok"
        assert requests[0].headers["User-Agent"].startswith("git-mirror/")

    def test_null_description_is_empty(self):
        provider = GitHub(GITHUB, "org", client=_client(lambda r: httpx.Response(200, json=[_github_repo("a")])))

        (record,) = provider.list_projects()

        assert record.description == ""

    def test_no_token_no_authorization(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=[])

        list(GitHub(GITHUB, "org", client=_client(handler)).list_projects())

        assert "Authorization" not in requests[0].headers

    def test_unauthorized_raises(self):
        provider = GitHub(GITHUB, "org", client=_client(lambda r: httpx.Response(401)))

        with pytest.raises(DiscoveryError):
            list(provider.list_projects())

    def test_missing_url_field_raises(self):
        repo = _github_repo("a")
        del repo["clone_url"]
        provider = GitHub(GITHUB, "org", client=_client(lambda r: httpx.Response(200, json=[repo])))

        with pytest.raises(DiscoveryError, match="clone_url"):
            list(provider.list_projects())

    def test_label(self):
        provider = GitHub(GITHUB, "org", client=_client(lambda r: httpx.Response(200)))

        assert provider.label == f"{GITHUB}/orgs/org"
