"""Shared pytest fixtures and test-run configuration."""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from prturn.github_client import build_github_client


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom pytest options for integration test execution."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (live GitHub API).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    run_integration = config.getoption("--run-integration")
    env_enabled = os.getenv("RUN_INTEGRATION_TESTS") == "1"
    if run_integration or env_enabled:
        return

    skip_marker = pytest.mark.skip(
        reason=(
            "Integration tests are disabled by default. "
            "Use --run-integration or set RUN_INTEGRATION_TESTS=1."
        )
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


Handler = Callable[[httpx.Request], httpx.Response]


def make_async_client(handler: Handler) -> httpx.AsyncClient:
    """Create an authenticated async client backed by mock transport."""
    return build_github_client("test-token", transport=httpx.MockTransport(handler))


def make_user(login: str) -> dict[str, object]:
    return {"login": login, "avatar_url": f"https://avatars.example/{login}", "id": 1}


def make_search_item(
    *,
    item_id: int,
    number: int,
    author: str,
    repo: str = "acme/rocket",
    updated_at: str = "2024-05-01T10:00:00Z",
    is_pull_request: bool = True,
    draft: bool = False,
) -> dict[str, object]:
    """Build a minimal valid search API item."""
    item: dict[str, object] = {
        "id": item_id,
        "number": number,
        "title": f"PR {number}",
        "html_url": f"https://github.com/{repo}/pull/{number}",
        "state": "open",
        "created_at": "2024-04-01T09:00:00Z",
        "updated_at": updated_at,
        "draft": draft,
        "user": make_user(author),
        "repository_url": f"https://api.github.com/repos/{repo}",
        "labels": [{"name": "backend", "color": "0e8a16"}],
    }
    if is_pull_request:
        item["pull_request"] = {
            "url": f"https://api.github.com/repos/{repo}/pulls/{number}",
            "html_url": f"https://github.com/{repo}/pull/{number}",
        }
    return item


def make_review(login: str, state: str, submitted_at: str | None) -> dict[str, object]:
    return {"id": 1, "user": make_user(login), "state": state, "submitted_at": submitted_at}


class FakeGitHub:
    """Routes mock transport requests to canned GitHub payloads."""

    def __init__(self) -> None:
        self.searches: dict[str, list[dict[str, object]]] = {}
        self.reviews: dict[str, list[dict[str, object]]] = {}
        self.requested: dict[str, dict[str, Any]] = {}
        self.mergeable: dict[str, str | None] = {}
        self.failures: dict[str, httpx.Response] = {}
        self.login = "me"
        self.requests: list[httpx.Request] = []

    def add_pr(
        self,
        repo_pr: str,
        *,
        reviews: list[dict[str, object]] | None = None,
        users: list[str] | None = None,
        teams: list[str] | None = None,
        mergeable_state: str | None = "clean",
    ) -> None:
        """Register review details for "owner/repo#number"."""
        self.reviews[repo_pr] = reviews or []
        self.requested[repo_pr] = {
            "users": [make_user(login) for login in users or []],
            "teams": [{"name": team, "slug": team.lower()} for team in teams or []],
        }
        self.mergeable[repo_pr] = mergeable_state

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for fragment, response in self.failures.items():
            if fragment in path or fragment in request.url.params.get("q", ""):
                return response

        if path == "/user":
            return httpx.Response(200, json={"login": self.login})
        if path == "/search/issues":
            qualifier = request.url.params["q"].split(":", 1)[0]
            return httpx.Response(200, json={"items": self.searches.get(qualifier, [])})

        parts = path.strip("/").split("/")
        # /repos/{owner}/{repo}/pulls/{number}[/reviews|/requested_reviewers]
        if parts[0] != "repos" or parts[3] != "pulls":
            return httpx.Response(404, json={"message": "Not Found"})
        key = f"{parts[1]}/{parts[2]}#{parts[4]}"
        if len(parts) == 5:
            return httpx.Response(
                200,
                json={"number": int(parts[4]), "mergeable_state": self.mergeable[key]},
            )
        if parts[5] == "reviews":
            return httpx.Response(200, json=self.reviews[key])
        if parts[5] == "requested_reviewers":
            return httpx.Response(200, json=self.requested[key])
        return httpx.Response(404, json={"message": "Not Found"})

    def client(self) -> httpx.AsyncClient:
        return make_async_client(self.handler)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()
