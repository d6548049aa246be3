"""Tests for the CLI commands."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from prturn import cli
from prturn.dashboard import DashboardFetchError
from prturn.github_client import GitHubApiError, GitHubAuthError
from prturn.schema import DashboardResponse, ErrorCode
from typer.testing import CliRunner

runner = CliRunner()


def _empty_dashboard(username: str) -> DashboardResponse:
    return DashboardResponse(
        github_username=username,
        fetched_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
    )


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda verbose=False: None)
    monkeypatch.setattr(cli, "get_configured_username", lambda: None)


@pytest.mark.unit
def test_dashboard_prints_text_report(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, str | None]] = []

    async def fake_fetch_dashboard(token, username=None, **_kwargs):
        calls.append((token, username))
        return _empty_dashboard(username or "octocat")

    monkeypatch.setattr(cli, "get_github_token_with_source", lambda: ("token", "GITHUB_TOKEN"))
    monkeypatch.setattr(cli, "fetch_dashboard", fake_fetch_dashboard)

    result = runner.invoke(cli.app, ["dashboard", "--username", "alice"])

    assert result.exit_code == 0
    assert calls == [("token", "alice")]
    assert "# Pull requests for alice" in result.output
    assert "## My PRs (0 my turn / 0 open)" in result.output


@pytest.mark.unit
def test_dashboard_json_output(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_fetch_dashboard(token, username=None, **_kwargs):
        return _empty_dashboard("octocat")

    monkeypatch.setattr(cli, "get_github_token_with_source", lambda: ("token", "GH_TOKEN"))
    monkeypatch.setattr(cli, "fetch_dashboard", fake_fetch_dashboard)

    result = runner.invoke(cli.app, ["dashboard", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["github_username"] == "octocat"
    assert payload["my_prs"] == []


@pytest.mark.unit
def test_dashboard_json_error_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_fetch_dashboard(token, username=None, **_kwargs):
        raise DashboardFetchError(
            "GitHub API rate limit exceeded. Resets at 12:30:00 UTC.",
            code=ErrorCode.RATE_LIMITED,
        )

    monkeypatch.setattr(cli, "get_github_token_with_source", lambda: ("token", "GITHUB_TOKEN"))
    monkeypatch.setattr(cli, "fetch_dashboard", fake_fetch_dashboard)

    result = runner.invoke(cli.app, ["dashboard", "--json"])

    assert result.exit_code == 1
    assert json.loads(result.stdout) == {
        "error": "GitHub API rate limit exceeded. Resets at 12:30:00 UTC.",
        "code": "RATE_LIMITED",
    }


@pytest.mark.unit
def test_dashboard_fails_when_token_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise_missing_token() -> tuple[str, str]:
        raise GitHubAuthError("Missing token.")

    monkeypatch.setattr(cli, "get_github_token_with_source", _raise_missing_token)
    result = runner.invoke(cli.app, ["dashboard", "--json"])

    assert result.exit_code == 1
    assert json.loads(result.stdout)["code"] == "UNAUTHORIZED"


@pytest.mark.unit
def test_auth_check_fails_when_token_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise_missing_token() -> tuple[str, str]:
        raise GitHubAuthError("Missing token.")

    monkeypatch.setattr(cli, "get_github_token_with_source", _raise_missing_token)
    result = runner.invoke(cli.app, ["auth-check"])

    assert result.exit_code == 1
    assert "GitHub auth check failed" in result.output


@pytest.mark.unit
def test_auth_check_reports_login(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_login(*, client) -> str:
        return "octocat"

    monkeypatch.setattr(cli, "get_github_token_with_source", lambda: ("token", "GITHUB_TOKEN"))
    monkeypatch.setattr(cli, "fetch_authenticated_user_login", fake_login)

    result = runner.invoke(cli.app, ["auth-check", "--no-trust-env"])

    assert result.exit_code == 0
    assert "Token detected in GITHUB_TOKEN." in result.output
    assert "Authenticated as GitHub user 'octocat'." in result.output
    assert "GitHub token setup is valid." in result.output


@pytest.mark.unit
def test_auth_check_reports_api_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_login(*, client) -> str:
        raise GitHubApiError("GitHub API 401: Unauthorized - ", status_code=401, endpoint="/user")

    monkeypatch.setattr(cli, "get_github_token_with_source", lambda: ("token", "GITHUB_TOKEN"))
    monkeypatch.setattr(cli, "fetch_authenticated_user_login", fake_login)

    result = runner.invoke(cli.app, ["auth-check"])

    assert result.exit_code == 1
    assert "status=401 endpoint=/user" in result.output
