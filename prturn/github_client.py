"""GitHub API wrapper and auth helpers."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
from dotenv import load_dotenv

GITHUB_API_BASE_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_JSON_ACCEPT = "application/vnd.github+json"
SEARCH_PAGE_SIZE = 25
ERROR_BODY_EXCERPT_CHARS = 200
RATE_LIMIT_REMAINING_HEADER = "x-ratelimit-remaining"
RATE_LIMIT_RESET_HEADER = "x-ratelimit-reset"

logger = logging.getLogger(__name__)


class GitHubAuthError(RuntimeError):
    """Raised when required GitHub authentication is missing."""


class GitHubApiError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        endpoint: str,
        body_excerpt: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint
        self.body_excerpt = body_excerpt


class GitHubRateLimitError(GitHubApiError):
    """Raised when GitHub API rate limiting prevents request completion."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        endpoint: str,
        reset_at: datetime | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, endpoint=endpoint)
        self.reset_at = reset_at


class GitHubNetworkError(RuntimeError):
    """Raised when the GitHub API cannot be reached at all."""

    def __init__(self, message: str, *, endpoint: str) -> None:
        super().__init__(message)
        self.endpoint = endpoint


@dataclass(frozen=True, slots=True)
class GitHubUser:
    """Minimal user identity attached to search items."""

    login: str
    avatar_url: str = ""


@dataclass(frozen=True, slots=True)
class Label:
    """Issue/PR label."""

    name: str
    color: str


@dataclass(frozen=True, slots=True)
class SearchItem:
    """Normalized pull request hit from the issue search API."""

    id: int
    number: int
    title: str
    html_url: str
    created_at: datetime
    updated_at: datetime
    draft: bool
    author: GitHubUser
    repo: str
    pull_request_url: str | None
    labels: tuple[Label, ...] = field(default_factory=tuple)

    @property
    def is_pull_request(self) -> bool:
        """Return whether the hit is a pull request rather than a plain issue."""
        return self.pull_request_url is not None


@dataclass(frozen=True, slots=True)
class Review:
    """One review entry from the pull request reviews API."""

    reviewer_login: str
    state: str
    submitted_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class RequestedTeam:
    """Team with a pending review request."""

    name: str
    slug: str


@dataclass(frozen=True, slots=True)
class RequestedReviewers:
    """Users and teams whose review is currently pending on a pull request."""

    users: tuple[str, ...] = ()
    teams: tuple[RequestedTeam, ...] = ()

    @property
    def pending_count(self) -> int:
        """Return the number of pending user and team requests."""
        return len(self.users) + len(self.teams)


@dataclass(frozen=True, slots=True)
class PullDetail:
    """Subset of the pull request detail payload used for turn decisions."""

    number: int
    mergeable_state: str | None


def _ensure_mapping(value: object, *, context: str) -> dict[str, Any]:
    """Ensure a response fragment is a JSON object."""
    if not isinstance(value, dict):
        raise GitHubApiError(
            f"Expected JSON object for {context}.",
            status_code=500,
            endpoint=context,
        )
    return value


def _ensure_object_list(value: object, *, context: str) -> list[dict[str, Any]]:
    """Ensure a response fragment is a JSON array of objects."""
    if not isinstance(value, list):
        raise GitHubApiError(
            "Expected JSON array in GitHub response.",
            status_code=500,
            endpoint=context,
        )
    rows: list[dict[str, Any]] = []
    for item in value:
        if not isinstance(item, dict):
            raise GitHubApiError(
                "Expected all array items to be JSON objects in GitHub response.",
                status_code=500,
                endpoint=context,
            )
        rows.append(item)
    return rows


def _require_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str:
    """Read a required string field from payload."""
    value = payload.get(key)
    if not isinstance(value, str):
        raise GitHubApiError(
            f"Expected string field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_int(payload: dict[str, Any], *, key: str, endpoint: str) -> int:
    """Read a required integer field from payload."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise GitHubApiError(
            f"Expected integer field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_object(payload: dict[str, Any], *, key: str, endpoint: str) -> dict[str, Any]:
    """Read a required object field from payload."""
    value = payload.get(key)
    if not isinstance(value, dict):
        raise GitHubApiError(
            f"Expected object field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_timestamp(payload: dict[str, Any], *, key: str, endpoint: str) -> datetime:
    """Read a required ISO-8601 timestamp field from payload."""
    raw_value = _require_str(payload, key=key, endpoint=endpoint)
    parsed = _parse_timestamp(raw_value)
    if parsed is None:
        raise GitHubApiError(
            f"Expected ISO-8601 timestamp in field '{key}' of GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return parsed


def _parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None for missing or invalid values."""
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_rate_limit_reset(response: httpx.Response) -> datetime | None:
    """Parse the rate-limit reset header (epoch seconds) if present and valid."""
    reset_header = response.headers.get(RATE_LIMIT_RESET_HEADER)
    if reset_header is None:
        return None
    try:
        reset_epoch = int(reset_header)
    except ValueError:
        return None
    return datetime.fromtimestamp(reset_epoch, tz=UTC)


def is_rate_limited_response(response: httpx.Response) -> bool:
    """Return whether a failed response signals rate limiting."""
    if response.status_code == 429:
        return True
    return (
        response.status_code == 403
        and response.headers.get(RATE_LIMIT_REMAINING_HEADER) == "0"
    )


def format_rate_limit_message(reset_at: datetime | None) -> str:
    """Build the human-readable rate-limit message, with reset time when known."""
    message = "GitHub API rate limit exceeded."
    if reset_at is not None:
        message = f"{message} Resets at {reset_at.astimezone(UTC):%H:%M:%S} UTC."
    return message


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success GitHub API response."""
    if is_rate_limited_response(response):
        reset_at = _parse_rate_limit_reset(response)
        raise GitHubRateLimitError(
            format_rate_limit_message(reset_at),
            status_code=response.status_code,
            endpoint=endpoint,
            reset_at=reset_at,
        )
    body_excerpt = response.text[:ERROR_BODY_EXCERPT_CHARS]
    raise GitHubApiError(
        f"GitHub API {response.status_code}: {response.reason_phrase} - {body_excerpt}",
        status_code=response.status_code,
        endpoint=endpoint,
        body_excerpt=body_excerpt,
    )


async def _request(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    params: dict[str, str | int] | None = None,
) -> httpx.Response:
    """Perform one GET request; failures propagate without retries."""
    try:
        response = await client.get(endpoint, params=params)
    except httpx.TransportError as error:
        raise GitHubNetworkError(
            f"Network error while requesting '{endpoint}': {error}",
            endpoint=endpoint,
        ) from error
    if response.status_code >= 400:
        logger.debug("GitHub request %s failed with status %s", endpoint, response.status_code)
        _raise_http_error(response, endpoint)
    return response


def _decode_json(response: httpx.Response, endpoint: str) -> object:
    """Decode a response body as JSON, raising a typed error for non-JSON bodies."""
    try:
        return response.json()
    except ValueError as error:
        raise GitHubApiError(
            "Expected JSON body in GitHub response.",
            status_code=response.status_code,
            endpoint=endpoint,
            body_excerpt=response.text[:ERROR_BODY_EXCERPT_CHARS],
        ) from error


async def _request_json(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    params: dict[str, str | int] | None = None,
) -> dict[str, Any]:
    """Perform a JSON request against GitHub API."""
    response = await _request(client, endpoint, params=params)
    return _ensure_mapping(_decode_json(response, endpoint), context=endpoint)


async def _request_json_list(
    client: httpx.AsyncClient,
    endpoint: str,
) -> list[dict[str, Any]]:
    """Perform a JSON request that returns an array of objects."""
    response = await _request(client, endpoint)
    return _ensure_object_list(_decode_json(response, endpoint), context=endpoint)


def parse_repo_from_repository_url(repository_url: str) -> str:
    """Extract "owner/repo" from an API repository URL."""
    _prefix, separator, repo = repository_url.partition("repos/")
    if not separator:
        return repository_url
    return repo


def _parse_user(payload: dict[str, Any], *, endpoint: str) -> GitHubUser:
    """Normalize a user object from a GitHub response."""
    avatar_url = payload.get("avatar_url")
    return GitHubUser(
        login=_require_str(payload, key="login", endpoint=endpoint),
        avatar_url=avatar_url if isinstance(avatar_url, str) else "",
    )


def _parse_search_item(row: dict[str, Any], *, endpoint: str) -> SearchItem:
    """Normalize one search result row."""
    pull_request = row.get("pull_request")
    pull_request_url: str | None = None
    if isinstance(pull_request, dict):
        pull_request_url = _require_str(pull_request, key="url", endpoint=endpoint)

    labels: list[Label] = []
    for label in _ensure_object_list(row.get("labels") or [], context=endpoint):
        color = label.get("color")
        labels.append(
            Label(
                name=_require_str(label, key="name", endpoint=endpoint),
                color=color if isinstance(color, str) else "",
            )
        )

    return SearchItem(
        id=_require_int(row, key="id", endpoint=endpoint),
        number=_require_int(row, key="number", endpoint=endpoint),
        title=_require_str(row, key="title", endpoint=endpoint),
        html_url=_require_str(row, key="html_url", endpoint=endpoint),
        created_at=_require_timestamp(row, key="created_at", endpoint=endpoint),
        updated_at=_require_timestamp(row, key="updated_at", endpoint=endpoint),
        draft=row.get("draft") is True,
        author=_parse_user(_require_object(row, key="user", endpoint=endpoint), endpoint=endpoint),
        repo=parse_repo_from_repository_url(
            _require_str(row, key="repository_url", endpoint=endpoint)
        ),
        pull_request_url=pull_request_url,
        labels=tuple(labels),
    )


def build_search_query(qualifier: str, username: str) -> str:
    """Build an open-PR search query for one involvement qualifier."""
    return f"{qualifier}:{username} type:pr state:open sort:updated"


async def search_open_pull_requests(
    *,
    client: httpx.AsyncClient,
    query: str,
    per_page: int = SEARCH_PAGE_SIZE,
) -> tuple[SearchItem, ...]:
    """Run one issue search and keep only pull request hits."""
    endpoint = "/search/issues"
    payload = await _request_json(client, endpoint, params={"q": query, "per_page": per_page})
    rows = _ensure_object_list(payload.get("items"), context=endpoint)
    items = (_parse_search_item(row, endpoint=endpoint) for row in rows)
    return tuple(item for item in items if item.is_pull_request)


async def fetch_pull_request_reviews(
    *,
    client: httpx.AsyncClient,
    repo_full_name: str,
    pr_number: int,
) -> tuple[Review, ...]:
    """Fetch the review history of a pull request."""
    owner, repo = parse_repo_full_name(repo_full_name)
    endpoint = f"/repos/{owner}/{repo}/pulls/{pr_number}/reviews"
    rows = await _request_json_list(client, endpoint)

    reviews: list[Review] = []
    for row in rows:
        user_payload = row.get("user")
        if not isinstance(user_payload, dict):
            # Reviews by deleted accounts come back with a null user.
            continue
        reviews.append(
            Review(
                reviewer_login=_require_str(user_payload, key="login", endpoint=endpoint),
                state=_require_str(row, key="state", endpoint=endpoint),
                submitted_at=_parse_timestamp(row.get("submitted_at")),
            )
        )
    return tuple(reviews)


async def fetch_requested_reviewers(
    *,
    client: httpx.AsyncClient,
    repo_full_name: str,
    pr_number: int,
) -> RequestedReviewers:
    """Fetch users and teams with a pending review request."""
    owner, repo = parse_repo_full_name(repo_full_name)
    endpoint = f"/repos/{owner}/{repo}/pulls/{pr_number}/requested_reviewers"
    payload = await _request_json(client, endpoint)

    users = tuple(
        _require_str(user, key="login", endpoint=endpoint)
        for user in _ensure_object_list(payload.get("users") or [], context=endpoint)
    )
    teams = tuple(
        RequestedTeam(
            name=_require_str(team, key="name", endpoint=endpoint),
            slug=_require_str(team, key="slug", endpoint=endpoint),
        )
        for team in _ensure_object_list(payload.get("teams") or [], context=endpoint)
    )
    return RequestedReviewers(users=users, teams=teams)


async def fetch_pull_detail(*, client: httpx.AsyncClient, pull_url: str) -> PullDetail:
    """Fetch pull request detail for its mergeability classification."""
    payload = await _request_json(client, pull_url)
    mergeable_state = payload.get("mergeable_state")
    if mergeable_state is not None and not isinstance(mergeable_state, str):
        raise GitHubApiError(
            "Expected 'mergeable_state' to be a string or null in GitHub response.",
            status_code=500,
            endpoint=pull_url,
        )
    return PullDetail(
        number=_require_int(payload, key="number", endpoint=pull_url),
        mergeable_state=mergeable_state,
    )


def parse_repo_full_name(repo_full_name: str) -> tuple[str, str]:
    """Parse and validate repository input in owner/repo format."""
    owner, separator, repo = repo_full_name.strip().partition("/")
    if not separator or not owner or not repo or "/" in repo:
        raise GitHubApiError(
            f"Could not parse owner/repo from '{repo_full_name}'.",
            status_code=500,
            endpoint=repo_full_name,
        )
    return owner, repo


def get_github_token() -> str:
    """Read GitHub token from environment and fail fast if missing."""
    token, _source = get_github_token_with_source()
    return token


def get_github_token_with_source() -> tuple[str, str]:
    """Read GitHub token and return token value with environment source key."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    github_token = os.getenv("GITHUB_TOKEN")
    if github_token:
        return github_token, "GITHUB_TOKEN"

    gh_token = os.getenv("GH_TOKEN")
    if gh_token:
        return gh_token, "GH_TOKEN"

    message = "Missing GitHub token. Set GITHUB_TOKEN (preferred) or GH_TOKEN."
    raise GitHubAuthError(message)


def get_configured_username() -> str | None:
    """Read an optional viewer login override from the environment."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    return os.getenv("GITHUB_USERNAME") or None


async def fetch_authenticated_user_login(*, client: httpx.AsyncClient) -> str:
    """Fetch authenticated GitHub user login for token validation."""
    endpoint = "/user"
    payload = await _request_json(client, endpoint)
    return _require_str(payload, key="login", endpoint=endpoint)


def build_github_client(
    token: str,
    timeout_seconds: float = 20,
    *,
    trust_env: bool = True,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an authenticated GitHub HTTP client."""
    headers = {
        "Accept": GITHUB_JSON_ACCEPT,
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }
    return httpx.AsyncClient(
        base_url=GITHUB_API_BASE_URL,
        headers=headers,
        timeout=timeout_seconds,
        trust_env=trust_env,
        transport=transport,
    )
