"""Dashboard orchestration: search, dedupe, enrich, decide, sort."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

import httpx

from prturn.github_client import (
    GitHubApiError,
    GitHubNetworkError,
    GitHubRateLimitError,
    PullDetail,
    SearchItem,
    build_github_client,
    build_search_query,
    fetch_authenticated_user_login,
    fetch_pull_detail,
    fetch_pull_request_reviews,
    fetch_requested_reviewers,
    search_open_pull_requests,
)
from prturn.schema import (
    DashboardAuthor,
    DashboardError,
    DashboardLabel,
    DashboardPR,
    DashboardResponse,
    DashboardSection,
    ErrorCode,
    TurnStatus,
)
from prturn.turn import (
    TurnDecision,
    build_review_summary,
    determine_my_pr_turn,
    determine_review_request_turn,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DashboardFetchError(RuntimeError):
    """Raised when a dashboard fetch fails; carries a machine-readable code."""

    def __init__(self, message: str, *, code: ErrorCode) -> None:
        super().__init__(message)
        self.code = code

    @property
    def message(self) -> str:
        """Return the human-readable failure message."""
        return str(self)

    def to_payload(self) -> DashboardError:
        """Return the failure as a serializable error payload."""
        return DashboardError(error=self.message, code=self.code)


@dataclass(frozen=True, slots=True)
class SearchResults:
    """Raw hits of the three involvement searches."""

    authored: tuple[SearchItem, ...]
    review_requested: tuple[SearchItem, ...]
    reviewed_by: tuple[SearchItem, ...]


@dataclass(frozen=True, slots=True)
class ReviewCandidate:
    """Reviewer-facing pull request with its discovery provenance."""

    item: SearchItem
    is_review_requested: bool


async def gather_fail_fast(*awaitables: Awaitable[T]) -> list[T]:
    """Await all siblings; on the first failure cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def search_involved_pull_requests(
    *,
    client: httpx.AsyncClient,
    username: str,
) -> SearchResults:
    """Run the authored / review-requested / reviewed-by searches concurrently."""
    authored, review_requested, reviewed_by = await gather_fail_fast(
        search_open_pull_requests(client=client, query=build_search_query("author", username)),
        search_open_pull_requests(
            client=client, query=build_search_query("review-requested", username)
        ),
        search_open_pull_requests(client=client, query=build_search_query("reviewed-by", username)),
    )
    logger.info(
        "Search for %s: %d authored, %d review-requested, %d reviewed-by",
        username,
        len(authored),
        len(review_requested),
        len(reviewed_by),
    )
    return SearchResults(
        authored=authored,
        review_requested=review_requested,
        reviewed_by=reviewed_by,
    )


def dedupe_review_items(
    review_requested: Iterable[SearchItem],
    reviewed_by: Iterable[SearchItem],
    *,
    viewer_login: str,
) -> list[ReviewCandidate]:
    """Merge reviewer-facing hits by id and drop pull requests the viewer authored."""
    review_requested = tuple(review_requested)
    requested_ids = {item.id for item in review_requested}

    merged: dict[int, SearchItem] = {}
    for item in (*review_requested, *reviewed_by):
        merged.setdefault(item.id, item)

    viewer = viewer_login.lower()
    return [
        ReviewCandidate(item=item, is_review_requested=item.id in requested_ids)
        for item in merged.values()
        if item.author.login.lower() != viewer
    ]


def _to_dashboard_pr(
    item: SearchItem,
    *,
    decision: TurnDecision,
    review_summary: str,
) -> DashboardPR:
    """Combine a search item with its decision into the output model."""
    return DashboardPR(
        id=item.id,
        number=item.number,
        title=item.title,
        url=item.html_url,
        repo=item.repo,
        author=DashboardAuthor(login=item.author.login, avatar_url=item.author.avatar_url),
        turn_status=decision.turn_status,
        turn_debug_info=decision.debug_info,
        is_draft=item.draft,
        created_at=item.created_at,
        updated_at=item.updated_at,
        labels=[DashboardLabel(name=label.name, color=label.color) for label in item.labels],
        review_summary=review_summary,
    )


async def enrich_pull_request(
    *,
    client: httpx.AsyncClient,
    item: SearchItem,
    section: DashboardSection,
    viewer_login: str,
    is_review_requested: bool = False,
) -> DashboardPR:
    """Fetch review details for one pull request and decide its turn."""
    reviews_fetch = fetch_pull_request_reviews(
        client=client, repo_full_name=item.repo, pr_number=item.number
    )
    requested_fetch = fetch_requested_reviewers(
        client=client, repo_full_name=item.repo, pr_number=item.number
    )
    pull_detail: PullDetail | None = None
    if section == DashboardSection.MY_PRS and item.pull_request_url is not None:
        reviews, requested, pull_detail = await gather_fail_fast(
            reviews_fetch,
            requested_fetch,
            fetch_pull_detail(client=client, pull_url=item.pull_request_url),
        )
    else:
        reviews, requested = await gather_fail_fast(reviews_fetch, requested_fetch)

    if section == DashboardSection.MY_PRS:
        mergeable_state = pull_detail.mergeable_state if pull_detail is not None else None
        decision = determine_my_pr_turn(reviews, requested, item.author.login, mergeable_state)
    else:
        decision = determine_review_request_turn(
            requested,
            viewer_login,
            is_review_requested=is_review_requested,
        )
    logger.debug(
        "%s#%d: %s (%s)",
        item.repo,
        item.number,
        decision.turn_status,
        decision.deciding_check,
    )

    return _to_dashboard_pr(
        item,
        decision=decision,
        review_summary=build_review_summary(reviews, requested),
    )


def sort_dashboard_prs(prs: Iterable[DashboardPR]) -> list[DashboardPR]:
    """Order my-turn first, then most recently updated first; stable otherwise."""
    return sorted(
        prs,
        key=lambda pr: (pr.turn_status != TurnStatus.MY_TURN, -pr.updated_at.timestamp()),
    )


def _translate_error(error: Exception, *, stage: str) -> DashboardFetchError:
    """Map client failures onto dashboard error codes."""
    if isinstance(error, GitHubRateLimitError):
        return DashboardFetchError(str(error), code=ErrorCode.RATE_LIMITED)
    if isinstance(error, GitHubNetworkError):
        return DashboardFetchError(
            f"Could not reach GitHub: {error}",
            code=ErrorCode.NETWORK_ERROR,
        )
    return DashboardFetchError(f"GitHub {stage} failed: {error}", code=ErrorCode.GITHUB_API_ERROR)


async def _enrich_section(
    client: httpx.AsyncClient,
    items: Sequence[SearchItem],
    *,
    section: DashboardSection,
    viewer_login: str,
    review_requested_ids: frozenset[int] = frozenset(),
) -> list[DashboardPR]:
    """Enrich every pull request of one dashboard section concurrently."""
    return await gather_fail_fast(
        *(
            enrich_pull_request(
                client=client,
                item=item,
                section=section,
                viewer_login=viewer_login,
                is_review_requested=item.id in review_requested_ids,
            )
            for item in items
        )
    )


async def resolve_viewer_login(*, client: httpx.AsyncClient) -> str:
    """Resolve the viewer login from the token, mapping failures to error codes."""
    try:
        return await fetch_authenticated_user_login(client=client)
    except GitHubRateLimitError as error:
        raise DashboardFetchError(str(error), code=ErrorCode.RATE_LIMITED) from error
    except GitHubApiError as error:
        code = ErrorCode.UNAUTHORIZED if error.status_code == 401 else ErrorCode.GITHUB_API_ERROR
        raise DashboardFetchError(
            f"Invalid Personal Access Token or GitHub API error. Check your token. ({error})",
            code=code,
        ) from error
    except GitHubNetworkError as error:
        raise _translate_error(error, stage="user lookup") from error


async def build_dashboard(
    *,
    client: httpx.AsyncClient,
    username: str | None = None,
) -> DashboardResponse:
    """Fetch and assemble both dashboard categories with one client."""
    github_username = username or await resolve_viewer_login(client=client)

    try:
        results = await search_involved_pull_requests(client=client, username=github_username)
    except (GitHubApiError, GitHubNetworkError) as error:
        logger.warning("GitHub search failed for %s: %s", github_username, error)
        raise _translate_error(error, stage="search") from error

    candidates = dedupe_review_items(
        results.review_requested,
        results.reviewed_by,
        viewer_login=github_username,
    )
    logger.info(
        "Enriching %d authored and %d review pull requests",
        len(results.authored),
        len(candidates),
    )

    try:
        my_prs, review_requests = await gather_fail_fast(
            _enrich_section(
                client,
                results.authored,
                section=DashboardSection.MY_PRS,
                viewer_login=github_username,
            ),
            _enrich_section(
                client,
                [candidate.item for candidate in candidates],
                section=DashboardSection.REVIEW_REQUESTS,
                viewer_login=github_username,
                review_requested_ids=frozenset(
                    candidate.item.id for candidate in candidates if candidate.is_review_requested
                ),
            ),
        )
    except (GitHubApiError, GitHubNetworkError) as error:
        logger.warning("GitHub PR enrichment failed for %s: %s", github_username, error)
        raise _translate_error(error, stage="PR enrichment") from error

    return DashboardResponse(
        my_prs=sort_dashboard_prs(my_prs),
        review_requests=sort_dashboard_prs(review_requests),
        github_username=github_username,
        fetched_at=datetime.now(tz=UTC),
    )


async def fetch_dashboard(
    token: str,
    username: str | None = None,
    *,
    timeout_seconds: float = 20,
    trust_env: bool = True,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DashboardResponse:
    """Fetch the dashboard for ``username`` (resolved from the token when omitted)."""
    async with build_github_client(
        token,
        timeout_seconds=timeout_seconds,
        trust_env=trust_env,
        transport=transport,
    ) as client:
        return await build_dashboard(client=client, username=username)
