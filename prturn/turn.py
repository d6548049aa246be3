"""Turn decision engine and review summaries.

Everything here is pure: callers hand in already-fetched reviews, requested
reviewers and merge state, and get back a verdict plus the ordered list of
checks that produced it.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from prturn.github_client import RequestedReviewers, Review
from prturn.schema import (
    CheckResult,
    DashboardSection,
    ReviewState,
    TurnCheck,
    TurnDebugInfo,
    TurnStatus,
)

SUBMITTED_STATES = frozenset(
    {
        ReviewState.APPROVED,
        ReviewState.CHANGES_REQUESTED,
        ReviewState.COMMENTED,
        ReviewState.DISMISSED,
    }
)
STICKY_STATES = frozenset({ReviewState.APPROVED, ReviewState.CHANGES_REQUESTED})

CHECK_NO_REVIEWS = "No reviews submitted yet"
CHECK_ALL_RE_REQUESTED = "All submitters re-requested"
CHECK_CHANGES_REQUESTED = "Changes requested"
CHECK_MY_REVIEW_REQUESTED = "My review requested"
CHECK_TEAM_REVIEW_REQUESTED = "My review requested (via team)"

MERGEABLE_STATE_OUTCOMES: dict[str, tuple[TurnStatus, str]] = {
    "clean": (TurnStatus.MY_TURN, "Ready to merge, all branch protection met"),
    "blocked": (TurnStatus.THEIR_TURN, "Insufficient approvals / CODEOWNERS not satisfied"),
    "dirty": (TurnStatus.MY_TURN, "Merge conflicts, author needs to resolve"),
    "unstable": (TurnStatus.MY_TURN, "Failing checks, author should investigate"),
}
UNKNOWN_MERGEABLE_OUTCOME = (TurnStatus.MY_TURN, "Unknown/null, conservative fallback")

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class TurnDecision:
    """Verdict for one pull request with its audit trail."""

    turn_status: TurnStatus
    debug_info: TurnDebugInfo

    @property
    def deciding_check(self) -> str:
        """Return the label of the check that decided the verdict."""
        return self.debug_info.deciding_check


@dataclass(slots=True)
class TraceRecorder:
    """Accumulates evaluated checks in order until one decides the verdict."""

    section: DashboardSection
    checks: list[TurnCheck] = field(default_factory=list)

    def skip(self, label: str, value: str) -> None:
        """Record a non-decisive check."""
        self.checks.append(TurnCheck(label=label, value=value, result=CheckResult.SKIP))

    def decide(self, label: str, value: str, verdict: TurnStatus) -> TurnDecision:
        """Record the decisive check and return the finished decision."""
        self.checks.append(
            TurnCheck(label=label, value=value, result=CheckResult(verdict.value), decisive=True)
        )
        return TurnDecision(
            turn_status=verdict,
            debug_info=TurnDebugInfo(
                section=self.section,
                checks=list(self.checks),
                deciding_check=label,
            ),
        )


def is_submitted(review: Review) -> bool:
    """Return whether a review counts as submitted feedback."""
    return review.state in SUBMITTED_STATES


def _chronological(reviews: Iterable[Review]) -> list[Review]:
    """Order reviews by submission time."""
    # Stable, so reviews sharing a timestamp keep API order.
    return sorted(reviews, key=lambda review: review.submitted_at or _EPOCH)


def latest_effective_states(
    reviews: Iterable[Review],
    *,
    exclude_login: str | None = None,
) -> dict[str, str]:
    """Fold submitted reviews into each reviewer's effective state.

    Keys are lowercased logins in first-review order. A COMMENTED review
    never replaces an earlier APPROVED or CHANGES_REQUESTED; any other
    submitted state replaces whatever came before it.
    """
    excluded = exclude_login.lower() if exclude_login else None
    effective: dict[str, str] = {}
    for review in _chronological(reviews):
        if not is_submitted(review):
            continue
        login = review.reviewer_login.lower()
        if login == excluded:
            continue
        previous = effective.get(login)
        if previous in STICKY_STATES and review.state == ReviewState.COMMENTED:
            continue
        effective[login] = review.state
    return effective


def submitted_reviewers(reviews: Iterable[Review], *, author_login: str) -> list[str]:
    """Lowercased logins (author excluded) with at least one submitted review."""
    author = author_login.lower()
    logins: dict[str, None] = {}
    for review in reviews:
        login = review.reviewer_login.lower()
        if is_submitted(review) and login != author:
            logins.setdefault(login)
    return list(logins)


def determine_my_pr_turn(
    reviews: Sequence[Review],
    requested: RequestedReviewers,
    author_login: str,
    mergeable_state: str | None,
) -> TurnDecision:
    """Decide whose turn it is on a pull request the viewer authored."""
    trace = TraceRecorder(section=DashboardSection.MY_PRS)

    reviewers = submitted_reviewers(reviews, author_login=author_login)
    if not reviewers:
        return trace.decide(
            CHECK_NO_REVIEWS,
            "No reviewers have submitted feedback",
            TurnStatus.THEIR_TURN,
        )
    trace.skip(
        CHECK_NO_REVIEWS,
        f"{len(reviewers)} reviewer(s) submitted: {', '.join(reviewers)}",
    )

    requested_logins = list(dict.fromkeys(login.lower() for login in requested.users))
    if all(login in requested_logins for login in reviewers):
        return trace.decide(
            CHECK_ALL_RE_REQUESTED,
            f"All reviewers re-requested: {', '.join(reviewers)}",
            TurnStatus.THEIR_TURN,
        )
    if requested_logins:
        trace.skip(
            CHECK_ALL_RE_REQUESTED,
            f"Re-requested: {', '.join(requested_logins)} (not all submitters)",
        )
    else:
        trace.skip(CHECK_ALL_RE_REQUESTED, "No re-requests pending")

    effective = latest_effective_states(reviews, exclude_login=author_login)
    states_text = ", ".join(f"{login}: {state}" for login, state in effective.items())
    if ReviewState.CHANGES_REQUESTED in effective.values():
        return trace.decide(
            CHECK_CHANGES_REQUESTED,
            f"Changes requested found ({states_text})",
            TurnStatus.MY_TURN,
        )
    trace.skip(CHECK_CHANGES_REQUESTED, f"No changes requested ({states_text or 'none'})")

    # TODO: revisit the unknown/null fallback if GitHub starts reporting a
    # transient null mergeable_state while checks are still queued.
    verdict, description = MERGEABLE_STATE_OUTCOMES.get(
        mergeable_state or "", UNKNOWN_MERGEABLE_OUTCOME
    )
    return trace.decide(
        f"Mergeable state: {mergeable_state or 'null'}",
        description,
        verdict,
    )


def determine_review_request_turn(
    requested: RequestedReviewers,
    viewer_login: str,
    *,
    is_review_requested: bool,
) -> TurnDecision:
    """Decide whose turn it is on a pull request the viewer reviews.

    ``is_review_requested`` records whether the pull request came back from
    the ``review-requested:`` search. Only then does a pending team request
    count as the viewer's own request.
    """
    trace = TraceRecorder(section=DashboardSection.REVIEW_REQUESTS)
    viewer = viewer_login.lower()

    requested_names = ", ".join(requested.users)
    if any(login.lower() == viewer for login in requested.users):
        return trace.decide(
            CHECK_MY_REVIEW_REQUESTED,
            f"Your review is currently requested (pending reviewers: {requested_names})",
            TurnStatus.MY_TURN,
        )
    if requested_names:
        trace.skip(
            CHECK_MY_REVIEW_REQUESTED,
            f"Your review is not in the requested list (pending: {requested_names})",
        )
    else:
        trace.skip(CHECK_MY_REVIEW_REQUESTED, "No pending individual review requests")

    if is_review_requested and requested.teams:
        team_names = ", ".join(team.name for team in requested.teams)
        return trace.decide(
            CHECK_TEAM_REVIEW_REQUESTED,
            f"Requested via team (teams: {team_names})",
            TurnStatus.MY_TURN,
        )
    if not is_review_requested:
        value = "PR found via reviewed-by search, not review-requested"
    else:
        value = "No team review requests"
    return trace.decide(CHECK_TEAM_REVIEW_REQUESTED, value, TurnStatus.THEIR_TURN)


def build_review_summary(reviews: Sequence[Review], requested: RequestedReviewers) -> str:
    """Summarize effective review states and pending requests in one line."""
    counts = Counter(latest_effective_states(reviews).values())
    parts: list[str] = []
    if counts[ReviewState.APPROVED]:
        parts.append(f"{counts[ReviewState.APPROVED]} approved")
    if counts[ReviewState.CHANGES_REQUESTED]:
        parts.append(f"{counts[ReviewState.CHANGES_REQUESTED]} changes requested")
    if counts[ReviewState.COMMENTED]:
        parts.append(f"{counts[ReviewState.COMMENTED]} commented")

    if requested.pending_count:
        team_count = len(requested.teams)
        team_suffix = ""
        if team_count:
            team_suffix = f" ({team_count} team{'s' if team_count > 1 else ''})"
        parts.append(f"{requested.pending_count} pending{team_suffix}")

    return ", ".join(parts) if parts else "No reviews"
