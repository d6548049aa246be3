"""Tests for terminal rendering of dashboards."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from prturn.github_client import RequestedReviewers, Review
from prturn.output import render_dashboard_text, render_pr_line, render_turn_trace
from prturn.schema import DashboardAuthor, DashboardPR, DashboardResponse
from prturn.turn import determine_my_pr_turn


def make_pr(*, is_draft: bool = False) -> DashboardPR:
    decision = determine_my_pr_turn(
        [Review("alice", "APPROVED", datetime(2024, 5, 1, tzinfo=UTC))],
        RequestedReviewers(),
        "me",
        "clean",
    )
    return DashboardPR(
        id=1,
        number=7,
        title="Add retries",
        url="https://github.com/acme/rocket/pull/7",
        repo="acme/rocket",
        author=DashboardAuthor(login="me"),
        turn_status=decision.turn_status,
        turn_debug_info=decision.debug_info,
        is_draft=is_draft,
        created_at=datetime(2024, 4, 1, tzinfo=UTC),
        updated_at=datetime(2024, 5, 1, tzinfo=UTC),
        review_summary="1 approved",
    )


@pytest.mark.unit
def test_render_pr_line_includes_badge_and_summary() -> None:
    line = render_pr_line(make_pr(is_draft=True))
    assert line == "[MY TURN]    acme/rocket#7 (draft) Add retries by me | 1 approved"


@pytest.mark.unit
def test_render_turn_trace_marks_deciding_check() -> None:
    lines = render_turn_trace(make_pr())
    assert len(lines) == 4
    assert lines[0].startswith("    - No reviews submitted yet: ")
    assert lines[0].endswith("-> skip")
    assert lines[-1] == (
        "    * Mergeable state: clean: Ready to merge, all branch protection met -> my-turn"
    )


@pytest.mark.unit
def test_render_dashboard_text_lists_both_sections() -> None:
    response = DashboardResponse(
        my_prs=[make_pr()],
        review_requests=[],
        github_username="me",
        fetched_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
    )

    text = render_dashboard_text(response)

    assert text.splitlines()[:2] == ["# Pull requests for me", "Fetched at 2024-05-01 12:00:00 UTC"]
    assert "## My PRs (1 my turn / 1 open)" in text
    assert "## Review requests (0 my turn / 0 open)" in text
    assert "- Nothing here." in text
    assert "Mergeable state" not in text
    assert "Mergeable state: clean" in render_dashboard_text(response, debug=True)
