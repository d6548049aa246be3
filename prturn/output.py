"""Terminal rendering of dashboard results."""

from __future__ import annotations

from prturn.schema import CheckResult, DashboardPR, DashboardResponse, TurnStatus

TURN_BADGES = {
    TurnStatus.MY_TURN: "[MY TURN]   ",
    TurnStatus.THEIR_TURN: "[THEIR TURN]",
}


def render_pr_line(pr: DashboardPR) -> str:
    """Render one pull request as a single report line."""
    draft = " (draft)" if pr.is_draft else ""
    return (
        f"{TURN_BADGES[pr.turn_status]} {pr.repo}#{pr.number}{draft} {pr.title} "
        f"by {pr.author.login} | {pr.review_summary}"
    )


def render_turn_trace(pr: DashboardPR) -> list[str]:
    """Render the evaluated turn checks, marking the deciding one."""
    lines: list[str] = []
    for check in pr.turn_debug_info.checks:
        marker = "*" if check.decisive else "-"
        result = "skip" if check.result == CheckResult.SKIP else check.result.value
        lines.append(f"    {marker} {check.label}: {check.value} -> {result}")
    return lines


def _render_section(title: str, prs: list[DashboardPR], *, debug: bool) -> list[str]:
    """Render one dashboard section with its heading."""
    my_turn_count = sum(1 for pr in prs if pr.turn_status == TurnStatus.MY_TURN)
    lines = [f"## {title} ({my_turn_count} my turn / {len(prs)} open)"]
    if not prs:
        lines.append("- Nothing here.")
        return lines
    for pr in prs:
        lines.append(render_pr_line(pr))
        if debug:
            lines.extend(render_turn_trace(pr))
    return lines


def render_dashboard_text(response: DashboardResponse, *, debug: bool = False) -> str:
    """Render both dashboard categories as plain text."""
    fetched_at = response.fetched_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    lines = [f"# Pull requests for {response.github_username}", f"Fetched at {fetched_at}", ""]
    lines.extend(_render_section("My PRs", response.my_prs, debug=debug))
    lines.append("")
    lines.extend(_render_section("Review requests", response.review_requests, debug=debug))
    return "\n".join(lines)
