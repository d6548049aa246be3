"""Schema contract for dashboard outputs."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TurnStatus(StrEnum):
    """Whose move it is on a pull request."""

    MY_TURN = "my-turn"
    THEIR_TURN = "their-turn"


class CheckResult(StrEnum):
    """Outcome of one evaluated turn check."""

    MY_TURN = "my-turn"
    THEIR_TURN = "their-turn"
    SKIP = "skip"


class DashboardSection(StrEnum):
    """Dashboard category a pull request belongs to."""

    MY_PRS = "my-prs"
    REVIEW_REQUESTS = "review-requests"


class ReviewState(StrEnum):
    """Review states reported by the reviews API."""

    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"
    PENDING = "PENDING"


class ErrorCode(StrEnum):
    """Machine-readable dashboard failure codes."""

    RATE_LIMITED = "RATE_LIMITED"
    GITHUB_API_ERROR = "GITHUB_API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"


class TurnCheck(BaseModel):
    """One evaluated step of a turn decision."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    label: str = Field(min_length=1)
    value: str
    result: CheckResult
    decisive: bool = False

    @model_validator(mode="after")
    def validate_decisive_result(self) -> TurnCheck:
        """A decisive check must resolve to a verdict, never to skip."""
        if self.decisive and self.result == CheckResult.SKIP:
            raise ValueError("decisive checks must resolve to my-turn or their-turn")
        return self


class TurnDebugInfo(BaseModel):
    """Ordered audit trail of the checks that produced a verdict."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    section: DashboardSection
    checks: list[TurnCheck] = Field(min_length=1)
    deciding_check: str = Field(min_length=1)

    @model_validator(mode="after")
    def validate_deciding_check(self) -> TurnDebugInfo:
        """The deciding check must be the last check and the only decisive one."""
        decisive_count = sum(1 for check in self.checks if check.decisive)
        if decisive_count != 1 or not self.checks[-1].decisive:
            raise ValueError("exactly one check, the last one, must be decisive")
        if self.checks[-1].label != self.deciding_check:
            raise ValueError("deciding_check must name the decisive check")
        return self


class DashboardAuthor(BaseModel):
    """Pull request author shown on the dashboard."""

    model_config = ConfigDict(extra="forbid")

    login: str = Field(min_length=1)
    avatar_url: str = ""


class DashboardLabel(BaseModel):
    """Pull request label shown on the dashboard."""

    model_config = ConfigDict(extra="forbid")

    name: str
    color: str = ""


class DashboardPR(BaseModel):
    """Enriched pull request returned to the caller."""

    model_config = ConfigDict(extra="forbid")

    id: int
    number: int = Field(ge=1)
    title: str
    url: str
    repo: str = Field(pattern=r"^[^/\s]+/[^/\s]+$")
    author: DashboardAuthor
    turn_status: TurnStatus
    turn_debug_info: TurnDebugInfo
    is_draft: bool = False
    created_at: datetime
    updated_at: datetime
    labels: list[DashboardLabel] = Field(default_factory=list)
    review_summary: str = Field(min_length=1)


class DashboardResponse(BaseModel):
    """Both dashboard categories for one fetch."""

    model_config = ConfigDict(extra="forbid")

    my_prs: list[DashboardPR] = Field(default_factory=list)
    review_requests: list[DashboardPR] = Field(default_factory=list)
    github_username: str = Field(min_length=1)
    fetched_at: datetime

    @model_validator(mode="after")
    def validate_disjoint_sections(self) -> DashboardResponse:
        """A pull request never appears in both categories."""
        overlap = {pr.id for pr in self.my_prs} & {pr.id for pr in self.review_requests}
        if overlap:
            raise ValueError(f"pull requests present in both sections: {sorted(overlap)}")
        return self


class DashboardError(BaseModel):
    """Failure payload returned instead of a dashboard."""

    model_config = ConfigDict(extra="forbid")

    error: str = Field(min_length=1)
    code: ErrorCode
