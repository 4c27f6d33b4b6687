"""Records produced by the export and provisioning runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .errors import ErrorKind


class OutcomeStatus(str, Enum):
    """Terminal classification of one group request."""

    SUCCESS = "Success"
    NOT_FOUND = "NotFound"
    AMBIGUOUS = "Ambiguous"
    ERROR = "Error"


@dataclass(frozen=True)
class GroupRequest:
    """One group name to process, trimmed and non-empty."""

    name: str

    def __post_init__(self) -> None:
        trimmed = (self.name or "").strip()
        if not trimmed:
            raise ValueError("group name must be non-empty")
        object.__setattr__(self, "name", trimmed)


@dataclass(frozen=True)
class ResolvedGroup:
    """Result of looking a group name up in the directory."""

    requested_name: str
    id: str | None
    match_count: int

    @property
    def is_resolved(self) -> bool:
        return self.match_count == 1


@dataclass(frozen=True)
class MemberRecord:
    """A fully detailed group member, one row of the export."""

    group_name: str
    group_id: str
    display_name: str
    principal_name: str
    email: str
    job_title: str
    department: str
    company: str
    member_id: str
    export_timestamp: datetime


@dataclass(frozen=True)
class SkippedMember:
    """A member left out of the export, with the reason."""

    group_name: str
    group_id: str
    member_id: str
    reason: str
    error_kind: ErrorKind = ErrorKind.MEMBER_DETAIL_UNAVAILABLE


@dataclass(frozen=True)
class GroupOutcome:
    """Exactly one per group request, whatever happened to it."""

    group_name: str
    group_id: str | None
    member_count: int
    status: OutcomeStatus
    message: str
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


@dataclass(frozen=True)
class PipelineResult:
    """Ordered output of one export run."""

    members: tuple[MemberRecord, ...]
    outcomes: tuple[GroupOutcome, ...]
    skipped: tuple[SkippedMember, ...] = ()
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def total_groups(self) -> int:
        return len(self.outcomes)

    @property
    def successful_groups(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed_groups(self) -> int:
        return self.total_groups - self.successful_groups

    @property
    def total_members(self) -> int:
        return sum(o.member_count for o in self.outcomes)

    def count_by_status(self) -> dict[OutcomeStatus, int]:
        """Number of outcomes per status, every status present."""
        counts = {status: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status] += 1
        return counts


@dataclass(frozen=True)
class ProvisionOutcome:
    """Result of provisioning one mail-enabled group."""

    source_group: str
    target_group: str
    status: OutcomeStatus
    message: str
    created: bool = False
    members_added: int = 0
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


@dataclass(frozen=True)
class ProvisionResult:
    """Ordered output of one provisioning run."""

    outcomes: tuple[ProvisionOutcome, ...]
    skipped: tuple[SkippedMember, ...] = ()
    started_at: datetime | None = None
    finished_at: datetime | None = None
    dry_run: bool = False

    @property
    def total_groups(self) -> int:
        return len(self.outcomes)

    @property
    def successful_groups(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed_groups(self) -> int:
        return self.total_groups - self.successful_groups

    @property
    def groups_created(self) -> int:
        return sum(1 for o in self.outcomes if o.created)

    @property
    def total_members(self) -> int:
        return sum(o.members_added for o in self.outcomes)


@dataclass
class ExchangeGroup:
    """Represents an Exchange Online mail-enabled group."""

    identity: str
    display_name: str
    primary_smtp_address: str = ""
    group_type: str = "MailEnabledSecurity"
