"""Group resolution and member materialization.

Takes a list of group names, resolves each to exactly one directory group,
enumerates its members and turns each member into an exportable record.
Failures are contained at three levels: a member that cannot be read is
skipped, a group that cannot be processed gets an ``Error`` outcome, and only
an empty input list aborts the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime, timezone

from .directory.base import DirectoryClient
from .errors import (
    ErrorKind,
    FatalPreconditionError,
    GroupMigrateError,
    MemberDetailUnavailableError,
)
from .models import (
    GroupOutcome,
    GroupRequest,
    MemberRecord,
    OutcomeStatus,
    PipelineResult,
    ResolvedGroup,
    SkippedMember,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GroupResolutionPipeline:
    """Resolve group names against a directory and materialize their members."""

    def __init__(
        self,
        client: DirectoryClient,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.clock = clock

    def resolve(self, name: str) -> ResolvedGroup:
        """Look *name* up; ``id`` is only set when exactly one group matches."""
        matches = self.client.find_groups_by_name(name)
        match_count = len(matches)
        group_id = matches[0]["id"] if match_count == 1 else None
        logger.debug("Resolved '%s': %d match(es)", name, match_count)
        return ResolvedGroup(requested_name=name, id=group_id, match_count=match_count)

    def enumerate_members(self, resolved: ResolvedGroup) -> Iterator[str]:
        """Return an iterator over member ids of a resolved group.

        Raises ValueError immediately unless exactly one group matched.
        """
        if not resolved.is_resolved or resolved.id is None:
            raise ValueError(
                f"Cannot enumerate '{resolved.requested_name}': "
                f"{resolved.match_count} match(es), expected 1"
            )
        return (member["id"] for member in self.client.list_group_members(resolved.id))

    def materialize(
        self,
        member_id: str,
        resolved: ResolvedGroup,
        exported_at: datetime,
    ) -> MemberRecord | SkippedMember:
        """Fetch one member's details.

        A member whose object cannot be read comes back as a ``SkippedMember``
        so its siblings keep processing. Service failures (auth, outages)
        propagate and fail the whole group.
        """
        group_id = resolved.id or ""
        try:
            detail = self.client.get_member_detail(member_id)
        except MemberDetailUnavailableError as e:
            logger.warning(
                "  Skipping member %s of '%s': %s", member_id, resolved.requested_name, e
            )
            return SkippedMember(resolved.requested_name, group_id, member_id, str(e))

        return MemberRecord(
            group_name=resolved.requested_name,
            group_id=group_id,
            display_name=detail.get("displayName") or "",
            principal_name=detail.get("principalName") or "",
            email=detail.get("email") or "",
            job_title=detail.get("jobTitle") or "",
            department=detail.get("department") or "",
            company=detail.get("company") or "",
            member_id=detail.get("id") or member_id,
            export_timestamp=exported_at,
        )

    def process_one(
        self, request: GroupRequest
    ) -> tuple[GroupOutcome, list[MemberRecord], list[SkippedMember]]:
        """Process a single request. Errors are returned as an outcome, not raised."""
        name = request.name
        try:
            resolved = self.resolve(name)
            if resolved.match_count == 0:
                logger.warning("  Group '%s' not found", name)
                return (
                    GroupOutcome(
                        name,
                        None,
                        0,
                        OutcomeStatus.NOT_FOUND,
                        f"No directory group named '{name}'",
                        ErrorKind.NOT_FOUND,
                    ),
                    [],
                    [],
                )
            if resolved.match_count > 1:
                logger.warning(
                    "  Group name '%s' matches %d groups, refusing to guess",
                    name,
                    resolved.match_count,
                )
                return (
                    GroupOutcome(
                        name,
                        None,
                        0,
                        OutcomeStatus.AMBIGUOUS,
                        f"{resolved.match_count} directory groups are named '{name}'",
                        ErrorKind.AMBIGUOUS,
                    ),
                    [],
                    [],
                )

            # The member count is only known once the whole listing is in
            member_ids = list(self.enumerate_members(resolved))
            logger.info("  Group id %s, %d member(s) listed", resolved.id, len(member_ids))

            exported_at = self.clock()
            records: list[MemberRecord] = []
            skipped: list[SkippedMember] = []
            for member_id in member_ids:
                item = self.materialize(member_id, resolved, exported_at)
                if isinstance(item, MemberRecord):
                    records.append(item)
                else:
                    skipped.append(item)

        except Exception as e:  # noqa: BLE001
            kind = e.kind if isinstance(e, GroupMigrateError) else ErrorKind.TRANSIENT_SERVICE_ERROR
            logger.error("  ERROR processing group '%s': %s", name, e)
            return (
                GroupOutcome(name, None, 0, OutcomeStatus.ERROR, str(e) or type(e).__name__, kind),
                [],
                [],
            )

        message = f"Exported {len(records)} member(s)"
        if skipped:
            message += f", skipped {len(skipped)}"
        return (
            GroupOutcome(name, resolved.id, len(records), OutcomeStatus.SUCCESS, message),
            records,
            skipped,
        )

    def process_all(self, requests: Iterable[GroupRequest]) -> PipelineResult:
        """Process every request in order; one outcome per request."""
        requests = list(requests)
        if not requests:
            raise FatalPreconditionError("Error: no input - no group names to process")

        started_at = self.clock()
        outcomes: list[GroupOutcome] = []
        members: list[MemberRecord] = []
        skipped: list[SkippedMember] = []

        for index, request in enumerate(requests, start=1):
            logger.info("[%d/%d] %s", index, len(requests), request.name)
            outcome, records, group_skipped = self.process_one(request)
            outcomes.append(outcome)
            members.extend(records)
            skipped.extend(group_skipped)
            logger.info("  %s: %s", outcome.status.value, outcome.message)

        return PipelineResult(
            members=tuple(members),
            outcomes=tuple(outcomes),
            skipped=tuple(skipped),
            started_at=started_at,
            finished_at=self.clock(),
        )
