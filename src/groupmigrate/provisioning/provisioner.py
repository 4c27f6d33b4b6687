"""Create mail-enabled security groups from an export."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Protocol

from ..errors import ErrorKind, GroupMigrateError
from ..models import (
    ExchangeGroup,
    MemberRecord,
    OutcomeStatus,
    ProvisionOutcome,
    ProvisionResult,
    SkippedMember,
)

logger = logging.getLogger(__name__)

_ALIAS_STRIP = re.compile(r"[^A-Za-z0-9._-]")


class MailClient(Protocol):
    """What the provisioner needs from the mail platform."""

    def get_group(self, identity: str) -> ExchangeGroup | None: ...

    def create_security_group(
        self, name: str, alias: str, primary_smtp_address: str | None = None
    ) -> ExchangeGroup: ...

    def add_members(self, identity: str, members: list[str]) -> dict[str, str | None]: ...


def make_alias(name: str) -> str:
    """Mail alias for a group name: disallowed characters removed, dots trimmed."""
    alias = _ALIAS_STRIP.sub("", name).strip(".")
    return alias[:64]


def group_members(records: Iterable[MemberRecord]) -> dict[str, list[MemberRecord]]:
    """Group export rows by source group, keeping first-seen order."""
    grouped: dict[str, list[MemberRecord]] = {}
    for record in records:
        grouped.setdefault(record.group_name, []).append(record)
    return grouped


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GroupProvisioner:
    """Mirror exported directory groups as mail-enabled security groups."""

    def __init__(
        self,
        client: MailClient,
        group_prefix: str = "",
        mail_domain: str = "",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.group_prefix = group_prefix
        self.mail_domain = mail_domain.lstrip("@")
        self.clock = clock

    def target_name(self, source_group: str) -> str:
        return f"{self.group_prefix}{source_group}"

    def provision_all(
        self, records: Iterable[MemberRecord], dry_run: bool = False
    ) -> ProvisionResult:
        """Provision one group per distinct source group, in first-seen order."""
        started_at = self.clock()
        prefix = "[DRY RUN] " if dry_run else ""
        if dry_run:
            logger.info("[DRY RUN] No changes will be made.\n")

        outcomes: list[ProvisionOutcome] = []
        skipped: list[SkippedMember] = []
        for source_group, members in group_members(records).items():
            logger.info("%s[%s]", prefix, source_group)
            outcome, group_skipped = self._provision_group(source_group, members, dry_run)
            outcomes.append(outcome)
            skipped.extend(group_skipped)
            logger.info("  %s: %s", outcome.status.value, outcome.message)

        return ProvisionResult(
            outcomes=tuple(outcomes),
            skipped=tuple(skipped),
            started_at=started_at,
            finished_at=self.clock(),
            dry_run=dry_run,
        )

    def _provision_group(
        self, source_group: str, members: list[MemberRecord], dry_run: bool
    ) -> tuple[ProvisionOutcome, list[SkippedMember]]:
        target = self.target_name(source_group)
        skipped: list[SkippedMember] = []

        # Members need a mail-routable address; UPN is the fallback
        addresses: dict[str, MemberRecord] = {}
        for m in members:
            address = m.email or m.principal_name
            if not address:
                skipped.append(
                    SkippedMember(source_group, m.group_id, m.member_id, "No email or UPN")
                )
                continue
            addresses.setdefault(address.lower(), m)

        try:
            existing = self.client.get_group(target)
            created = existing is None
            if existing is not None:
                logger.info(
                    "  Group exists (%s)", existing.primary_smtp_address or existing.identity
                )
                identity = existing.identity
            elif dry_run:
                logger.info("  [DRY RUN] Would create group '%s'", target)
                identity = target
            else:
                alias = make_alias(target)
                smtp = f"{alias}@{self.mail_domain}" if self.mail_domain else None
                identity = self.client.create_security_group(target, alias, smtp).identity

            if dry_run:
                logger.info("  [DRY RUN] Would add %d member(s)", len(addresses))
                return (
                    ProvisionOutcome(
                        source_group,
                        target,
                        OutcomeStatus.SUCCESS,
                        f"Would {'create group and ' if created else ''}"
                        f"add {len(addresses)} member(s)",
                        created=created,
                        members_added=len(addresses),
                    ),
                    skipped,
                )

            results = self.client.add_members(identity, list(addresses))
        except Exception as e:  # noqa: BLE001
            kind = e.kind if isinstance(e, GroupMigrateError) else ErrorKind.TRANSIENT_SERVICE_ERROR
            logger.error("  ERROR provisioning '%s': %s", target, e)
            return (
                ProvisionOutcome(
                    source_group, target, OutcomeStatus.ERROR, str(e), error_kind=kind
                ),
                skipped,
            )

        added = 0
        for address, error in results.items():
            if error is None:
                added += 1
                continue
            record = addresses[address]
            logger.warning("  Could not add %s: %s", address, error)
            skipped.append(
                SkippedMember(
                    source_group,
                    record.group_id,
                    record.member_id or address,
                    error,
                    ErrorKind.TRANSIENT_SERVICE_ERROR,
                )
            )

        verb = "Created group" if created else "Updated existing group"
        message = f"{verb}, added {added} of {len(addresses)} member(s)"
        return (
            ProvisionOutcome(
                source_group,
                target,
                OutcomeStatus.SUCCESS,
                message,
                created=created,
                members_added=added,
            ),
            skipped,
        )
