"""Flat CSV export of member records and group outcomes."""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from .errors import ConfigError
from .models import GroupOutcome, MemberRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# CSV column -> MemberRecord attribute
MEMBER_COLUMNS: dict[str, str] = {
    "GroupName": "group_name",
    "GroupId": "group_id",
    "DisplayName": "display_name",
    "UserPrincipalName": "principal_name",
    "Email": "email",
    "JobTitle": "job_title",
    "Department": "department",
    "Company": "company",
    "MemberId": "member_id",
    "ExportTimestamp": "export_timestamp",
}

OUTCOME_COLUMNS = ["GroupName", "GroupId", "MemberCount", "Status", "Message"]

REQUIRED_MEMBER_COLUMNS = {"GroupName", "UserPrincipalName", "Email"}


def create_run_dir(base_dir: str | Path, label: str, when: datetime | None = None) -> Path:
    """Create ``<base_dir>/YYYYMMDD_HHMMSS_<label>`` for one run's output."""
    when = when or datetime.now()
    safe_label = "".join(c if c.isalnum() or c in "-_" else "_" for c in label)
    run_dir = Path(base_dir) / f"{when.strftime('%Y%m%d_%H%M%S')}_{safe_label}"
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def write_members_csv(members: Iterable[MemberRecord], path: str | Path) -> int:
    """Write one row per member record. Returns the number of rows written."""
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(MEMBER_COLUMNS))
        writer.writeheader()
        for record in members:
            row = {col: getattr(record, attr) for col, attr in MEMBER_COLUMNS.items()}
            row["ExportTimestamp"] = record.export_timestamp.strftime(TIMESTAMP_FORMAT)
            writer.writerow(row)
            count += 1
    logger.debug("Wrote %d member row(s) to %s", count, path)
    return count


def write_outcomes_csv(outcomes: Iterable[GroupOutcome], path: str | Path) -> None:
    """Write the per-group outcome table."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(OUTCOME_COLUMNS)
        for o in outcomes:
            writer.writerow(
                [o.group_name, o.group_id or "", o.member_count, o.status.value, o.message]
            )


def read_members_csv(path: str | Path) -> list[MemberRecord]:
    """Read an export back into member records, in file order."""
    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise ConfigError(f"CSV file is empty or has no header: {path}")
        missing = REQUIRED_MEMBER_COLUMNS - set(reader.fieldnames)
        if missing:
            raise ConfigError(f"CSV missing required columns {sorted(missing)} in {path}")

        records: list[MemberRecord] = []
        for row_num, row in enumerate(reader, start=2):
            group_name = (row.get("GroupName") or "").strip()
            if not group_name:
                logger.warning("Skipping CSV row %d: missing GroupName", row_num)
                continue
            records.append(
                MemberRecord(
                    group_name=group_name,
                    group_id=(row.get("GroupId") or "").strip(),
                    display_name=(row.get("DisplayName") or "").strip(),
                    principal_name=(row.get("UserPrincipalName") or "").strip(),
                    email=(row.get("Email") or "").strip(),
                    job_title=(row.get("JobTitle") or "").strip(),
                    department=(row.get("Department") or "").strip(),
                    company=(row.get("Company") or "").strip(),
                    member_id=(row.get("MemberId") or "").strip(),
                    export_timestamp=_parse_timestamp(row.get("ExportTimestamp"), row_num),
                )
            )
    return records


def _parse_timestamp(value: str | None, row_num: int) -> datetime:
    # Hand-edited exports may drop the column entirely; exports are written in UTC
    if not (value or "").strip():
        logger.warning("CSV row %d has no ExportTimestamp, using current UTC time", row_num)
        return datetime.now(timezone.utc).replace(tzinfo=None)
    try:
        return datetime.strptime((value or "").strip(), TIMESTAMP_FORMAT)
    except ValueError:
        raise ConfigError(f"Invalid ExportTimestamp {value!r} at CSV row {row_num}") from None
