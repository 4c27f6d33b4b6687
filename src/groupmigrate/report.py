"""HTML run report rendered from a bundled Jinja2 template."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, PackageLoader, select_autoescape

from .models import PipelineResult, ProvisionResult, SkippedMember

logger = logging.getLogger(__name__)

REPORT_TEMPLATE = "report.html.j2"
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class ReportRow:
    """One line of the outcomes table."""

    group: str
    detail: str
    count: int
    status: str
    message: str


@dataclass(frozen=True)
class ReportContext:
    """Everything the template needs; built by the ``*_context`` helpers."""

    title: str
    started_at: datetime | None
    finished_at: datetime | None
    input_label: str
    output_label: str
    total_groups: int
    successful_groups: int
    failed_groups: int
    total_members: int
    rows: tuple[ReportRow, ...]
    skipped: tuple[SkippedMember, ...] = ()
    count_label: str = "Members"
    detail_label: str = "Group ID"
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def duration(self) -> str:
        if not self.started_at or not self.finished_at:
            return ""
        total_seconds = max(int((self.finished_at - self.started_at).total_seconds()), 0)
        minutes, seconds = divmod(total_seconds, 60)
        hours, minutes = divmod(minutes, 60)
        if hours:
            return f"{hours}h {minutes}m {seconds}s"
        if minutes:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"


def export_context(
    result: PipelineResult, input_label: str, output_label: str
) -> ReportContext:
    """Report context for a group export run."""
    rows = tuple(
        ReportRow(
            group=o.group_name,
            detail=o.group_id or "",
            count=o.member_count,
            status=o.status.value,
            message=o.message,
        )
        for o in result.outcomes
    )
    return ReportContext(
        title="Security Group Export Report",
        started_at=result.started_at,
        finished_at=result.finished_at,
        input_label=input_label,
        output_label=output_label,
        total_groups=result.total_groups,
        successful_groups=result.successful_groups,
        failed_groups=result.failed_groups,
        total_members=result.total_members,
        rows=rows,
        skipped=result.skipped,
    )


def provision_context(
    result: ProvisionResult, input_label: str, output_label: str
) -> ReportContext:
    """Report context for a mail-enabled group provisioning run."""
    rows = tuple(
        ReportRow(
            group=o.source_group,
            detail=o.target_group,
            count=o.members_added,
            status=o.status.value,
            message=o.message,
        )
        for o in result.outcomes
    )
    notes: tuple[str, ...] = ()
    if result.dry_run:
        notes = ("Dry run: no groups were created and no members were added.",)
    return ReportContext(
        title="Mail-Enabled Security Group Provisioning Report",
        started_at=result.started_at,
        finished_at=result.finished_at,
        input_label=input_label,
        output_label=output_label,
        total_groups=result.total_groups,
        successful_groups=result.successful_groups,
        failed_groups=result.failed_groups,
        total_members=result.total_members,
        rows=rows,
        skipped=result.skipped,
        count_label="Members Added",
        detail_label="Target Group",
        notes=notes,
    )


def _environment() -> Environment:
    env = Environment(
        loader=PackageLoader("groupmigrate", "templates"),
        autoescape=select_autoescape(["html", "j2"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["ts"] = lambda v: v.strftime(DISPLAY_FORMAT) if v else ""
    return env


def render_report(context: ReportContext) -> str:
    """Render the HTML report to a string."""
    template = _environment().get_template(REPORT_TEMPLATE)
    return template.render(report=context)


def write_report(context: ReportContext, path: str | Path) -> Path:
    """Render the report and write it to *path*."""
    path = Path(path)
    path.write_text(render_report(context), encoding="utf-8")
    logger.debug("Wrote HTML report to %s", path)
    return path
