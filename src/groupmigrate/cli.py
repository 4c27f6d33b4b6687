"""CLI interface for group-migrate."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AppConfig, load_config
from .directory import GraphDirectoryClient
from .directory.graph import msal_token_provider
from .errors import ConfigError, DirectoryServiceError, FatalPreconditionError
from .export import create_run_dir, read_members_csv, write_members_csv, write_outcomes_csv
from .inputs import load_group_requests
from .logging_utils import setup_logging
from .models import OutcomeStatus
from .pipeline import GroupResolutionPipeline
from .provisioning import ExchangeOnlineClient, GroupProvisioner
from .report import ReportRow, export_context, provision_context, write_report

app = typer.Typer(
    name="group-migrate",
    help="Export directory security groups and provision mail-enabled equivalents",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {
    OutcomeStatus.SUCCESS.value: "green",
    OutcomeStatus.NOT_FOUND.value: "yellow",
    OutcomeStatus.AMBIGUOUS.value: "yellow",
    OutcomeStatus.ERROR.value: "red",
}

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to a YAML config file")
]
OutputDirOption = Annotated[
    Path | None,
    typer.Option("--output-dir", "-o", help="Base output directory (default: OUTPUT_DIRECTORY)"),
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable verbose/debug output")
]


def get_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from file and environment."""
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise typer.Exit(1) from None


def build_directory_client(config: AppConfig) -> GraphDirectoryClient:
    """Graph client authenticated with the configured app registration."""
    graph = config.graph
    graph.require()
    return GraphDirectoryClient(
        token_provider=msal_token_provider(graph.tenant_id, graph.client_id, graph.client_secret),
        base_url=graph.base_url,
        timeout=graph.timeout,
    )


def build_mail_client(config: AppConfig) -> ExchangeOnlineClient:
    """Exchange Online client for the configured certificate app."""
    config.exchange.require()
    return ExchangeOnlineClient(config.exchange)


def _print_summary(
    title: str, rows: tuple[ReportRow, ...], count_label: str, totals: list[tuple[str, int]]
) -> None:
    table = Table(title=title)
    table.add_column("Group", style="cyan")
    table.add_column(count_label, justify="right")
    table.add_column("Status")
    table.add_column("Message")
    for row in rows:
        style = STATUS_STYLES.get(row.status, "")
        table.add_row(row.group, str(row.count), f"[{style}]{row.status}[/{style}]", row.message)
    console.print(table)
    console.print("  ".join(f"[bold]{label}:[/bold] {value}" for label, value in totals))


@app.command()
def export(
    input_file: Annotated[
        Path,
        typer.Option("--input", "-i", help="Group names file (.csv, .yaml or .txt)"),
    ],
    output_dir: OutputDirOption = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Export members of the listed directory groups to CSV and an HTML report."""
    config = get_config(config_path)
    setup_logging(verbose=verbose, secrets=config.secrets())

    try:
        requests = load_group_requests(input_file)
        client = build_directory_client(config)
    except FileNotFoundError:
        console.print(f"[red]Input file not found: {input_file}[/red]")
        raise typer.Exit(1) from None
    except (ConfigError, DirectoryServiceError, FatalPreconditionError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    run_dir = create_run_dir(output_dir or config.output.directory, "export")
    setup_logging(verbose=verbose, log_file=run_dir / "run.log", secrets=config.secrets())
    console.print(f"[bold]Exporting {len(requests)} group(s)...[/bold]\n")

    result = GroupResolutionPipeline(client).process_all(requests)

    members_csv = run_dir / "group_members.csv"
    write_members_csv(result.members, members_csv)
    write_outcomes_csv(result.outcomes, run_dir / "group_outcomes.csv")
    context = export_context(result, input_label=str(input_file), output_label=str(members_csv))
    report_path = write_report(context, run_dir / "export_report.html")

    console.print()
    _print_summary(
        "Export Summary",
        context.rows,
        "Members",
        [
            ("Groups", result.total_groups),
            ("Successful", result.successful_groups),
            ("Failed", result.failed_groups),
            ("Members", result.total_members),
        ],
    )
    console.print(f"\nMembers CSV: {members_csv}")
    console.print(f"Report:      {report_path}")


@app.command()
def provision(
    input_file: Annotated[
        Path,
        typer.Option("--input", "-i", help="Members CSV written by the export command"),
    ],
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Preview changes without applying them")
    ] = False,
    output_dir: OutputDirOption = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Create mail-enabled security groups in Exchange Online from an export."""
    config = get_config(config_path)
    setup_logging(verbose=verbose, secrets=config.secrets())

    try:
        records = read_members_csv(input_file)
        if not records:
            raise FatalPreconditionError(f"Error: no input - no member rows in {input_file}")
        client = build_mail_client(config)
    except FileNotFoundError:
        console.print(f"[red]Input file not found: {input_file}[/red]")
        raise typer.Exit(1) from None
    except (ConfigError, FatalPreconditionError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    run_dir = create_run_dir(output_dir or config.output.directory, "provision")
    setup_logging(verbose=verbose, log_file=run_dir / "run.log", secrets=config.secrets())
    if dry_run:
        console.print("[yellow]DRY RUN[/yellow] - no changes will be made\n")

    provisioner = GroupProvisioner(
        client,
        group_prefix=config.exchange.group_prefix,
        mail_domain=config.exchange.mail_domain,
    )
    result = provisioner.provision_all(records, dry_run=dry_run)

    context = provision_context(result, input_label=str(input_file), output_label=str(run_dir))
    report_path = write_report(context, run_dir / "provision_report.html")

    console.print()
    _print_summary(
        "Provisioning Summary",
        context.rows,
        "Members Added",
        [
            ("Groups", result.total_groups),
            ("Created", result.groups_created),
            ("Failed", result.failed_groups),
            ("Members added", result.total_members),
        ],
    )
    console.print(f"\nReport: {report_path}")


@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"group-migrate {__version__}")


if __name__ == "__main__":
    app()
