"""CLI entry point for nicswap.

Commands:
    nicswap replace <csv>                   # Replace VM NICs listed in a CSV
    nicswap accelerated-networking <csv>    # Enable/disable accelerated networking
    nicswap config show                     # Show effective configuration
    nicswap config set <key> <value>        # Persist a configuration value
"""

import logging
import sys
import time

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from nicswap import __version__
from nicswap.accelerated_networking import AcceleratedNetworkingReconciler, ReconcileResult, ReconcileStatus
from nicswap.batch_driver import BatchDriver, ReconcileBatchResult, ReplacementBatchResult
from nicswap.config_manager import ConfigError, ConfigManager, NicSwapConfig
from nicswap.control_plane import AzureControlPlane, ControlPlaneError
from nicswap.csv_input import CSVInputError, load_accelerated_networking_requests, load_replacement_requests
from nicswap.models import OutcomeStatus, ReplacementOutcome
from nicswap.nic_replacement import NICReplacementWorkflow
from nicswap.prerequisites import PrerequisiteChecker, PrerequisiteError
from nicswap.state_poller import StatePoller
from nicswap.verification import ReplacementVerifier, VerificationReport

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

STATUS_STYLES = {
    OutcomeStatus.SUCCESS: "green",
    OutcomeStatus.SUCCESS_WITH_WARNINGS: "yellow",
    OutcomeStatus.FAILED: "red",
}


def _setup_logging(log_file: str | None, verbose: bool) -> None:
    """Log to the console and, if given, to a file."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
    )


def _build_control_plane(config: NicSwapConfig) -> AzureControlPlane:
    return AzureControlPlane(timeout=config.az_timeout_seconds)


def _format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.pass_context
@click.version_option(version=__version__)
def main(ctx: click.Context) -> None:
    """nicswap - Replace Azure VM network interfaces.

    Replaces each VM's NIC with a new one on the same subnet and NSG, and
    moves the VM's secondary private IP onto the new NIC as its static
    primary address.

    \b
    COMMANDS:
        replace                 Replace NICs for VMs listed in a CSV
        accelerated-networking  Enable/disable accelerated networking from a CSV
        config show             Show effective configuration
        config set              Persist a configuration value

    \b
    EXAMPLES:
        $ nicswap replace ./vms.csv
        $ nicswap replace ./vms.csv --log-file ./custom-log.txt
        $ nicswap accelerated-networking ./an.csv
        $ nicswap config set max_wait_minutes 20

    \b
    CONFIGURATION:
        Config file: ~/.nicswap/config.toml
        Environment overrides: NICSWAP_<KEY>, e.g. NICSWAP_MAX_WAIT_MINUTES=20
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


# ============================================================================
# REPLACE COMMAND
# ============================================================================


@main.command()
@click.argument("csv_file", type=click.Path(dir_okay=False))
@click.option("--log-file", help="Log file path (default from config)", type=click.Path(dir_okay=False))
@click.option("--config", help="Config file path", type=click.Path())
@click.option("--skip-verify", is_flag=True, help="Skip post-run verification of new NICs")
@click.option("--skip-prereqs", is_flag=True, help="Skip Azure CLI installation/login checks")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def replace(
    csv_file: str,
    log_file: str | None,
    config: str | None,
    skip_verify: bool,
    skip_prereqs: bool,
    verbose: bool,
) -> None:
    """Replace the NIC of every VM listed in CSV_FILE.

    \b
    CSV format (required columns):
        VMName,ResourceGroup,VNetResourceGroup,VNetName,SubnetName,NewNicIPAddress
    (SecondaryIPAddress is accepted instead of NewNicIPAddress.)

    VMs are processed one at a time. Exits 1 if any VM failed.

    \b
    Examples:
        nicswap replace ./vms.csv
        nicswap replace ./vms.csv --log-file ./custom-log.txt
    """
    console = Console()
    start_time = time.time()

    try:
        settings = ConfigManager.load_config(config)
        resolved_log_file = log_file or settings.log_file
        _setup_logging(resolved_log_file, verbose)

        logger.info("Starting VM NIC Update Process")
        logger.info(f"Validating CSV file: {csv_file}")
        requests = load_replacement_requests(csv_file)

        control_plane = _build_control_plane(settings)
        if not skip_prereqs:
            PrerequisiteChecker.require(control_plane)

        poller = StatePoller(
            control_plane,
            check_interval_seconds=settings.poll_interval_seconds,
            max_wait_minutes=settings.max_wait_minutes,
        )
        workflow = NICReplacementWorkflow(
            control_plane,
            poller,
            ip_settle_seconds=settings.ip_settle_seconds,
            leftover_release_seconds=settings.leftover_release_seconds,
            fallback_ip_prefix=settings.fallback_ip_prefix,
        )
        driver = BatchDriver(workflow=workflow, on_outcome=lambda o: _print_outcome(console, o))

        console.print(f"[dim]Processing {len(requests)} VM(s) from {csv_file}...[/dim]")
        batch = driver.run_replacements(requests)

        _print_replacement_summary(console, batch, time.time() - start_time)
        console.print(f"[dim]Log file: {resolved_log_file}[/dim]")

        if not skip_verify and batch.succeeded:
            report = ReplacementVerifier(control_plane).verify_all(batch.outcomes)
            _print_verification(console, report)

        if not batch.all_succeeded:
            sys.exit(1)

    except (ConfigError, CSVInputError, PrerequisiteError, ControlPlaneError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)


def _print_outcome(console: Console, outcome: ReplacementOutcome) -> None:
    style = STATUS_STYLES[outcome.status]
    symbol = "✗" if outcome.status == OutcomeStatus.FAILED else "✓"
    console.print(f"[{style}]{symbol}[/{style}] {escape(outcome.vm_name)}: {escape(outcome.message)}")
    for warning in outcome.warnings:
        console.print(f"  [yellow]⚠ {escape(str(warning))}[/yellow]")


def _print_replacement_summary(console: Console, batch: ReplacementBatchResult, elapsed: float) -> None:
    table = Table(title="VM NIC Update Summary")
    table.add_column("VM", style="cyan")
    table.add_column("Status")
    table.add_column("New NIC")
    table.add_column("IP")
    table.add_column("Phase")
    table.add_column("Details", overflow="fold")

    for outcome in batch.outcomes:
        style = STATUS_STYLES[outcome.status]
        ip = outcome.final_ip or outcome.temporary_ip or "-"
        table.add_row(
            outcome.vm_name,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.new_nic_name or "-",
            ip,
            outcome.phase.value,
            escape(outcome.message),
        )

    console.print()
    console.print(table)
    console.print(f"Total VMs processed: {batch.total}")
    console.print(f"[green]Successful: {batch.succeeded}[/green] ({batch.with_warnings} with warnings)")
    failed_style = "yellow" if batch.failed else "dim"
    console.print(f"[{failed_style}]Failed: {batch.failed}[/{failed_style}]")
    console.print(f"Duration: {_format_duration(elapsed)}")


def _print_verification(console: Console, report: VerificationReport) -> None:
    console.print()
    console.print("[cyan]=== Post-Run Verification ===[/cyan]")
    for result in report.results:
        console.print(f"[yellow]VM: {result.vm_name} (Expected IP: {result.expected_ip})[/yellow]")
        line = f"NIC: {result.nic_name or '-'} | IP: {result.actual_ip or '-'} | Allocation: {result.allocation or '-'}"
        if result.passed:
            console.print(f"  [green]✓ PASS - {line}[/green]")
        else:
            suffix = f" ({escape(result.message)})" if result.message else ""
            console.print(f"  [red]✗ FAIL - {line}{suffix}[/red]")


# ============================================================================
# ACCELERATED NETWORKING COMMAND
# ============================================================================


@main.command(name="accelerated-networking")
@click.argument("csv_file", type=click.Path(dir_okay=False))
@click.option("--config", help="Config file path", type=click.Path())
@click.option("--log-file", help="Log file path", type=click.Path(dir_okay=False))
@click.option("--skip-prereqs", is_flag=True, help="Skip Azure CLI installation/login checks")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def accelerated_networking(
    csv_file: str, config: str | None, log_file: str | None, skip_prereqs: bool, verbose: bool
) -> None:
    """Enable or disable accelerated networking for VMs listed in CSV_FILE.

    The VM's first NIC is updated in place; the VM keeps running.

    \b
    CSV format:
        VMName,ResourceGroup,EnableAcceleratedNetworking
        testvm1,RG-EastUS,true
        testvm2,RG-EastUS,false

    \b
    Examples:
        nicswap accelerated-networking ./an.csv
    """
    console = Console()

    try:
        settings = ConfigManager.load_config(config)
        _setup_logging(log_file, verbose)
        requests = load_accelerated_networking_requests(csv_file)

        control_plane = _build_control_plane(settings)
        if not skip_prereqs:
            PrerequisiteChecker.require(control_plane)

        console.print("Starting accelerated networking configuration...")
        console.print(f"Reading from: {csv_file}")
        driver = BatchDriver(
            reconciler=AcceleratedNetworkingReconciler(control_plane),
            on_outcome=lambda r: _print_reconcile_result(console, r),
        )
        batch = driver.run_accelerated_networking(requests)
        _print_reconcile_summary(console, batch)

        if not batch.all_succeeded:
            sys.exit(1)

    except (ConfigError, CSVInputError, PrerequisiteError, ControlPlaneError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)


def _print_reconcile_result(console: Console, result: ReconcileResult) -> None:
    if result.status == ReconcileStatus.UPDATED:
        console.print(f"  [green]✓ {escape(result.vm_name)}: {escape(result.message)}[/green]")
    elif result.status == ReconcileStatus.SKIPPED:
        console.print(f"  [yellow]⚠ {escape(result.vm_name)}: {escape(result.message)}[/yellow]")
    else:
        console.print(f"  [red]✗ {escape(result.vm_name)}: {escape(result.message)}[/red]")


def _print_reconcile_summary(console: Console, batch: ReconcileBatchResult) -> None:
    console.print("=" * 48)
    console.print("Summary:")
    console.print(f"  [green]✓ Successfully updated: {batch.updated} VM(s)[/green]")
    console.print(f"  [yellow]⚠ Skipped (no change needed or invalid value): {batch.skipped} VM(s)[/yellow]")
    console.print(f"  [red]✗ Failed: {batch.failed} VM(s)[/red]")
    console.print("=" * 48)


# ============================================================================
# CONFIG COMMANDS
# ============================================================================


@main.group(name="config")
def config_group() -> None:
    """Show or change nicswap configuration.

    \b
    Examples:
        nicswap config show
        nicswap config set poll_interval_seconds 15
    """
    pass


@config_group.command(name="show")
@click.option("--config", help="Config file path", type=click.Path())
def config_show(config: str | None) -> None:
    """Show the effective configuration (file + environment)."""
    console = Console()
    try:
        settings = ConfigManager.load_config(config)
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(title="nicswap configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@config_group.command(name="set")
@click.argument("key", type=click.Choice(NicSwapConfig.field_names()))
@click.argument("value", type=str)
@click.option("--config", help="Config file path", type=click.Path())
def config_set(key: str, value: str, config: str | None) -> None:
    """Persist KEY=VALUE to the config file."""
    console = Console()
    try:
        path = ConfigManager.set_value(key, value, config)
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Set {key} = {value} in [cyan]{path}[/cyan]")


if __name__ == "__main__":
    main()
