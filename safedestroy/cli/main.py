"""Main CLI entry point using Typer."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..aws.credentials import CredentialValidationError, validate_credentials
from ..errors import TeardownError
from ..models.cleanup_action import ActionResult
from ..models.teardown_operation import CoordinatorState
from ..report.inventory import format_inventory
from ..utils.logging import setup_logging
from .config import Config
from .runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)

# Exit codes
EXIT_CLEAN = 0
EXIT_RESOURCES_REMAIN = 1
EXIT_MANIFEST_ONLY = 2
EXIT_FATAL = 3
EXIT_ABORTED = 4

# Create Typer app
app = typer.Typer(
    name="safedestroy",
    help="safedestroy - dependency-aware teardown of Terraform-managed AWS deployments",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global config
config: Optional[Config] = None

DeploymentTagOption = typer.Option(
    None, "--deployment-tag", "-t", help="Deployment tag value, or a prefix ending in '*'"
)
TerraformDirOption = typer.Option(None, "--terraform-dir", "-d", help="Terraform working directory")
DryRunOption = typer.Option(False, "--dry-run", help="Compute actions without making any mutating call")


@app.callback()
def main(
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="AWS profile name"),
    region: Optional[str] = typer.Option(None, "--region", "-r", help="AWS region"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Configuration file (YAML)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
):
    """safedestroy - dependency-aware teardown of Terraform-managed AWS deployments."""
    global config

    # Load configuration
    try:
        config = Config.load(path=config_file)
    except ValueError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=EXIT_FATAL)

    # Override with CLI options
    if profile:
        config.aws_profile = profile
    if region:
        config.region = region

    # Setup logging
    log_level = "ERROR" if quiet else ("DEBUG" if verbose else config.log_level)
    setup_logging(level=log_level, verbose=verbose, log_file=config.log_file)

    # Disable colors if requested
    if no_color:
        console.no_color = True


def _require_tag(deployment_tag: Optional[str]) -> str:
    tag = deployment_tag or (config.deployment_tag if config else None)
    if not tag:
        console.print("✗ Error: --deployment-tag is required (or set deployment_tag in config)", style="bold red")
        raise typer.Exit(code=EXIT_FATAL)
    return tag


def _prepare(
    terraform_dir: Optional[str] = None,
    max_attempts: Optional[int] = None,
    dry_run: bool = False,
) -> Runtime:
    """Apply command options, check credentials and build the runtime."""
    if terraform_dir:
        config.terraform_dir = terraform_dir
    if max_attempts is not None:
        if max_attempts < 1:
            console.print("✗ Error: --max-attempts must be at least 1", style="bold red")
            raise typer.Exit(code=EXIT_FATAL)
        config.max_attempts = max_attempts

    try:
        identity = validate_credentials(config.aws_profile, config.region)
    except CredentialValidationError as e:
        console.print(f"✗ {e}", style="bold red")
        console.print("\nConfigure credentials with 'aws configure' or pass --profile.")
        raise typer.Exit(code=EXIT_FATAL)
    logger.debug(f"Using account {identity['account_id']}")

    return build_runtime(config, dry_run=dry_run)


def _fatal(error: TeardownError) -> None:
    console.print(f"✗ {error}", style="bold red")
    if error.resource_ids:
        console.print(f"  Resources: {', '.join(error.resource_ids)}")
    if error.remediation:
        console.print(f"  Manual command: {error.remediation}", style="yellow")
    raise typer.Exit(code=EXIT_FATAL)


@app.command()
def version():
    """Show version information."""
    import boto3

    from .. import __version__

    console.print(f"safedestroy version {__version__}")
    console.print(f"boto3 version {boto3.__version__}")


@app.command()
def scan(
    deployment_tag: Optional[str] = DeploymentTagOption,
    terraform_dir: Optional[str] = TerraformDirOption,
    export: Optional[Path] = typer.Option(None, "--export", "-e", help="Write the inventory to a YAML/JSON file"),
):
    """Print the inventory of a deployment (read-only).

    Examples:
        safedestroy scan --deployment-tag demo-v1
        safedestroy scan -t 'demo-*' --export inventory.yaml
    """
    tag = _require_tag(deployment_tag)
    try:
        runtime = _prepare(terraform_dir)
        snapshot = runtime.scanner.scan(tag)

        console.print(format_inventory(snapshot, width=console.width))
        console.print(
            f"{snapshot.resource_count} live resources, {len(snapshot.manifest)} state entries, "
            f"{len(snapshot.untracked())} untracked"
        )

        if export:
            export.parent.mkdir(parents=True, exist_ok=True)
            with open(export, "w") as f:
                if export.suffix == ".json":
                    json.dump(snapshot.to_dict(), f, indent=2)
                else:
                    yaml.safe_dump(snapshot.to_dict(), f, default_flow_style=False, sort_keys=False)
            console.print(f"✓ Inventory exported to {export}", style="green")

    except typer.Exit:
        raise
    except TeardownError as e:
        _fatal(e)


@app.command()
def cleanup(
    deployment_tag: Optional[str] = DeploymentTagOption,
    terraform_dir: Optional[str] = TerraformDirOption,
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", help="Attempts per cleanup action"),
    dry_run: bool = DryRunOption,
):
    """Detect blocking dependencies and clear them (no terraform destroy).

    Exits 0 when every action succeeded or was already clean, 1 when some
    remain blocked, 3 on permission errors.
    """
    tag = _require_tag(deployment_tag)
    try:
        runtime = _prepare(terraform_dir, max_attempts, dry_run)
        snapshot = runtime.scanner.scan(tag)
        detection = runtime.detector.detect(snapshot)

        console.print(f"Detected {detection.summary()}")
        for edge in detection.reported:
            console.print(f"⚠ Needs an operator: {edge.describe()}", style="yellow")

        if not detection.actions:
            console.print("✓ Nothing to clean up", style="green")
            return

        report = runtime.executor.execute(detection.actions)

        table = Table(title=f"Cleanup {'plan' if dry_run else 'results'} for {tag}")
        table.add_column("Operation", style="cyan")
        table.add_column("Target")
        table.add_column("Result")
        for action in report.actions:
            result = action.result.value if action.result else "planned"
            style = "green" if action.result and action.result.ok else ("dim" if dry_run else "red")
            table.add_row(action.operation.value, action.describe(), f"[{style}]{result}[/{style}]")
        console.print(table)

        for error in report.errors:
            console.print(f"✗ {error.message}", style="bold red" if error.fatal else "red")
            console.print(f"  Manual command: {error.remediation}", style="yellow")

        if report.count(ActionResult.PERMISSION_DENIED):
            console.print("✗ Some actions were denied; check the credentials in use", style="bold red")
        raise typer.Exit(code=report.exit_code)

    except typer.Exit:
        raise
    except TeardownError as e:
        _fatal(e)


@app.command()
def destroy(
    deployment_tag: Optional[str] = DeploymentTagOption,
    terraform_dir: Optional[str] = TerraformDirOption,
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", help="Full destroy attempts"),
    dry_run: bool = DryRunOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    interactive: bool = typer.Option(
        True, "--interactive/--no-interactive", help="Open the manual console if teardown stalls"
    ),
):
    """Tear down a deployment completely.

    Runs cleanup and terraform destroy with retries, falls back to targeted
    destroy in dependency order, then (interactively) the manual console.
    """
    tag = _require_tag(deployment_tag)
    try:
        runtime = _prepare(terraform_dir, max_attempts, dry_run)

        snapshot = runtime.scanner.scan(tag)
        console.print(format_inventory(snapshot, width=console.width))
        if not dry_run and not yes and not snapshot.is_empty:
            console.print(
                Panel(
                    f"This will permanently delete {snapshot.resource_count} resources "
                    f"and {len(snapshot.manifest)} state entries of {tag}.",
                    style="bold red",
                )
            )
            if not typer.confirm("Proceed with destroy?", default=False):
                console.print("Aborted by operator.", style="yellow")
                raise typer.Exit(code=EXIT_ABORTED)

        manual_console = runtime.console(tag, console) if interactive else None
        operation = runtime.coordinator(manual_console).run(tag)

        if operation.state == CoordinatorState.FAILED:
            runtime.audit.log_operation(operation)
            for error in operation.fatal_errors:
                console.print(f"✗ {error.message}", style="bold red")
                if error.remediation:
                    console.print(f"  Manual command: {error.remediation}", style="yellow")
            raise typer.Exit(code=EXIT_FATAL)

        report = runtime.reporter().verify(tag)
        operation.outcome = report.outcome
        audit_file = runtime.audit.log_operation(operation)

        console.print(runtime.reporter().format_terminal(report, width=console.width))
        console.print(f"States: {' -> '.join(s.value for s in operation.history)}")
        for error in operation.errors:
            console.print(f"  {error.stage}: {error.error_type}: {error.message}", style="dim")
        for error in operation.fatal_errors:
            console.print(f"✗ {error.message}", style="bold red")
            if error.remediation:
                console.print(f"  Manual command: {error.remediation}", style="yellow")

        if not dry_run:
            remaining = runtime.terraform.state_list()
            if remaining:
                console.print(f"{len(remaining)} addresses remain in state:")
                for address in remaining:
                    console.print(f"  {address}")
        console.print(f"Audit log: {audit_file}", style="dim")

        if operation.state == CoordinatorState.ABORTED:
            raise typer.Exit(code=EXIT_ABORTED)
        if dry_run:
            raise typer.Exit(code=EXIT_CLEAN)
        if operation.fatal_errors and report.exit_code != EXIT_CLEAN:
            raise typer.Exit(code=EXIT_FATAL)
        raise typer.Exit(code=report.exit_code)

    except typer.Exit:
        raise
    except TeardownError as e:
        _fatal(e)


@app.command()
def manual(
    deployment_tag: Optional[str] = DeploymentTagOption,
    terraform_dir: Optional[str] = TerraformDirOption,
):
    """Open the manual resolution console.

    Exits 0 if the deployment is clean afterwards, 4 if residuals remain.
    """
    tag = _require_tag(deployment_tag)
    try:
        runtime = _prepare(terraform_dir)
        runtime.console(tag, console).run()

        reporter = runtime.reporter()
        report = reporter.verify(tag)
        console.print(reporter.format_terminal(report, width=console.width))
        raise typer.Exit(code=EXIT_CLEAN if report.exit_code == EXIT_CLEAN else EXIT_ABORTED)

    except typer.Exit:
        raise
    except TeardownError as e:
        _fatal(e)


@app.command()
def verify(
    deployment_tag: Optional[str] = DeploymentTagOption,
    terraform_dir: Optional[str] = TerraformDirOption,
):
    """Classify what is left of a deployment.

    Exits 0 when clean, 1 when live resources remain, 2 when only state
    entries remain.
    """
    tag = _require_tag(deployment_tag)
    try:
        runtime = _prepare(terraform_dir)
        reporter = runtime.reporter()
        report = reporter.verify(tag)
        console.print(reporter.format_terminal(report, width=console.width))

        detached = runtime.audit.detach_records(tag)
        if detached:
            count = sum(len(r["resource_ids"]) for r in detached)
            console.print(
                f"⚠ {count} resources were detached from {tag} and still need manual cleanup", style="yellow"
            )
        raise typer.Exit(code=report.exit_code)

    except typer.Exit:
        raise
    except TeardownError as e:
        _fatal(e)


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
