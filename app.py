#!/usr/bin/env python3
"""
Brewkeeper command line
Entry point invoked by cron/launchd for unattended package maintenance
"""
import fcntl
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
import yaml

from config import AgentConfig, ConfigError, load_config, resolve_config_path, write_config_template
from models.notifications import NotificationChannelFactory
from services.maintenance_runner import canonical_steps, dry_run_steps
from services.network_probe import NetworkProbe
from services.orchestrator import Orchestrator
from services.package_manager import PackageManager
from services.power_probe import PowerProbe
from services.precondition_checker import PreconditionChecker
from services.run_logger import RunLogger

logger = logging.getLogger("brewkeeper")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_LOCKED = 2

app = typer.Typer(
    help="brewkeeper - conditional unattended package maintenance",
    no_args_is_help=True,
)

ConfigOption = typer.Option(None, "--config", "-c", help="Path to config.yaml (default: ~/.config/brewkeeper/config.yaml)")


class RunLockedError(Exception):
    """Another invocation holds the run lock"""


def setup_logging(config: AgentConfig, verbose: bool = False):
    """Console handler plus the persistent log file"""
    level = logging.DEBUG if verbose else getattr(logging, config.log_level)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"Could not open log file {config.log_file}: {e}")


@contextmanager
def run_lock(state_dir: Path) -> Iterator[None]:
    """Non-blocking advisory lock so overlapping scheduled runs never touch the package manager together"""
    state_dir.mkdir(parents=True, exist_ok=True)
    lock_path = state_dir / "brewkeeper.lock"
    with lock_path.open("w") as lock_file:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise RunLockedError(f"Another run holds {lock_path}") from e
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def _load_or_exit(config_file: Optional[str], verbose: bool = False) -> AgentConfig:
    try:
        config = load_config(config_file)
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(str(e))
        raise typer.Exit(EXIT_FAILURE) from e
    setup_logging(config, verbose)
    return config


def build_orchestrator(config: AgentConfig, dry_run: bool = False) -> Orchestrator:
    """Wire real collaborators from configuration"""
    package_manager = PackageManager(config.package_manager.binary, config.package_manager.timeout_seconds)
    checker = PreconditionChecker(NetworkProbe(config.conditions.network_interface), PowerProbe())
    upgrade_applications = config.package_manager.upgrade_applications
    steps = dry_run_steps(upgrade_applications) if dry_run else canonical_steps(package_manager, upgrade_applications)

    return Orchestrator(
        config=config,
        package_manager=package_manager,
        precondition_checker=checker,
        channels=NotificationChannelFactory.create_all_channels(config),
        steps=steps,
        run_logger=RunLogger(config.state_dir)
    )


@app.command()
def run(
    config_file: Optional[str] = ConfigOption,
    dry_run: bool = typer.Option(False, "--dry-run", help="Check conditions and notify, but do not touch packages"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Check conditions, run maintenance and send the report."""
    config = _load_or_exit(config_file, verbose)

    try:
        with run_lock(config.state_dir):
            outcome = build_orchestrator(config, dry_run).run()
    except RunLockedError as e:
        logger.warning(f"{e} - exiting")
        raise typer.Exit(EXIT_LOCKED) from e

    attempted = [d for d in outcome.deliveries if not d.skipped]
    if attempted and not outcome.delivered:
        logger.error("Report could not be delivered through any channel")
        raise typer.Exit(EXIT_FAILURE)

    logger.info(f"Run complete. Log file: {config.log_file}")


@app.command()
def check(
    config_file: Optional[str] = ConfigOption,
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Evaluate network and power conditions once, without retries or notifications."""
    config = _load_or_exit(config_file, verbose)
    conditions = config.conditions

    checker = PreconditionChecker(NetworkProbe(conditions.network_interface), PowerProbe())
    result = checker.evaluate(
        required_network=conditions.required_network,
        require_power=conditions.require_ac_power,
        max_attempts=1,
        delay=0,
        allowed_networks=conditions.allowed_networks,
        min_battery_percent=conditions.min_battery_percent
    )

    for precondition in result.preconditions:
        mark = "ok" if precondition.satisfied else "NOT MET"
        typer.echo(
            f"{precondition.kind.value:8} {mark:8} expected={precondition.expected} "
            f"observed={precondition.observed or 'unknown'}"
        )

    package_manager = PackageManager(config.package_manager.binary)
    typer.echo(f"{'manager':8} {'ok' if package_manager.is_available() else 'MISSING':8} binary={package_manager.binary}")

    if not result.satisfied:
        raise typer.Exit(EXIT_FAILURE)


@app.command("test-notifications")
def test_notifications(
    config_file: Optional[str] = ConfigOption,
    message: str = typer.Option(
        "This is a test message from Brewkeeper. If you receive this, notifications are working.",
        "--message", "-m"
    ),
):
    """Send a test message through every enabled channel."""
    config = _load_or_exit(config_file)
    channels = [c for c in NotificationChannelFactory.create_all_channels(config) if c.enabled]

    if not channels:
        typer.echo("No notification channels enabled - configure notification.channels first")
        raise typer.Exit(EXIT_FAILURE)

    failures = 0
    for channel in channels:
        result = channel.send_test(message)
        if result.ok:
            typer.echo(f"{channel.id}: sent")
        else:
            failures += 1
            typer.echo(f"{channel.id}: FAILED - {result.error}")

    if failures:
        raise typer.Exit(EXIT_FAILURE)


@app.command("init-config")
def init_config(
    config_file: Optional[str] = ConfigOption,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file"),
):
    """Write a commented template config and an empty secrets.env."""
    try:
        path = write_config_template(config_file, overwrite=force)
    except ConfigError as e:
        typer.echo(f"{e} (use --force to overwrite)")
        raise typer.Exit(EXIT_FAILURE) from e
    typer.echo(f"Created {path}")
    typer.echo(f"Put secrets such as EMAIL_PASSWORD in {path.parent / 'secrets.env'}")


@app.command()
def status(config_file: Optional[str] = ConfigOption):
    """Show the outcome of the last run."""
    config = _load_or_exit(config_file)
    last_run = RunLogger(config.state_dir).get_last_run()

    if not last_run:
        typer.echo(f"No runs recorded yet (config: {resolve_config_path(config_file)})")
        return

    typer.echo(yaml.safe_dump(last_run, default_flow_style=False, sort_keys=False).rstrip())


if __name__ == "__main__":
    app()
