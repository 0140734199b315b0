"""CLI entrypoint for fdx-dispatch."""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from fdx_dispatch import __version__
from fdx_dispatch.controllers import DispatchCliController, InvokeCommand

click.rich_click.USE_MARKDOWN = True
DISPATCH_CONTROLLER = DispatchCliController()
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

T = TypeVar("T")


@click.group()
@click.version_option(version=__version__, prog_name="fdx-dispatch")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level; defaults to FDX_DISPATCH_LOG_LEVEL or WARNING.",
)
def fdx_dispatch(log_level: str | None) -> None:
    """Retry-and-dispatch engine for financial data operations."""

    level = (log_level or os.getenv("FDX_DISPATCH_LOG_LEVEL") or "WARNING").strip().upper()
    if level not in LOG_LEVELS:
        raise click.BadParameter(
            f"Invalid FDX_DISPATCH_LOG_LEVEL: {level!r}",
            param_hint="--log-level",
        )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


@fdx_dispatch.command("activities")
def activities() -> None:
    """List registered operations with their retry settings."""

    _emit_lines(_run(DISPATCH_CONTROLLER.list_activities))


@fdx_dispatch.command("invoke")
@click.argument("operation")
@click.argument("args", nargs=-1)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Max seconds to wait for the result; waits until terminal when omitted.",
)
@click.option(
    "--dataset",
    "dataset_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="JSON dataset file; the built-in sample dataset is used when omitted.",
)
@click.option(
    "--latency-scale",
    type=click.FloatRange(min=0),
    default=1.0,
    show_default=True,
    help="Multiplier for simulated backing-store latency (0 disables it).",
)
def invoke(
    operation: str,
    args: tuple[str, ...],
    timeout_seconds: float | None,
    dataset_path: Path | None,
    latency_scale: float,
) -> None:
    """Submit one operation and print its result.

    Arguments are parsed as JSON when possible, otherwise passed as strings,
    for example `fdx-dispatch invoke get_accounts 0 5`.
    """

    result = _run(
        lambda: DISPATCH_CONTROLLER.invoke(
            InvokeCommand(
                operation=operation,
                raw_args=args,
                timeout_seconds=timeout_seconds,
                dataset_path=dataset_path,
                latency_scale=latency_scale,
            ),
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(f"Operation {operation} failed.")


@fdx_dispatch.command("retry-schedule")
def retry_schedule() -> None:
    """Print the backoff delay before every retry of the configured policy."""

    _emit_lines(_run(DISPATCH_CONTROLLER.retry_schedule))


@fdx_dispatch.command("chaos-config")
def chaos_config() -> None:
    """Print the loaded fault-injection settings."""

    _emit_lines(_run(DISPATCH_CONTROLLER.chaos_config))


def _run(action: Callable[[], T]) -> T:
    try:
        return action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    fdx_dispatch()
