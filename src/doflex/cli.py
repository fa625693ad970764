"""DigitalOcean flex volume driver entrypoint."""

import sys

import typer
import uvloop
from loguru import logger

from doflex.core.client import DigitalOceanClient
from doflex.core.models import DriverStatus
from doflex.core.mounter import DeviceMounter
from doflex.core.settings import settings
from doflex.driver import FlexDriver
from doflex.plugins.digitalocean import DigitalOceanVolumePlugin


# Configure logging
def configure_logging(
    log_level: str = "INFO", log_path: str = "doflex.log", to_stderr: bool = False
) -> None:
    """Configure logging.

    Stdout carries the status record read by the kubelet, so logs go to a
    rotating file and, optionally, to stderr.
    """
    logger.remove()  # Remove default handler

    if to_stderr:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
                "<level>{message}</level>"
            ),
            level=log_level.upper(),
        )

    # Driver log file (rotation 10MB, retention 10 days)
    logger.add(
        log_path,
        rotation="10 MB",
        retention="10 days",
        level=log_level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{function}:{line} | {message} | {extra}",  # noqa: E501
        serialize=True,
    )


async def run_driver(args: list[str]) -> int:
    """Build the DigitalOcean plugin and run one flex command."""
    client = DigitalOceanClient()
    mounter = DeviceMounter() if settings.manage_mounts else None
    plugin = DigitalOceanVolumePlugin(client, mounter=mounter)
    try:
        return await FlexDriver(plugin, sys.stdout).run(args)
    finally:
        await client.close()


cli = typer.Typer(add_completion=False)


@cli.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(
        settings.log_level, help="Log level (DEBUG, INFO, WARNING, ERROR)"
    ),
    log_path: str = typer.Option(settings.log_path, help="Path to the driver log file"),
    log_to_stderr: bool = typer.Option(settings.log_to_stderr, help="Also log to stderr"),
) -> None:
    """Run one flex volume command: <verb> [arguments...]."""
    try:
        configure_logging(log_level, log_path, log_to_stderr)
    except OSError as e:
        logger.remove()
        print(
            DriverStatus.failure(f"cannot open driver log file {log_path!r}: {e}").to_json(),
            flush=True,
        )
        raise typer.Exit(1) from e

    args = [sys.argv[0], *ctx.args]
    logger.debug(f"Invoked with {args[1:]}")

    exit_code = uvloop.run(run_driver(args))
    raise typer.Exit(exit_code)


if __name__ == "__main__":
    cli()
