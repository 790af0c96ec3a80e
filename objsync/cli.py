"""CLI interface for objsync."""

import logging
import signal
from pathlib import Path
from typing import Any, Optional

import click

from .api import StoreClient
from .config import config
from .exceptions import StoreAPIError, StoreConfigError
from .output import OutputFormatter
from .sync import CompareStrategy, SyncEngine, SyncOptions

logger = logging.getLogger(__name__)


def _positive_int(ctx: Any, param: Any, value: Optional[int]) -> Optional[int]:
    """Click callback rejecting zero and negative numbers."""
    if value is not None and value < 1:
        raise click.BadParameter("must be a positive integer")
    return value


def print_queue_status(engine: SyncEngine, out: OutputFormatter) -> None:
    """Print the not-yet-started items of every non-empty queue."""
    for name, paths in engine.describe_queues().items():
        if not paths:
            continue
        out.warning(f"{len(paths)} {name} tasks waiting to complete")
        for path in paths:
            out.warning(path)


def install_status_handler(engine: SyncEngine, out: OutputFormatter) -> Any:
    """Print queue status on SIGUSR1.

    Returns:
        The previous handler, or None if the signal is unavailable
    """
    if not hasattr(signal, "SIGUSR1"):
        return None

    def _handler(signum: int, frame: Any) -> None:
        print_queue_status(engine, out)

    try:
        return signal.signal(signal.SIGUSR1, _handler)
    except (OSError, ValueError):
        # signal handlers can only be set in main thread
        logger.debug("Could not set SIGUSR1 handler (not main thread)")
        return None


@click.group()
@click.option("--url", envvar="OBJSYNC_URL", help="Object store base URL")
@click.option("--token", envvar="OBJSYNC_TOKEN", help="Object store bearer token")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output the final report as JSON")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="objsync")
@click.pass_context
def main(
    ctx: Any,
    url: Optional[str],
    token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """objsync - Sync a local directory to a remote object store."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["token"] = token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("objsync").setLevel(logging.DEBUG)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument(
    "localdir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.argument("remotedir", type=str)
@click.option(
    "--concurrency",
    "-c",
    type=int,
    default=None,
    callback=_positive_int,
    help="Max number of parallel HEAD's, PUT's or DELETE's (default: 30)",
)
@click.option(
    "--delete",
    "-d",
    is_flag=True,
    help="Delete files on the remote end not found locally",
)
@click.option(
    "--just-delete",
    "-j",
    is_flag=True,
    help="Don't send local files to the remote end, just delete hanging remote files",
)
@click.option(
    "--md5",
    "-m",
    is_flag=True,
    help="Compare MD5 digests instead of file sizes (slower, but more accurate)",
)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    help="Do everything except PUT or DELETE any files",
)
@click.pass_context
def sync(
    ctx: Any,
    localdir: Path,
    remotedir: str,
    concurrency: Optional[int],
    delete: bool,
    just_delete: bool,
    md5: bool,
    dry_run: bool,
) -> None:
    """Synchronize all files found inside LOCALDIR to REMOTEDIR.

    Files missing remotely, or whose size (or MD5 with --md5) differs, are
    uploaded. With --delete, remote objects without a local file are
    removed afterwards.

    Send SIGUSR1 to the process to list requests still waiting in each
    queue.

    Examples:
        # Sync the current directory
        objsync sync ./ /me/stor/foo

        # Same, but only HEAD the data, don't PUT
        objsync sync --dry-run ./ /me/stor/foo

        # Mirror exactly, removing remote leftovers
        objsync sync -d ./photos /me/stor/photos
    """
    out: OutputFormatter = ctx.obj["out"]
    if not ctx.obj.get("url") and not config.is_configured():
        out.error("Object store not configured.")
        out.info("Set OBJSYNC_URL or pass --url")
        ctx.exit(1)

    options = SyncOptions(
        local_root=localdir,
        remote_root=remotedir,
        concurrency=concurrency or config.concurrency,
        strategy=CompareStrategy.HASH if md5 else CompareStrategy.SIZE,
        delete=delete,
        delete_only=just_delete,
        dry_run=dry_run,
    )

    try:
        client = StoreClient(
            url=ctx.obj.get("url"),
            token=ctx.obj.get("token"),
            max_connections=max(options.concurrency, 10),
        )
    except StoreConfigError as e:
        out.error(f"Configuration error: {e}")
        ctx.exit(1)
        return  # Unreachable, but helps type checker

    engine = SyncEngine(client, out)
    previous_handler = install_status_handler(engine, out)
    try:
        report = engine.run(options)
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    except ValueError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    except StoreAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)
        return
    finally:
        client.close()
        if previous_handler is not None:
            signal.signal(signal.SIGUSR1, previous_handler)

    if out.json_output:
        out.output_json(report.to_dict())

    ctx.exit(report.exit_code)


if __name__ == "__main__":
    main()
