#!/usr/bin/env python3
"""
spancopy - Copy a directory tree across several destination disks.

Copies SOURCE into DESTINATION while the source tree is still being scanned.
When the destination fills up, asks for another one and carries on with the
same file. Ctrl+C finishes the scan and saves every file not yet copied to
``<source name>.remainingfiles``, which a later run picks up with ``--resume``.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .engine import CopyEngine
from .models import EXIT_FAILURE, HASH_ALGORITHMS, CopyConfig, RunResult, RunStatus
from .scanner import ListSource, WalkSource
from .terminal import ProgressLine, format_bytes, format_duration, prompt_for_destination


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Parameters
    ----------
    verbose : bool
        Enable verbose logging
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        prog="spancopy",
        description="Copy a directory tree across one or more destination disks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s /media/archive "/media/Disk 1"
  %(prog)s /media/archive "/media/Disk 2" --resume archive.remainingfiles
  %(prog)s --verify -t md5 /data/photos /backup/photos
        """,
    )

    parser.add_argument("source", type=Path, help="Source directory")
    parser.add_argument("destination", type=Path, help="Destination directory")

    parser.add_argument(
        "-r",
        "--resume",
        type=Path,
        metavar="FILE",
        help="Text file containing relative paths to copy instead of scanning SOURCE",
    )

    parser.add_argument(
        "-b",
        "--buffer-size",
        type=int,
        default=1024 * 1024,
        help="Buffer size in bytes (default: 1MB)",
    )

    parser.add_argument(
        "--verify",
        action="store_true",
        help="Hash each file while copying and check the written copy",
    )

    parser.add_argument(
        "-t",
        "--hash-algorithm",
        type=str,
        default="xxh64be",
        choices=HASH_ALGORITHMS,
        help="Hash algorithm for --verify (default: xxh64be)",
    )

    parser.add_argument(
        "-q",
        "--no-progress",
        action="store_true",
        help="Do not draw the progress line",
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )

    return parser.parse_args(argv)


async def run_copy(
    args: argparse.Namespace, config: CopyConfig, progress: ProgressLine | None
) -> RunResult:
    """
    Build the engine for ``args`` and run it with signal handling installed.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments
    config : CopyConfig
        Copy configuration
    progress : ProgressLine | None
        Progress renderer, or None to stay quiet

    Returns
    -------
    RunResult
        Outcome of the run
    """
    if args.resume is not None:
        path_source = ListSource(args.resume)
    else:
        path_source = WalkSource(args.source)

    engine = CopyEngine(
        source=args.source,
        destination=args.destination,
        path_source=path_source,
        config=config,
        prompt=prompt_for_destination,
        progress=progress,
    )

    engine.install_signal_handlers()
    try:
        return await engine.run()
    finally:
        engine.remove_signal_handlers()
        if progress:
            progress.finish()


def show_summary(result: RunResult, source: Path) -> None:
    """
    Log the final summary of a run.

    Parameters
    ----------
    result : RunResult
        Outcome of the run
    source : Path
        Source directory, for the resume hint
    """
    stats = result.global_stats
    logging.info(
        f"{stats.files} files, {format_bytes(stats.bytes)} copied in "
        f"{format_duration(result.duration)} ({result.speed_mb_sec:.2f} MB/s)"
    )
    if result.skipped:
        logging.warning(f"{len(result.skipped)} files skipped (source unavailable)")

    if result.record_path:
        logging.info(
            f"Resume with: spancopy {source} <destination> --resume {result.record_path}"
        )

    if result.status is RunStatus.COMPLETED:
        logging.info("All files copied successfully")
    elif result.status is RunStatus.INTERRUPTED:
        logging.info("Copy interrupted by user")
    elif result.status is RunStatus.FAILED:
        logging.error(f"Copy failed: {result.error}")


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Returns
    -------
    int
        Exit code: 0 for success or a saved interrupt, 1 for any failure
    """
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    try:
        config = CopyConfig.from_args(args)

        if not args.source.is_dir():
            raise NotADirectoryError(f"Source is not a directory: {args.source}")
        if args.resume is not None and not args.resume.is_file():
            raise FileNotFoundError(f"Resume list not found: {args.resume}")

        progress = None if args.no_progress else ProgressLine()
        result = asyncio.run(run_copy(args, config, progress))

        show_summary(result, args.source)
        return result.exit_code

    except FileNotFoundError as e:
        logging.error(f"File not found: {e}")
        return EXIT_FAILURE
    except NotADirectoryError as e:
        logging.error(f"{e}")
        return EXIT_FAILURE
    except ValueError as e:
        logging.error(f"Invalid parameter: {e}")
        return EXIT_FAILURE
    except OSError as e:
        logging.error(f"I/O error: {e}")
        return EXIT_FAILURE
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
