"""
Copy engine: runs the scanner and the copy loop and owns their shared state.

The scanner appends discovered paths on a background task while the copy loop
copies them one at a time, in discovery order, from a cursor. Two protocols
sit on top of that loop:

- interrupt: the first request stops new copies, waits for the scan to finish
  and saves every path from the cursor on; a second request inside the grace
  window deletes whatever this run saved and terminates the process.
- disk full: the cursor stays put and the remaining list is saved while the
  user is asked for a new destination; local statistics restart from zero and
  the same file is tried again.

The engine is UI-agnostic: it logs, and hands prompts and progress to the
callables it was given.
"""

import asyncio
import contextlib
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path

from .copier import FileCopier
from .errors import PromptAborted, SourceUnavailableError, is_out_of_space
from .models import (
    EXIT_FAILURE,
    CopyConfig,
    ProgressSnapshot,
    RunResult,
    RunStatus,
    ScanState,
    TransferStats,
)
from .resume import ResumeStore
from .scanner import PathSequence, PathSource, Scanner, WalkSource


def _terminate(code: int) -> None:
    """Exit immediately, skipping every pending cleanup."""
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(code)


def _settle(future: asyncio.Future, value, error: BaseException | None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(value)


def _join(root: Path, relative: str) -> Path:
    # Listed paths are always relative to the root, even with a leading slash
    return root / relative.lstrip("/" + os.sep)


class CopyEngine:
    """
    Copies a source tree to a destination, resumable and interruptible.

    Parameters
    ----------
    source : Path
        Source directory; listed paths are relative to it
    destination : Path
        Initial destination directory
    path_source : PathSource | None, default=None
        Where paths come from; walks ``source`` when None
    config : CopyConfig | None, default=None
        Buffer size, grace window, progress cadence and verification
    prompt : Callable[[str], str] | None, default=None
        Asked for a new destination when the current one is full, given the
        current destination as default. Without it a full disk is fatal.
    progress : Callable[[ProgressSnapshot], None] | None, default=None
        Receives throttled progress snapshots
    store : ResumeStore | None, default=None
        Remaining-files record; named after ``source`` in the working
        directory when None
    terminate : Callable[[int], None] | None, default=None
        Called with the exit code on a forced abort; exits the process
        immediately when None
    """

    def __init__(
        self,
        source: Path,
        destination: Path,
        path_source: PathSource | None = None,
        config: CopyConfig | None = None,
        prompt: Callable[[str], str] | None = None,
        progress: Callable[[ProgressSnapshot], None] | None = None,
        store: ResumeStore | None = None,
        terminate: Callable[[int], None] | None = None,
    ):
        self.source = Path(source)
        self.destination = Path(destination)
        self.config = config or CopyConfig()
        self.path_source = path_source or WalkSource(self.source)
        self.store = store or ResumeStore(self.source)
        self._prompt = prompt
        self._progress = progress
        self._terminate = terminate or _terminate

        self.global_stats = TransferStats()
        self.local_stats = TransferStats()
        self._paths = PathSequence()
        self._cursor = 0
        self._skipped: list[str] = []
        self._current_path: str | None = None
        self._current_bytes = 0

        self._cancel_event = asyncio.Event()
        self._cancel_requested_at: float | None = None
        self._aborted = False
        self._wake_task: asyncio.Task | None = None
        self._signals: list[tuple[int, bool]] = []

        self._start_time = time.monotonic()
        self._last_progress = 0.0

        self._copier = FileCopier(
            buffer_size=self.config.buffer_size,
            should_stop=self._cancel_event.is_set,
            on_progress=self._on_chunk,
            verify=self.config.verify,
            hash_algorithm=self.config.hash_algorithm,
        )

    @property
    def cursor(self) -> int:
        """Index of the next path to copy."""
        return self._cursor

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    async def run(self) -> RunResult:
        """
        Scan and copy until done, interrupted or failed.

        Returns
        -------
        RunResult
            Outcome, statistics and the record written (if any)
        """
        self._start_time = time.monotonic()
        logging.info(f"Copying {self.source} to {self.destination}")

        scanner = Scanner(self.path_source, self._paths)
        scan_task = asyncio.create_task(scanner.run(), name="scanner")
        try:
            return await self._copy_loop()
        finally:
            if not scan_task.done():
                scan_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await scan_task

    # ------------------------------------------------------------------------
    # Interrupt handling
    # ------------------------------------------------------------------------

    def request_cancel(self) -> None:
        """
        Handle one interrupt request (Ctrl+C or SIGTERM).

        The first request starts a graceful stop. Another request within the
        grace window of the previous one aborts without saving; a later one
        only restarts the window.
        """
        now = time.monotonic()
        previous = self._cancel_requested_at
        self._cancel_requested_at = now
        window = self.config.grace_window

        if previous is not None and now - previous <= window:
            self._hard_abort()
            return

        if previous is None:
            logging.warning("Interrupt received. Finishing source directory tree scan...")
            logging.warning(
                f"Press Ctrl+C again within {window:g}s to cancel and delete "
                "incomplete progress file"
            )
            self._cancel_event.set()
            self._wake_waiters()
        else:
            logging.warning(
                f"Still saving progress. Press Ctrl+C twice within {window:g}s to "
                "cancel without saving"
            )

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to :meth:`request_cancel`."""
        loop = asyncio.get_running_loop()

        def handler(signum, frame):
            loop.call_soon_threadsafe(self.request_cancel)

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_cancel)
                self._signals.append((signum, True))
            except NotImplementedError:
                signal.signal(signum, handler)
                self._signals.append((signum, False))

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum, on_loop in self._signals:
            if on_loop:
                loop.remove_signal_handler(signum)
            else:
                signal.signal(signum, signal.SIG_DFL)
        self._signals.clear()

    def _wake_waiters(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._wake_task = loop.create_task(self._paths.wake())

    def _hard_abort(self) -> None:
        self._aborted = True
        self._cancel_event.set()
        if self.store.discard():
            logging.error("Cancelled. Progress file deleted.")
        else:
            logging.error("Cancelled. No progress file written.")
        self._terminate(EXIT_FAILURE)

    # ------------------------------------------------------------------------
    # Copy loop
    # ------------------------------------------------------------------------

    async def _copy_loop(self) -> RunResult:
        while True:
            if self._cancel_event.is_set():
                return await self._save_and_finish(RunStatus.INTERRUPTED)

            relative = await self._paths.wait_for_path(self._cursor, self._cancel_event)
            if relative is None:
                if self._cancel_event.is_set():
                    continue
                return self._finish_scan()

            try:
                await self._copy_one(relative)
            except SourceUnavailableError as e:
                logging.warning(f"Skipping {relative}: {e.reason}")
                self._skipped.append(relative)
                self._cursor += 1
            except InterruptedError as e:
                if not self._cancel_event.is_set():
                    return await self._fail(relative, e)
                logging.info(f"Stopped copying {relative}; it stays in the remaining list")
            except OSError as e:
                if not is_out_of_space(e):
                    return await self._fail(relative, e)
                result = await self._change_destination(relative, e)
                if result is not None:
                    return result
            except Exception as e:
                return await self._fail(relative, e)

    async def _copy_one(self, relative: str) -> None:
        source = _join(self.source, relative)
        destination = _join(self.destination, relative)

        logging.debug(f"copying {relative}")
        self._current_path = relative
        self._current_bytes = 0
        try:
            size = await self._copier.copy(source, destination)
        finally:
            self._current_path = None
            self._current_bytes = 0

        self.global_stats.add(size)
        self.local_stats.add(size)
        self._cursor += 1
        self._report_progress()

    def _finish_scan(self) -> RunResult:
        # A list saved at a disk-full prompt is stale once the loop ends
        if self.store.discard():
            logging.info(f"Removed stale progress file {self.store.path}")
        if self._paths.state is ScanState.FAILED:
            error = self._paths.error
            logging.error(f"Source scan failed: {error}")
            return self._result(RunStatus.FAILED, error=error)
        return self._result(RunStatus.COMPLETED)

    async def _fail(self, relative: str, error: BaseException) -> RunResult:
        logging.error(f"Failed to copy {relative}: {error}")
        return await self._save_and_finish(RunStatus.FAILED, error)

    async def _save_and_finish(
        self, status: RunStatus, error: BaseException | None = None
    ) -> RunResult:
        """
        Wait for the scan to end, then save every path from the cursor on.

        The path at the cursor is the one that was in flight (or failed), so
        it leads the saved list.
        """
        if not self._paths.finished:
            logging.info("Waiting for the source scan to finish...")
        scan_state = await self._paths.wait_finished()
        if self._aborted:
            return self._result(RunStatus.ABORTED)

        if scan_state is ScanState.FAILED:
            logging.warning(
                f"Source scan failed ({self._paths.error}); the saved list only "
                "holds files discovered before the error"
            )
            if error is None:
                status, error = RunStatus.FAILED, self._paths.error

        remaining = self._paths.remaining_from(self._cursor)
        try:
            record_path = await self.store.save(remaining)
        except OSError:
            if self._aborted:
                return self._result(RunStatus.ABORTED)
            raise
        if self._aborted:
            self.store.discard()
            return self._result(RunStatus.ABORTED)

        return self._result(status, record_path=record_path, remaining=remaining, error=error)

    # ------------------------------------------------------------------------
    # Disk full
    # ------------------------------------------------------------------------

    async def _change_destination(self, relative: str, error: OSError) -> RunResult | None:
        """
        Ask for a new destination after ``relative`` hit a full disk.

        Returns
        -------
        RunResult | None
            None to retry the same cursor (new destination or pending
            interrupt), or the final result when the run cannot go on
        """
        logging.warning(f"Disk full: {relative} ({error.strerror or error})")
        logging.info(
            f"{self.local_stats.files} files ({self.local_stats.bytes:,} bytes) "
            f"copied to {self.destination}"
        )
        if self._prompt is None:
            return await self._fail(relative, error)

        # The remaining list is on disk for as long as the prompt is open
        if not self._paths.finished:
            logging.info("Waiting for the source scan to finish...")
        await self._paths.wait_finished()
        if self._aborted:
            return self._result(RunStatus.ABORTED)
        try:
            await self.store.save(self._paths.remaining_from(self._cursor))
        except OSError as e:
            logging.warning(f"Could not save remaining paths before the prompt: {e}")
        if self._aborted:
            self.store.discard()
            return self._result(RunStatus.ABORTED)
        if self._cancel_event.is_set():
            return None

        try:
            answer = await self._ask_for_destination()
            if answer is not None and not answer.strip():
                raise PromptAborted("No destination given")
        except Exception as e:
            logging.error(f"Destination prompt aborted: {e}")
            return await self._save_and_finish(RunStatus.FAILED, e)

        if answer is None:
            return None

        self.destination = Path(answer.strip()).expanduser()
        self.local_stats.reset()
        logging.info(f"Continuing with {relative} on {self.destination}")
        return None

    async def _ask_for_destination(self) -> str | None:
        """
        Run the prompt on a daemon thread so the scanner keeps going.

        Returns None if an interrupt arrives before the answer.
        """
        loop = asyncio.get_running_loop()
        answer = loop.create_future()
        default = str(self.destination)

        def ask():
            try:
                value, failure = self._prompt(default), None
            except Exception as e:
                value, failure = None, e
            # Loop may already be closed if the run ended meanwhile
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(_settle, answer, value, failure)

        threading.Thread(target=ask, name="destination-prompt", daemon=True).start()

        cancelled = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({answer, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()

        if not answer.done():
            logging.warning("Destination prompt abandoned")
            return None
        return answer.result()

    # ------------------------------------------------------------------------
    # Progress and results
    # ------------------------------------------------------------------------

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            global_stats=self.global_stats.copy(),
            local_stats=self.local_stats.copy(),
            elapsed=time.monotonic() - self._start_time,
            current_path=self._current_path,
            current_bytes=self._current_bytes,
        )

    def _on_chunk(self, copied: int) -> None:
        self._current_bytes = copied
        self._report_progress()

    def _report_progress(self, force: bool = False) -> None:
        if self._progress is None:
            return
        now = time.monotonic()
        if not force and now - self._last_progress < self.config.progress_interval:
            return
        self._last_progress = now
        self._progress(self.snapshot())

    def _result(
        self,
        status: RunStatus,
        record_path: Path | None = None,
        remaining: list[str] | None = None,
        error: BaseException | None = None,
    ) -> RunResult:
        self._report_progress(force=True)
        return RunResult(
            status=status,
            global_stats=self.global_stats.copy(),
            local_stats=self.local_stats.copy(),
            destination=self.destination,
            record_path=record_path,
            remaining=remaining or [],
            skipped=list(self._skipped),
            error=error,
            duration=time.monotonic() - self._start_time,
        )
