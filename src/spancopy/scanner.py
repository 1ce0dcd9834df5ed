"""
Path discovery: where relative paths come from and how they reach the copier.

A :class:`PathSource` produces relative paths lazily, either by walking the
source tree (:class:`WalkSource`) or by reading a saved remaining-files record
(:class:`ListSource`). A :class:`Scanner` drains a source on a background task
into a :class:`PathSequence`, which the copy loop reads by index.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path

import aiofiles

from .models import RECORD_ENCODING, RECORD_ERRORS, ScanState


# ============================================================================
# Path Sources
# ============================================================================


class PathSource:
    """
    Lazy, finite, single-use sequence of relative paths.

    Subclasses implement :meth:`paths`. A consumed source cannot be restarted;
    build a new one for another run.
    """

    def paths(self) -> AsyncIterator[str]:
        raise NotImplementedError

    def describe(self) -> str:
        return self.__class__.__name__


def _list_directory(directory: str) -> list[tuple[str, bool]]:
    """Return ``(name, is_dir)`` pairs of a directory, sorted by name."""
    with os.scandir(directory) as it:
        entries = [(entry.name, entry.is_dir(follow_symlinks=False)) for entry in it]
    entries.sort()
    return entries


class WalkSource(PathSource):
    """
    Recursive walk of a source tree.

    Yields every non-directory entry (regular files, symlinks, special files)
    relative to ``root``. Directories are descended into but never yielded, so
    an empty directory produces nothing. Symlinked directories are yielded as
    entries, not followed.

    Parameters
    ----------
    root : Path
        Source directory to walk
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    async def paths(self) -> AsyncIterator[str]:
        """
        Walk the tree depth first in lexical name order.

        Yields
        ------
        str
            Path relative to ``root``

        Raises
        ------
        OSError
            First directory that cannot be listed (ends the walk)
        """
        # Stack of (absolute dir, relative prefix, pending entries)
        root = str(self.root)
        entries = await asyncio.to_thread(_list_directory, root)
        stack = [(root, "", iter(entries))]

        while stack:
            directory, prefix, pending = stack[-1]
            entry = next(pending, None)
            if entry is None:
                stack.pop()
                continue

            name, is_dir = entry
            relative = os.path.join(prefix, name) if prefix else name
            if is_dir:
                child = os.path.join(directory, name)
                child_entries = await asyncio.to_thread(_list_directory, child)
                stack.append((child, relative, iter(child_entries)))
            else:
                yield relative

    def describe(self) -> str:
        return f"walking {self.root}"


class ListSource(PathSource):
    """
    Relative paths read from a text file, one per line.

    Trailing whitespace is stripped and blank lines are ignored; everything
    else is taken verbatim.

    Parameters
    ----------
    path : Path
        Remaining-files record (or any compatible list)
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    async def paths(self) -> AsyncIterator[str]:
        async with aiofiles.open(
            self.path, "r", encoding=RECORD_ENCODING, errors=RECORD_ERRORS
        ) as f:
            async for line in f:
                line = line.rstrip()
                if line:
                    yield line

    def describe(self) -> str:
        return f"reading {self.path}"


# ============================================================================
# Shared Sequence
# ============================================================================


class PathSequence:
    """
    Append-only list of discovered paths shared by the scanner and the copier.

    The scanner is the only writer; the copy loop reads by increasing index.
    Length and scan state are guarded by a single condition, notified on every
    append, on scan completion and on :meth:`wake`.
    """

    def __init__(self):
        self._items: list[str] = []
        self._state = ScanState.RUNNING
        self._error: BaseException | None = None
        self._cond = asyncio.Condition()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def finished(self) -> bool:
        return self._state is not ScanState.RUNNING

    async def append(self, path: str) -> None:
        async with self._cond:
            self._items.append(path)
            self._cond.notify_all()

    async def finish(self, error: BaseException | None = None) -> None:
        """
        Record the terminal scan state (only the first call has an effect).

        Parameters
        ----------
        error : BaseException | None, default=None
            Error that ended the scan, None for normal exhaustion
        """
        async with self._cond:
            if self._state is not ScanState.RUNNING:
                return
            self._state = ScanState.FAILED if error else ScanState.DONE
            self._error = error
            self._cond.notify_all()

    async def wake(self) -> None:
        """Wake all waiters so they re-check their stop conditions."""
        async with self._cond:
            self._cond.notify_all()

    async def wait_for_path(self, index: int, stop: asyncio.Event) -> str | None:
        """
        Wait until ``index`` is available, the scan finishes or ``stop`` is set.

        Parameters
        ----------
        index : int
            Index the copy loop wants next
        stop : asyncio.Event
            Cancellation flag; must be followed by :meth:`wake` when set

        Returns
        -------
        str | None
            The path at ``index``, or None when stopped or nothing is left
        """
        async with self._cond:
            await self._cond.wait_for(
                lambda: index < len(self._items) or self.finished or stop.is_set()
            )
            if stop.is_set() or index >= len(self._items):
                return None
            return self._items[index]

    async def wait_finished(self) -> ScanState:
        async with self._cond:
            await self._cond.wait_for(lambda: self.finished)
            return self._state

    def remaining_from(self, index: int) -> list[str]:
        """Copy of every path from ``index`` to the current end."""
        return list(self._items[index:])


# ============================================================================
# Scanner
# ============================================================================


class Scanner:
    """
    Drains a :class:`PathSource` into a :class:`PathSequence`.

    Parameters
    ----------
    source : PathSource
        Where paths come from
    paths : PathSequence
        Shared sequence to append to
    """

    def __init__(self, source: PathSource, paths: PathSequence):
        self.source = source
        self.paths = paths

    async def run(self) -> None:
        """
        Scan to completion, then set the terminal state exactly once.

        Errors are not raised; they become the ``FAILED`` state of the
        sequence and are reported by the engine.
        """
        logging.debug(f"Scan started ({self.source.describe()})")
        try:
            async for path in self.source.paths():
                await self.paths.append(path)
        except asyncio.CancelledError:
            await self.paths.finish(InterruptedError("Scan cancelled"))
            raise
        except Exception as e:
            logging.debug(f"Scan failed after {len(self.paths)} paths: {e}")
            await self.paths.finish(e)
        else:
            logging.debug(f"Scan finished: {len(self.paths)} paths")
            await self.paths.finish()
