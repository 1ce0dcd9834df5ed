"""
Single-file copy with metadata preservation.

The copier never decides what happens after a failure: it removes whatever it
partially wrote and re-raises the original exception, so the engine can tell a
full disk (``OSError`` with ENOSPC) from any other error.
"""

import contextlib
import logging
import os
import stat
from collections.abc import Callable
from pathlib import Path

import aiofiles
import aiofiles.os

from .errors import SourceUnavailableError, VerificationError
from .hashing import HashCalculator
from .models import BUFFER_SIZE


class FileCopier:
    """
    Copies one source entry to one destination path.

    Parameters
    ----------
    buffer_size : int, default=BUFFER_SIZE
        Chunk size for streaming file contents
    should_stop : Callable[[], bool] | None, default=None
        Polled before every chunk; returning True interrupts the copy
    on_progress : Callable[[int], None] | None, default=None
        Called after every chunk with the bytes written so far
    verify : bool, default=False
        Hash the source in-flight and compare with a re-read of the destination
    hash_algorithm : str, default="xxh64be"
        Algorithm used when ``verify`` is enabled
    """

    def __init__(
        self,
        buffer_size: int = BUFFER_SIZE,
        should_stop: Callable[[], bool] | None = None,
        on_progress: Callable[[int], None] | None = None,
        verify: bool = False,
        hash_algorithm: str = "xxh64be",
    ):
        self.buffer_size = buffer_size
        self.should_stop = should_stop or (lambda: False)
        self.on_progress = on_progress
        self.verify = verify
        self.hash_algorithm = hash_algorithm

    async def copy(self, source: Path, destination: Path) -> int:
        """
        Copy ``source`` to ``destination``.

        Parameters
        ----------
        source : Path
            Source file or symlink
        destination : Path
            Destination path; missing parents are created

        Returns
        -------
        int
            Number of content bytes copied (0 for symlinks)

        Raises
        ------
        SourceUnavailableError
            Source cannot be stat'ed or is not a file or symlink
        InterruptedError
            ``should_stop`` returned True mid-copy
        VerificationError
            Destination content differs from what was read
        OSError
            Any other I/O error, including out-of-space
        """
        try:
            source_stat = await aiofiles.os.stat(source, follow_symlinks=False)
        except OSError as e:
            raise SourceUnavailableError(source, e.strerror or str(e)) from e

        await aiofiles.os.makedirs(destination.parent, mode=0o755, exist_ok=True)

        if stat.S_ISLNK(source_stat.st_mode):
            await self._copy_symlink(source, destination, source_stat)
            return 0
        if not stat.S_ISREG(source_stat.st_mode):
            raise SourceUnavailableError(source, "not a regular file")

        # Never write through a symlink left by an earlier run
        if os.path.islink(destination):
            await aiofiles.os.remove(destination)

        copied = await self._stream(source, destination)
        self._copy_metadata(destination, source_stat)
        return copied

    # ------------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------------

    async def _stream(self, source: Path, destination: Path) -> int:
        hasher = HashCalculator(self.hash_algorithm) if self.verify else None
        copied = 0

        async with aiofiles.open(source, "rb") as f_source:
            try:
                async with aiofiles.open(destination, "wb") as f_dest:
                    while True:
                        if self.should_stop():
                            raise InterruptedError(f"Copy of {source} interrupted")
                        chunk = await f_source.read(self.buffer_size)
                        if not chunk:
                            break
                        await f_dest.write(chunk)
                        if hasher:
                            hasher.update(chunk)
                        copied += len(chunk)
                        if self.on_progress:
                            self.on_progress(copied)

                if hasher:
                    expected = hasher.hexdigest()
                    actual = await HashCalculator.hash_file(
                        destination, self.hash_algorithm, self.buffer_size
                    )
                    if actual != expected:
                        raise VerificationError(destination, expected, actual)
            except BaseException:
                await self._discard(destination)
                raise

        return copied

    async def _discard(self, path: Path) -> None:
        with contextlib.suppress(OSError):
            await aiofiles.os.remove(path)
            logging.debug(f"Removed partial file {path}")

    async def _copy_symlink(
        self, source: Path, destination: Path, source_stat: os.stat_result
    ) -> None:
        target = await aiofiles.os.readlink(source)
        if os.path.lexists(destination):
            await aiofiles.os.remove(destination)
        await aiofiles.os.symlink(target, destination)

        if hasattr(os, "lchown"):
            try:
                os.lchown(destination, source_stat.st_uid, source_stat.st_gid)
            except OSError as e:
                logging.warning(f"Could not set owner of link {destination}: {e}")
        if os.utime in os.supports_follow_symlinks:
            with contextlib.suppress(OSError):
                os.utime(
                    destination,
                    ns=(source_stat.st_atime_ns, source_stat.st_mtime_ns),
                    follow_symlinks=False,
                )

    def _copy_metadata(self, destination: Path, source_stat: os.stat_result) -> None:
        """
        Apply source times and ownership to a finished copy.

        Failures only log a warning; the copy itself already succeeded.
        """
        try:
            os.utime(destination, ns=(source_stat.st_atime_ns, source_stat.st_mtime_ns))
        except OSError as e:
            logging.warning(f"Could not set times on {destination}: {e}")

        if hasattr(os, "chown"):
            try:
                os.chown(destination, source_stat.st_uid, source_stat.st_gid)
            except OSError as e:
                logging.warning(f"Could not set owner of {destination}: {e}")
