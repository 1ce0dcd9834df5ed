"""
Remaining-files record: the list of paths a later run should still copy.
"""

import contextlib
import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from .models import RECORD_ENCODING, RECORD_ERRORS, RECORD_SUFFIX


def record_name(source: Path) -> str:
    """
    Record file name for a source directory.

    Parameters
    ----------
    source : Path
        Source directory given on the command line

    Returns
    -------
    str
        ``<basename(source)>.remainingfiles``; relative sources such as ``.``
        are resolved first, and the filesystem root is named ``root``
    """
    return (Path(source).resolve().name or "root") + RECORD_SUFFIX


class ResumeStore:
    """
    Writes and removes the remaining-files record of one source.

    The record is written to a ``.tmp`` sibling first and renamed into place,
    so a reader never sees half a list under the final name. Names that are
    not valid UTF-8 keep their original bytes through ``surrogateescape``.

    Parameters
    ----------
    source : Path
        Source directory (names the record)
    directory : Path | None, default=None
        Where the record lives; the current working directory when None
    """

    def __init__(self, source: Path, directory: Path | None = None):
        directory = Path(directory) if directory is not None else Path.cwd()
        self.path = directory / record_name(source)
        self._temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        self._written = False

    @property
    def written(self) -> bool:
        """True once this store has started writing a record."""
        return self._written

    async def save(self, remaining: list[str]) -> Path | None:
        """
        Persist ``remaining`` in order, one path per line.

        Parameters
        ----------
        remaining : list[str]
            Relative paths not yet copied

        Returns
        -------
        Path | None
            Record path, or None when there was nothing to save
        """
        if not remaining:
            logging.info("No remaining files to save")
            return None

        self._written = True
        try:
            async with aiofiles.open(
                self._temp_path, "w", encoding=RECORD_ENCODING, errors=RECORD_ERRORS
            ) as f:
                for path in remaining:
                    await f.write(path + "\n")
        except BaseException:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(self._temp_path)
            raise
        await aiofiles.os.replace(self._temp_path, self.path)

        logging.info(f"Remaining paths saved to: {self.path} ({len(remaining)} files)")
        return self.path

    def discard(self) -> bool:
        """
        Delete the record (and temp file) if this store wrote one.

        Synchronous so it can run straight from a signal handler.

        Returns
        -------
        bool
            True if anything was written by this store
        """
        if not self._written:
            return False
        for path in (self._temp_path, self.path):
            with contextlib.suppress(FileNotFoundError):
                path.unlink()
        return True
