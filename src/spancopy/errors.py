"""
Exceptions raised by spancopy.

Out-of-space conditions are deliberately left as plain ``OSError`` and are
recognised by :func:`is_out_of_space`, which looks at the error code rather
than at the (locale dependent) message text.
"""

import errno

# Windows ERROR_HANDLE_DISK_FULL and ERROR_DISK_FULL
_WINDOWS_DISK_FULL = {39, 112}

_NO_SPACE_ERRNOS = {errno.ENOSPC}
if hasattr(errno, "EDQUOT"):
    _NO_SPACE_ERRNOS.add(errno.EDQUOT)


class SpanCopyError(Exception):
    """Base class for spancopy errors."""


class SourceUnavailableError(SpanCopyError):
    """
    Source entry cannot be copied (vanished since the scan, or not a file).

    The copy loop treats this as skip-with-warning.
    """

    def __init__(self, path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class VerificationError(SpanCopyError):
    """Destination hash does not match the hash computed while copying."""

    def __init__(self, path, expected: str, actual: str):
        super().__init__(f"Hash mismatch for {path}: {actual} != {expected}")
        self.path = path
        self.expected = expected
        self.actual = actual


class PromptAborted(SpanCopyError):
    """The user closed the destination prompt instead of answering it."""


def is_out_of_space(error: BaseException) -> bool:
    """
    Check whether an exception reports a full destination volume.

    Parameters
    ----------
    error : BaseException
        Exception raised by a filesystem operation

    Returns
    -------
    bool
        True for ENOSPC/EDQUOT (or the Windows disk-full codes)
    """
    if not isinstance(error, OSError):
        return False
    if error.errno in _NO_SPACE_ERRNOS:
        return True
    return getattr(error, "winerror", None) in _WINDOWS_DISK_FULL
