"""
spancopy: Copy a directory tree across several destination disks.

This package copies a source tree while it is still being scanned, asks for a
new destination when the current one runs out of space, and saves the files it
has not copied yet when interrupted so a later run can resume them.
"""

from .engine import CopyEngine
from .errors import (
    PromptAborted,
    SourceUnavailableError,
    SpanCopyError,
    VerificationError,
    is_out_of_space,
)
from .main import main
from .models import CopyConfig, RunResult, RunStatus, ScanState, TransferStats
from .resume import ResumeStore
from .scanner import ListSource, PathSequence, PathSource, Scanner, WalkSource

__version__ = "1.0.0"
__description__ = "Copy a directory tree across several destination disks"

__all__ = [
    "CopyConfig",
    "CopyEngine",
    "ListSource",
    "PathSequence",
    "PathSource",
    "PromptAborted",
    "ResumeStore",
    "RunResult",
    "RunStatus",
    "ScanState",
    "Scanner",
    "SourceUnavailableError",
    "SpanCopyError",
    "TransferStats",
    "VerificationError",
    "WalkSource",
    "is_out_of_space",
    "main",
]
