"""
Data models shared by the scanner, the copier and the engine.
"""

import argparse
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# Constants
BUFFER_SIZE = 1024 * 1024  # 1MB
GRACE_WINDOW = 2.0
PROGRESS_INTERVAL = 0.3
RECORD_SUFFIX = ".remainingfiles"
# Records hold raw file names, so undecodable bytes survive a round trip
RECORD_ENCODING = "utf-8"
RECORD_ERRORS = "surrogateescape"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

HASH_ALGORITHMS = ["xxh64be", "md5", "sha1", "sha256"]


class ScanState(Enum):
    """
    Terminal status of a path scan.

    Attributes
    ----------
    RUNNING : str
        Scanner still producing paths
    DONE : str
        Source exhausted without error
    FAILED : str
        Source ended with an error
    """

    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class RunStatus(Enum):
    """
    Outcome of a :class:`~spancopy.engine.CopyEngine` run.

    Attributes
    ----------
    COMPLETED : str
        Every discovered path was copied (or skipped as vanished)
    INTERRUPTED : str
        User interrupt; remaining paths were saved
    FAILED : str
        Scan error, copy error or abandoned destination prompt
    ABORTED : str
        Second interrupt inside the grace window; nothing saved
    """

    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class TransferStats:
    """
    File and byte counters for one scope (whole run or current destination).

    Attributes
    ----------
    files : int, default=0
        Number of files copied
    bytes : int, default=0
        Number of bytes copied
    """

    files: int = 0
    bytes: int = 0

    def add(self, size: int) -> None:
        """Count one copied file of ``size`` bytes."""
        self.files += 1
        self.bytes += size

    def reset(self) -> None:
        self.files = 0
        self.bytes = 0

    def copy(self) -> "TransferStats":
        return TransferStats(self.files, self.bytes)


@dataclass
class ProgressSnapshot:
    """
    Everything a progress renderer needs to draw one status line.

    Attributes
    ----------
    global_stats : TransferStats
        Totals since the process started
    local_stats : TransferStats
        Totals since the current destination was selected
    elapsed : float
        Seconds since the run started
    current_path : str | None, default=None
        Relative path being copied right now
    current_bytes : int, default=0
        Bytes of the current file written so far
    """

    global_stats: TransferStats
    local_stats: TransferStats
    elapsed: float
    current_path: str | None = None
    current_bytes: int = 0


@dataclass
class RunResult:
    """
    Result of a complete engine run.

    Attributes
    ----------
    status : RunStatus
        How the run ended
    global_stats : TransferStats
        Files and bytes copied during the run
    local_stats : TransferStats
        Files and bytes copied to the last destination
    destination : Path
        Destination active when the run ended
    record_path : Path | None, default=None
        Remaining-files record written by this run, if any
    remaining : list[str], default=[]
        Paths that were not copied (the record content)
    skipped : list[str], default=[]
        Paths skipped because the source entry was unavailable
    error : BaseException | None, default=None
        Error that ended a failed run
    duration : float, default=0.0
        Run duration in seconds
    """

    status: RunStatus
    global_stats: TransferStats
    local_stats: TransferStats
    destination: Path
    record_path: Path | None = None
    remaining: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    error: BaseException | None = None
    duration: float = 0.0

    @property
    def exit_code(self) -> int:
        """
        Process exit code for this outcome.

        Returns
        -------
        int
            0 when completed or interrupted-and-saved, 1 otherwise
        """
        if self.status in (RunStatus.COMPLETED, RunStatus.INTERRUPTED):
            return EXIT_SUCCESS
        return EXIT_FAILURE

    @property
    def speed_mb_sec(self) -> float:
        if self.duration > 0:
            return (self.global_stats.bytes / (1024 * 1024)) / self.duration
        return 0.0


@dataclass
class CopyConfig:
    """Configuration for a copy run."""

    buffer_size: int = BUFFER_SIZE
    grace_window: float = GRACE_WINDOW
    progress_interval: float = PROGRESS_INTERVAL
    verify: bool = False
    hash_algorithm: str = "xxh64be"
    verbose: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {self.buffer_size}")
        if self.grace_window <= 0:
            raise ValueError(f"Grace window must be positive, got {self.grace_window}")
        if self.progress_interval < 0:
            raise ValueError(
                f"Progress interval must not be negative, got {self.progress_interval}"
            )
        if self.hash_algorithm.lower() not in HASH_ALGORITHMS:
            raise ValueError(f"Invalid hash algorithm: {self.hash_algorithm}")
        self.hash_algorithm = self.hash_algorithm.lower()

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "CopyConfig":
        """Create config from command-line arguments."""
        return cls(
            buffer_size=args.buffer_size,
            verify=args.verify,
            hash_algorithm=args.hash_algorithm,
            verbose=args.verbose,
        )
