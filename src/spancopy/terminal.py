"""
Terminal collaborators: the progress line and the destination prompt.
"""

import os
import shutil
import sys
from typing import TextIO

from .errors import PromptAborted
from .models import ProgressSnapshot

try:
    import readline

    has_readline = True
except ImportError:
    has_readline = False


def format_bytes(size: int) -> str:
    """
    Human-readable byte count (binary units).

    Parameters
    ----------
    size : int
        Number of bytes

    Returns
    -------
    str
        e.g. ``"512 B"``, ``"1.5 MB"``
    """
    value = float(size)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if value < 1024 or unit == "TB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def printable_path(path: str) -> str:
    """Replace bytes that are not valid UTF-8 so the name can be printed."""
    return path.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


class ProgressLine:
    """
    Single status line redrawn in place on a terminal stream.

    Parameters
    ----------
    stream : TextIO | None, default=None
        Output stream, stderr when None
    """

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stderr
        self._drawn = False

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        width = shutil.get_terminal_size().columns
        self.stream.write("\r" + self.render(snapshot, width))
        self.stream.flush()
        self._drawn = True

    @staticmethod
    def render(snapshot: ProgressSnapshot, width: int) -> str:
        """Format a snapshot to exactly ``width`` columns."""
        total = snapshot.global_stats
        local = snapshot.local_stats
        text = (
            f"{total.files} files, {format_bytes(total.bytes)}"
            f" | this disk: {local.files} files, {format_bytes(local.bytes)}"
            f" | {format_duration(snapshot.elapsed)}"
        )
        if snapshot.current_path:
            text += f" | {printable_path(snapshot.current_path)}"

        width = max(width - 1, 1)
        if len(text) > width:
            text = text[: max(width - 3, 0)] + "..."
        return text.ljust(width)[:width]

    def finish(self) -> None:
        """Move past the status line so following output starts clean."""
        if self._drawn:
            self.stream.write("\n")
            self.stream.flush()
            self._drawn = False


def complete_directory(text: str) -> list[str]:
    """
    Directory names completing ``text``.

    Parameters
    ----------
    text : str
        Partially typed path

    Returns
    -------
    list[str]
        Matching directories, each ending with a separator, sorted
    """
    directory, prefix = os.path.split(os.path.expanduser(text))
    try:
        names = os.listdir(directory or ".")
    except OSError:
        return []

    matches = []
    for name in names:
        if not name.startswith(prefix):
            continue
        if os.path.isdir(os.path.join(directory or ".", name)):
            matches.append(os.path.join(directory, name) + os.sep)
    return sorted(matches)


def _completer(text: str, state: int) -> str | None:
    # Completer delimiters are cleared, so text is the whole line
    matches = complete_directory(text)
    return matches[state] if state < len(matches) else None


def prompt_for_destination(default: str) -> str:
    """
    Ask for a new destination, offering ``default`` for editing.

    Tab completes directory names. Empty answers ask again.

    Parameters
    ----------
    default : str
        Current destination, pre-filled on the input line

    Returns
    -------
    str
        Trimmed new destination

    Raises
    ------
    PromptAborted
        Input was closed (Ctrl+D) or interrupted
    """
    print('Enter new destination path (ie. "Disk 2"):', flush=True)

    if has_readline:
        readline.set_completer_delims("")
        readline.set_completer(_completer)
        readline.parse_and_bind("tab: complete")
        readline.set_startup_hook(lambda: readline.insert_text(default))
        prompt = ""
    else:
        prompt = f"[{default}] "

    try:
        while True:
            try:
                answer = input(prompt).strip()
            except (EOFError, KeyboardInterrupt) as e:
                raise PromptAborted("Destination prompt closed") from e
            if not answer and not has_readline:
                answer = default
            if answer:
                return answer
    finally:
        if has_readline:
            readline.set_startup_hook(None)
            readline.set_completer(None)
