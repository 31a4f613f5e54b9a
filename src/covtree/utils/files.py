"""File helpers — atomic artifact writes and source reads."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from covtree.errors import FilesystemError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import TextIO

logger = logging.getLogger(__name__)

# Mode of a freshly created regular file before the umask applies
_DEFAULT_FILE_MODE = 0o666


def _artifact_mode(path: Path) -> int:
    """Permission bits for *path*: kept from an existing file, else umask-derived."""
    if path.is_file():
        return stat.S_IMODE(path.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return _DEFAULT_FILE_MODE & ~umask


@contextlib.contextmanager
def atomic_write(path: Path) -> Iterator[TextIO]:
    """Open a text handle whose content replaces *path* only on success.

    Content goes to a temporary file in the target directory, which is
    flushed, synced and moved over *path* when the block exits cleanly. On
    any error the temporary file is removed and *path* is left untouched.
    The result has the permissions of the file it replaces, or those of a
    plain new file under the current umask.

    Raises:
        FilesystemError: When the directory, temporary file or final move fails.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = _artifact_mode(path)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as e:
        msg = f"Cannot create {path}: {e}"
        raise FilesystemError(msg, path) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            # mkstemp always creates 0600
            os.chmod(tmp_path, mode)
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        msg = f"Cannot write {path}: {e}"
        raise FilesystemError(msg, path) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def write_text_atomic(path: Path, content: str) -> Path:
    """Write *content* to *path* atomically and return *path*."""
    with atomic_write(path) as handle:
        handle.write(content)
    logger.debug("Wrote %d characters to %s", len(content), path)
    return path


async def write_text_atomic_async(path: Path, content: str) -> Path:
    """Async variant of ``write_text_atomic`` running the I/O in a worker thread."""
    return await asyncio.to_thread(write_text_atomic, path, content)


def read_text(path: Path) -> str:
    """Read a source file as UTF-8, replacing undecodable bytes.

    Raises:
        FilesystemError: When the file cannot be read.
    """
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        msg = f"Cannot read {path}: {e}"
        raise FilesystemError(msg, path) from e


class FileSystem(Protocol):
    """Where the reporter reads source text and writes its artifacts.

    Implementations raise ``FilesystemError`` on failure and must not leave
    a partially written artifact behind.
    """

    def read_text(self, path: Path) -> str: ...

    def write_text(self, path: Path, content: str) -> Path: ...

    async def write_text_async(self, path: Path, content: str) -> Path: ...


class LocalFileSystem:
    """``FileSystem`` on the local disk, with atomic artifact writes."""

    def read_text(self, path: Path) -> str:
        return read_text(path)

    def write_text(self, path: Path, content: str) -> Path:
        return write_text_atomic(path, content)

    async def write_text_async(self, path: Path, content: str) -> Path:
        return await write_text_atomic_async(path, content)
