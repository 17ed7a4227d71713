# relaymap/utils/fs.py
from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path
from typing import Optional, Union

from relaymap.errors import WriteError
from relaymap.utils.logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]


def _default_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _target_mode(path: Path) -> int:
    """Mode the replacement should carry: the current file's, else umask default."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return _default_mode()


def _write_temp(path: Path, data: bytes) -> Path:
    """Write `data` to a temp file next to `path` and return the temp path."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = _target_mode(path)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
    except OSError as e:
        raise WriteError(path, e) from e

    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp creates 0600 and os.replace keeps it
        os.chmod(tmp, mode)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise WriteError(path, e) from e
    return tmp


def atomic_write_text(path: PathLike, text: str, encoding: str = "utf-8") -> int:
    """
    Replace `path` with `text` atomically (temp file in the same directory,
    then os.replace). A failure never leaves a truncated file behind.

    Returns the number of bytes written.
    """
    out_path = Path(path)
    data = text.encode(encoding)
    tmp = _write_temp(out_path, data)
    try:
        os.replace(tmp, out_path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise WriteError(out_path, e) from e
    log.debug("Wrote %s (%d bytes)", out_path, len(data))
    return len(data)


class StagedWriter:
    """
    Collects the outputs of a run as temp files and renames them into place
    together on commit(). Nothing is touched on disk until stage() is called,
    and no destination is replaced until commit().

    If a rename fails part way through commit(), the files already replaced
    are put back from backups taken before the first rename (or removed, when
    they did not exist before), so a run never leaves mixed old and new
    outputs.

    Use as a context manager: leaving the block with an exception discards
    every staged temp file.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._staged: list[tuple[Path, Path, int]] = []

    def stage(self, path: PathLike, text: str) -> None:
        out_path = Path(path)
        data = text.encode(self.encoding)
        tmp = _write_temp(out_path, data)
        self._staged.append((out_path, tmp, len(data)))

    @property
    def paths(self) -> list[Path]:
        return [dest for dest, _, _ in self._staged]

    def _backup(self, dest: Path) -> Optional[Path]:
        try:
            data = dest.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise WriteError(dest, e) from e
        return _write_temp(dest, data)

    def _rollback(self, done: list[tuple[Path, Optional[Path]]]) -> None:
        for dest, backup in reversed(done):
            try:
                if backup is None:
                    dest.unlink(missing_ok=True)
                else:
                    os.replace(backup, dest)
            except OSError as e:
                log.error("Could not restore %s: %s", dest, e)

    def commit(self) -> list[Path]:
        backups: dict[Path, Optional[Path]] = {}
        done: list[tuple[Path, Optional[Path]]] = []
        try:
            for dest, _, _ in self._staged:
                if dest not in backups:
                    backups[dest] = self._backup(dest)

            while self._staged:
                dest, tmp, size = self._staged[0]
                try:
                    os.replace(tmp, dest)
                except OSError as e:
                    log.error("Rename of %s failed; restoring %d earlier output(s)", dest, len(done))
                    self._rollback(done)
                    raise WriteError(dest, e) from e
                self._staged.pop(0)
                done.append((dest, backups[dest]))
                log.info("Wrote %s (%d bytes)", dest, size)
        finally:
            for backup in backups.values():
                if backup is not None:
                    backup.unlink(missing_ok=True)
            self.discard()
        return [dest for dest, _ in done]

    def discard(self) -> None:
        for _, tmp, _ in self._staged:
            tmp.unlink(missing_ok=True)
        self._staged.clear()

    def __enter__(self) -> "StagedWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()
