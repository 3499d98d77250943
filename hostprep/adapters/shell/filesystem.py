"""
Local filesystem adapter — the host's real configuration files.

Writes are atomic (temp file in the same directory, fsync, rename)
and keep the original file's mode and ownership, so a crash can
never leave sshd_config half-written.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from hostprep.adapters.base import Filesystem

logger = logging.getLogger(__name__)

_ERRORS = "surrogateescape"


def _fsync_dir(directory: Path) -> None:
    """Flush a directory entry so a rename/create survives power loss."""
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


class LocalFilesystem(Filesystem):
    """Filesystem contract implemented with pathlib/os."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def read_text(self, path: Path) -> str:
        # newline="" keeps CRLF/LF exactly as on disk; surrogateescape
        # carries non-UTF-8 bytes (Latin-1 comments) through a rewrite
        with path.open("r", encoding="utf-8", errors=_ERRORS, newline="") as f:
            return f.read()

    def mtime(self, path: Path) -> float:
        return path.stat().st_mtime

    def write_text_atomic(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        original = path.stat() if path.exists() else None

        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", errors=_ERRORS, newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if original is not None:
                os.chmod(tmp, original.st_mode & 0o7777)
                try:
                    os.chown(tmp, original.st_uid, original.st_gid)
                except PermissionError:
                    logger.debug("Cannot preserve ownership of %s", path)
            else:
                os.chmod(tmp, 0o644)
            os.replace(tmp, path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

        _fsync_dir(path.parent)
        logger.debug("Wrote %s (%d bytes)", path, len(content))

    def copy_durable(self, src: Path, dst: Path) -> None:
        # O_EXCL: never overwrite an earlier backup
        fd = os.open(dst, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            with open(src, "rb") as fin, os.fdopen(fd, "wb") as fout:
                shutil.copyfileobj(fin, fout)
                fout.flush()
                os.fsync(fout.fileno())
        except Exception:
            dst.unlink(missing_ok=True)
            raise
        shutil.copystat(src, dst)
        _fsync_dir(dst.parent)

    def list_dir(self, path: Path) -> list[Path]:
        return sorted(path.iterdir(), key=lambda p: p.name)

    def remove_tree(self, path: Path) -> None:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
