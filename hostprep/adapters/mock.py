"""
Mock adapters — test doubles for the host.

``MemoryFilesystem`` implements the Filesystem contract in memory and
keeps a journal of every mutating call, so tests can assert ordering
(backup strictly before rewrite). ``ScriptedRunner`` records commands
and answers them from configured rules instead of spawning processes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from hostprep.adapters.base import Filesystem
from hostprep.adapters.shell.command import CommandRunner
from hostprep.core.models.action import Receipt


class MemoryFilesystem(Filesystem):
    """In-memory filesystem with an operation journal.

    Args:
        files: Initial files, path → content.
        dirs: Initial directories (parents of files are implied).

    ``now`` is the modification time stamped on every write; tests
    move it forward to order writes against other events.
    """

    def __init__(
        self,
        files: dict[str | Path, str] | None = None,
        dirs: Sequence[str | Path] = (),
    ):
        self.files: dict[Path, str] = {}
        self.dirs: set[Path] = set()
        self.journal: list[tuple[str, Path]] = []
        self.mtimes: dict[Path, float] = {}
        self.now = 0.0
        self._failures: dict[str, set[Path]] = {}
        for d in dirs:
            self._add_dir(Path(d))
        for path, content in (files or {}).items():
            self._put(Path(path), content)

    def _add_dir(self, path: Path) -> None:
        self.dirs.add(path)
        self.dirs.update(path.parents)

    def _put(self, path: Path, content: str) -> None:
        self._add_dir(path.parent)
        self.files[path] = content
        self.mtimes[path] = self.now

    def fail(self, operation: str, path: str | Path) -> None:
        """Make ``operation`` ('write' or 'copy') raise OSError for ``path``."""
        self._failures.setdefault(operation, set()).add(Path(path))

    def _check(self, operation: str, path: Path) -> None:
        if path in self._failures.get(operation, set()):
            raise OSError(f"injected {operation} failure: {path}")

    # ── Filesystem contract ─────────────────────────────────────

    def exists(self, path: Path) -> bool:
        return path in self.files or path in self.dirs

    def is_dir(self, path: Path) -> bool:
        return path in self.dirs

    def is_file(self, path: Path) -> bool:
        return path in self.files

    def read_text(self, path: Path) -> str:
        if path not in self.files:
            raise FileNotFoundError(str(path))
        return self.files[path]

    def mtime(self, path: Path) -> float:
        if path not in self.files:
            raise FileNotFoundError(str(path))
        return self.mtimes[path]

    def write_text_atomic(self, path: Path, content: str) -> None:
        self._check("write", path)
        self.journal.append(("write", path))
        self._put(path, content)

    def copy_durable(self, src: Path, dst: Path) -> None:
        self._check("copy", dst)
        if src not in self.files:
            raise FileNotFoundError(str(src))
        if self.exists(dst):
            raise FileExistsError(str(dst))
        self.journal.append(("copy", dst))
        self._put(dst, self.files[src])

    def list_dir(self, path: Path) -> list[Path]:
        if path not in self.dirs:
            raise FileNotFoundError(str(path))
        children = {p for p in self.files if p.parent == path}
        children |= {d for d in self.dirs if d.parent == path and d != path}
        return sorted(children, key=lambda p: p.name)

    def remove_tree(self, path: Path) -> None:
        self.journal.append(("remove", path))
        self.files = {p: c for p, c in self.files.items() if p != path and path not in p.parents}
        self.dirs = {d for d in self.dirs if d != path and path not in d.parents}

    # ── Test helpers ────────────────────────────────────────────

    def backups_of(self, path: str | Path) -> list[Path]:
        prefix = f"{Path(path).name}.backup."
        parent = Path(path).parent
        return sorted(p for p in self.files if p.parent == parent and p.name.startswith(prefix))


@dataclass
class _Rule:
    prefix: tuple[str, ...]
    ok: bool
    output: str
    error: str
    effect: Callable[[list[str]], None] | None


class ScriptedRunner(CommandRunner):
    """CommandRunner double: records calls, answers from rules.

    Rules match on a command prefix; the most recently added matching
    rule wins. Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.call_options: list[dict] = []
        self._rules: list[_Rule] = []

    def is_available(self) -> bool:
        return True

    def respond(
        self,
        *prefix: str,
        ok: bool = True,
        output: str = "",
        error: str = "scripted failure",
        effect: Callable[[list[str]], None] | None = None,
    ) -> None:
        self._rules.append(_Rule(tuple(prefix), ok, output, error, effect))

    def run(self, cmd: Sequence[str], **options) -> Receipt:
        argv = list(cmd)
        self.calls.append(argv)
        self.call_options.append(options)
        for rule in reversed(self._rules):
            if tuple(argv[: len(rule.prefix)]) == rule.prefix:
                if rule.effect is not None:
                    rule.effect(argv)
                if rule.ok:
                    return Receipt.success(adapter=self.name, operation=" ".join(argv), output=rule.output)
                return Receipt.failure(adapter=self.name, operation=" ".join(argv), error=rule.error)
        return Receipt.success(adapter=self.name, operation=" ".join(argv))

    def ran(self, *prefix: str) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)
