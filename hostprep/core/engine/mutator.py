"""
Mutator — bring a directive to its desired value across a layout.

Two cases:

- Some source declares the directive: every declaration with a
  different value is rewritten in place (only that line; indentation,
  keyword spelling, separator, trailing comment and line ending are
  kept). Declarations that already match are left alone.
- Nothing declares it: one new declaration is appended to the
  lowest-precedence location — the fallback drop-in when the drop-in
  directory exists, otherwise the primary file (before any ``Match``
  block, so the directive stays global).

Every file that existed before the run is snapshotted before it is
touched, and every write is atomic. Sources are never deleted.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hostprep.adapters.base import Filesystem
from hostprep.core.engine.errors import ConfigMutationFailure
from hostprep.core.engine.locator import (
    ConfigLocator,
    global_section_end,
    parse_declaration,
    split_lines,
    strip_eol,
)
from hostprep.core.engine.snapshot import Snapshotter
from hostprep.core.models.source import (
    ConfigSource,
    Declaration,
    Directive,
    MutationReport,
    SourceLayout,
)

logger = logging.getLogger(__name__)


def _line_ending(lines: list[str]) -> str:
    return "\r\n" if any(line.endswith("\r\n") for line in lines) else "\n"


def rewrite_line(line: str, directive: Directive) -> str:
    """Replace the value in a declaration line, keeping everything else."""
    m = parse_declaration(line, directive.name)
    if m is None:
        raise ConfigMutationFailure(f"Not a declaration of {directive.name}: {line!r}")
    eol = line[len(strip_eol(line)):]
    return f"{m.group('indent')}{m.group('key')}{m.group('sep')}{directive.value}{m.group('trail')}{eol}"


def append_declaration(content: str, directive: Directive, *, before_match: bool = True) -> str:
    """Add ``directive`` to ``content`` (inside the global section)."""
    lines = split_lines(content)
    eol = _line_ending(lines)
    new_line = directive.render() + eol

    index = global_section_end(lines) if before_match else len(lines)
    if index == len(lines) and lines and not lines[-1].endswith(("\n", "\r")):
        lines[-1] += eol
    lines.insert(index, new_line)
    return "".join(lines)


class Mutator:
    """Applies directive changes through a Snapshotter and a Filesystem."""

    def __init__(
        self,
        fs: Filesystem,
        snapshotter: Snapshotter,
        locator: ConfigLocator | None = None,
    ):
        self._fs = fs
        self._snapshotter = snapshotter
        self._locator = locator or ConfigLocator(fs)

    def enforce(
        self,
        layout: SourceLayout,
        directive: Directive,
        located: list[Declaration] | None = None,
    ) -> MutationReport:
        """Make ``directive`` the only value declared across ``layout``.

        Args:
            layout: Where the service's sources live.
            directive: Name and desired value.
            located: A fresh ``ConfigLocator.locate`` result; located
                here when omitted.

        Raises:
            ConfigMutationFailure: A backup or write failed, or the
                result does not satisfy the directive.
        """
        if located is None:
            located = self._locator.locate(layout, directive.name)

        report = MutationReport(directive=directive)
        if located:
            self._update(directive, located, report)
        else:
            self._add(layout, directive, report)

        if not self._locator.is_enforced(layout, directive.name, directive.value):
            values = sorted(self._locator.declared_values(layout, directive.name))
            raise ConfigMutationFailure(
                f"{directive.name} still declared as {values} after enforcing {directive.value!r}"
            )
        return report

    # ── Set-if-present ──────────────────────────────────────────

    def _update(
        self,
        directive: Directive,
        located: list[Declaration],
        report: MutationReport,
    ) -> None:
        by_source: dict[Path, list[Declaration]] = {}
        sources: dict[Path, ConfigSource] = {}
        for decl in located:
            if decl.value == directive.value:
                continue
            by_source.setdefault(decl.source.path, []).append(decl)
            sources[decl.source.path] = decl.source

        if not by_source:
            logger.debug("%s already %s everywhere", directive.name, directive.value)
            return

        for path, decls in by_source.items():
            self._snapshot(sources[path].path, report)

            lines = split_lines(self._read(path))
            for decl in decls:
                index = decl.line_no - 1
                if index >= len(lines) or strip_eol(lines[index]) != decl.line:
                    raise ConfigMutationFailure(
                        f"{path}:{decl.line_no} changed since it was located"
                    )
                lines[index] = rewrite_line(lines[index], directive)

            self._write(path, "".join(lines))
            report.changed.append(path)
            logger.info("Updated %s setting in %s", directive.name, path)

    # ── Append-new-source ───────────────────────────────────────

    def _add(self, layout: SourceLayout, directive: Directive, report: MutationReport) -> None:
        fallback = layout.fallback_path
        if fallback is not None and layout.dropin_dir is not None and self._fs.is_dir(layout.dropin_dir):
            target = fallback
        else:
            target = layout.primary

        if self._fs.is_file(target):
            self._snapshot(target, report)
            content = append_declaration(self._read(target), directive)
            self._write(target, content)
            report.changed.append(target)
            logger.info("Added %s setting to %s", directive.name, target)
        else:
            self._write(target, directive.render() + "\n")
            self._snapshotter.record_created(target)
            report.created.append(target)
            logger.info("Created %s with %s", target, directive.render())

    # ── I/O ─────────────────────────────────────────────────────

    def _snapshot(self, path: Path, report: MutationReport) -> None:
        if self._snapshotter.created_this_run(path):
            logger.debug("%s was created by this run, no backup needed", path)
            return
        report.backups.append(self._snapshotter.backup(path))

    def _read(self, path: Path) -> str:
        try:
            return self._fs.read_text(path)
        except (OSError, UnicodeError) as e:
            raise ConfigMutationFailure(f"Cannot read {path}: {e}") from e

    def _write(self, path: Path, content: str) -> None:
        try:
            self._fs.write_text_atomic(path, content)
        except OSError as e:
            raise ConfigMutationFailure(f"Cannot write {path}: {e}") from e
