"""
ConfigLocator — find every declaration of a directive across a
service's configuration sources.

Sources are produced as an explicit ordered list (primary, drop-ins
sorted by name, fallback) so new kinds of source only extend the
list; the scan itself never branches on where a file lives.

Parsing follows the sshd_config dialect:

- keywords are case-insensitive
- ``Keyword value`` and ``Keyword=value`` are both declarations
- ``#`` comments and blank lines are ignored
- everything after the first ``Match`` line is conditional and is
  neither reported nor rewritten
"""

from __future__ import annotations

import fnmatch
import logging
import re

from hostprep.adapters.base import Filesystem
from hostprep.core.models.source import ConfigSource, Declaration, SourceLayout

logger = logging.getLogger(__name__)

DECLARATION_RE = re.compile(
    r"^(?P<indent>[ \t]*)"
    r"(?P<key>[A-Za-z][A-Za-z0-9]*)"
    r"(?P<sep>[ \t]*=[ \t]*|[ \t]+)"
    r"(?P<value>[^#\s](?:[^#]*?[^#\s])?)?"
    r"(?P<trail>[ \t]*(?:#.*)?)$"
)

_MATCH_RE = re.compile(r"^[ \t]*match(?:[ \t=]|$)", re.IGNORECASE)


def split_lines(content: str) -> list[str]:
    """Split keeping line endings, so files can be rebuilt byte-for-byte."""
    return content.splitlines(keepends=True)


def strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def global_section_end(lines: list[str]) -> int:
    """Index of the first ``Match`` line, or ``len(lines)``."""
    for i, line in enumerate(lines):
        if _MATCH_RE.match(line):
            return i
    return len(lines)


def parse_declaration(line: str, name: str) -> re.Match | None:
    """Match ``line`` as a declaration of ``name`` (case-insensitive)."""
    text = strip_eol(line)
    if not text.strip() or text.lstrip().startswith("#"):
        return None
    m = DECLARATION_RE.match(text)
    if m is None or m.group("key").lower() != name.lower() or m.group("value") is None:
        return None
    return m


class ConfigLocator:
    """Read-only scanner over a SourceLayout."""

    def __init__(self, fs: Filesystem):
        self._fs = fs

    def sources(self, layout: SourceLayout) -> list[ConfigSource]:
        """All candidate sources for ``layout`` in precedence order.

        The fallback is listed (with ``exists=False`` until created)
        only when it is not already one of the drop-in entries.
        """
        sources = [
            ConfigSource(
                path=layout.primary,
                rank=0,
                kind="primary",
                exists=self._fs.is_file(layout.primary),
            )
        ]

        dropin_dir = layout.dropin_dir
        if dropin_dir is not None and self._fs.is_dir(dropin_dir):
            for entry in self._fs.list_dir(dropin_dir):
                if not self._fs.is_file(entry):
                    continue
                if not fnmatch.fnmatch(entry.name, layout.include_pattern):
                    continue
                sources.append(
                    ConfigSource(path=entry, rank=len(sources), kind="dropin", exists=True)
                )

            fallback = layout.fallback_path
            if fallback is not None and all(s.path != fallback for s in sources):
                sources.append(
                    ConfigSource(path=fallback, rank=len(sources), kind="fallback", exists=False)
                )

        return sources

    def last_changed(self, layout: SourceLayout) -> float | None:
        """Newest modification time among existing sources, if readable."""
        times = []
        for source in self.sources(layout):
            if not source.exists:
                continue
            try:
                times.append(self._fs.mtime(source.path))
            except OSError:
                continue
        return max(times, default=None)

    def scan(self, source: ConfigSource, name: str) -> list[Declaration]:
        """Declarations of ``name`` in one source (global section only)."""
        if not source.exists or not self._fs.is_file(source.path):
            return []

        lines = split_lines(self._fs.read_text(source.path))
        found: list[Declaration] = []
        for i, line in enumerate(lines[: global_section_end(lines)]):
            m = parse_declaration(line, name)
            if m is None:
                continue
            found.append(
                Declaration(
                    source=source,
                    line_no=i + 1,
                    line=strip_eol(line),
                    value=m.group("value"),
                )
            )
        return found

    def locate(self, layout: SourceLayout, name: str) -> list[Declaration]:
        """Every declaration of ``name`` across ``layout``, by precedence.

        An empty list means the directive is absent everywhere.
        """
        declarations: list[Declaration] = []
        for source in self.sources(layout):
            declarations.extend(self.scan(source, name))

        if declarations:
            logger.debug(
                "%s declared %d time(s): %s",
                name,
                len(declarations),
                ", ".join(f"{d.source.path}:{d.line_no}={d.value}" for d in declarations),
            )
        else:
            logger.debug("%s is not declared for %s", name, layout.service)
        return declarations

    def declared_values(self, layout: SourceLayout, name: str) -> set[str]:
        return {d.value for d in self.locate(layout, name)}

    def is_enforced(self, layout: SourceLayout, name: str, value: str) -> bool:
        """Declared at least once, and only ever with ``value``."""
        return self.declared_values(layout, name) == {value}
