"""
APT adapter — the package capability provider.

ensure_package / ensure_apt_source / install_deb over apt-get, dpkg
and gpg. Package presence is checked with ``dpkg-query`` first so
only missing packages are installed, and the package index is only
refreshed when it may be stale.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import urllib.request
from pathlib import Path
from typing import Callable

from hostprep.adapters.base import Adapter
from hostprep.adapters.shell.command import CommandRunner
from hostprep.core.models.action import Receipt

logger = logging.getLogger(__name__)

_USER_AGENT = "hostprep/0.1"


def fetch_url(url: str, timeout: int = 60) -> bytes:
    """Download ``url`` and return its body."""
    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return resp.read()


def _read_os_release(path: Path = Path("/etc/os-release")) -> dict[str, str]:
    facts: dict[str, str] = {}
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                key, sep, value = line.strip().partition("=")
                if sep:
                    facts[key] = value.strip('"')
    except OSError:
        pass
    return facts


class AptAdapter(Adapter):
    """Debian/Ubuntu package management.

    Args:
        runner: Command runner (scripted in tests).
        fetch: Callable returning the bytes at a URL.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        fetch: Callable[[str], bytes] | None = None,
    ):
        self._runner = runner or CommandRunner()
        self._fetch = fetch or fetch_url
        self._index_stale = True
        self._facts: dict[str, str] | None = None

    @property
    def name(self) -> str:
        return "apt"

    def is_available(self) -> bool:
        return shutil.which("apt-get") is not None

    # ── Host facts ──────────────────────────────────────────────

    def host_facts(self) -> dict[str, str]:
        """``arch`` (dpkg architecture) and ``codename`` (release name)."""
        if self._facts is None:
            arch = self._runner.run(["dpkg", "--print-architecture"], timeout=10)
            os_release = _read_os_release()
            codename = os_release.get("VERSION_CODENAME", "")
            if not codename:
                lsb = self._runner.run(["lsb_release", "-cs"], timeout=10)
                codename = lsb.output.strip() if lsb.ok else ""
            self._facts = {
                "arch": arch.output.strip() if arch.ok and arch.output else "amd64",
                "codename": codename,
            }
        return self._facts

    def render(self, template: str) -> str:
        """Substitute ``{arch}`` / ``{codename}`` placeholders."""
        result = template
        for key, value in self.host_facts().items():
            result = result.replace(f"{{{key}}}", value)
        return result

    # ── Packages ────────────────────────────────────────────────

    def is_installed(self, package: str) -> bool:
        r = self._runner.run(["dpkg-query", "-W", "-f=${Status}", package], timeout=10)
        return r.ok and "install ok installed" in r.output

    def update(self) -> Receipt:
        """Refresh the package index."""
        receipt = self._runner.run(["apt-get", "update"], timeout=300)
        if receipt.ok:
            self._index_stale = False
        return receipt

    def ensure_package(self, *packages: str) -> Receipt:
        """Install whichever of ``packages`` are missing."""
        operation = f"install {' '.join(packages)}"
        missing = [p for p in packages if not self.is_installed(p)]
        if not missing:
            return Receipt.skip(
                adapter=self.name,
                operation=operation,
                reason="All packages already installed",
            )

        if self._index_stale:
            updated = self.update()
            if updated.failed:
                return Receipt.failure(
                    adapter=self.name,
                    operation=operation,
                    error=f"apt-get update failed: {updated.error}",
                )

        logger.info("Installing packages: %s", ", ".join(missing))
        receipt = self._runner.run(["apt-get", "install", "-y", *missing], timeout=900)
        if receipt.failed:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=receipt.error or "apt-get install failed",
                metadata={"missing": missing},
            )
        return Receipt.success(
            adapter=self.name,
            operation=operation,
            output=f"Installed {', '.join(missing)}",
            duration_ms=receipt.duration_ms,
            metadata={"installed": missing},
        )

    # ── Sources ─────────────────────────────────────────────────

    def ensure_apt_source(
        self,
        name: str,
        *,
        key_url: str,
        keyring: Path,
        list_path: Path,
        repo_line: str | None = None,
        list_url: str | None = None,
        dearmor: bool = False,
    ) -> Receipt:
        """Register a signed apt repository.

        The signing key is written to ``keyring`` (dearmored through
        ``gpg`` when the upstream key is ASCII-armored). The source
        entry is either rendered from ``repo_line`` or downloaded
        from ``list_url``. The index is marked stale afterwards.
        """
        operation = f"apt source {name}"
        if repo_line is None and list_url is None:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error="Either repo_line or list_url is required",
            )

        try:
            key_data = self._fetch(self.render(key_url))
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Key download failed: {e}",
            )

        try:
            keyring.parent.mkdir(parents=True, exist_ok=True)
            if dearmor:
                r = self._runner.run(
                    ["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring)],
                    input_data=key_data,
                    timeout=30,
                )
                if r.failed:
                    return Receipt.failure(
                        adapter=self.name,
                        operation=operation,
                        error=f"gpg --dearmor failed: {r.error}",
                    )
            else:
                keyring.write_bytes(key_data)
            keyring.chmod(0o644)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Cannot write keyring {keyring}: {e}",
            )

        if repo_line is not None:
            entry = self.render(repo_line).replace("{keyring}", str(keyring)) + "\n"
        else:
            try:
                entry = self._fetch(self.render(list_url)).decode("utf-8")
            except Exception as e:
                return Receipt.failure(
                    adapter=self.name,
                    operation=operation,
                    error=f"Source list download failed: {e}",
                )

        try:
            list_path.parent.mkdir(parents=True, exist_ok=True)
            list_path.write_text(entry, encoding="utf-8")
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Cannot write source list {list_path}: {e}",
            )
        self._index_stale = True

        logger.info("Registered apt source %s → %s", name, list_path)
        return Receipt.success(
            adapter=self.name,
            operation=operation,
            output=entry.strip(),
            metadata={"keyring": str(keyring), "list": str(list_path)},
        )

    def install_deb(self, url: str) -> Receipt:
        """Download a .deb, install it, then let apt resolve its dependencies."""
        url = self.render(url)
        operation = f"install {url.rsplit('/', 1)[-1]}"

        with tempfile.TemporaryDirectory(prefix="hostprep-") as tmp:
            deb = Path(tmp) / url.rsplit("/", 1)[-1]
            try:
                deb.write_bytes(self._fetch(url))
            except Exception as e:
                return Receipt.failure(
                    adapter=self.name,
                    operation=operation,
                    error=f"Download failed: {e}",
                )

            dpkg = self._runner.run(["dpkg", "-i", str(deb)], timeout=300)
            if dpkg.failed:
                logger.info("dpkg -i reported missing dependencies, fixing with apt")

            fix = self._runner.run(["apt-get", "install", "-f", "-y"], timeout=600)
            if fix.failed:
                return Receipt.failure(
                    adapter=self.name,
                    operation=operation,
                    error=fix.error or dpkg.error or "apt-get install -f failed",
                )

        return Receipt.success(adapter=self.name, operation=operation, output=url)
