"""
Directive step — enforce daemon settings across its config layout.

The step is satisfied only when the files declare every directive
and the daemon is in step with them: running, passing its own config
test, started after the files last changed, and (with a live check)
not answering with the old behaviour. Files that are right while the
daemon is not (a reload that failed on an earlier run) send the step
back through apply.

Apply enforces each directive through the Mutator, then runs the
daemon's config test and reloads it. Verify re-checks the files and,
optionally, runs the live check, whose inconclusive or negative
result is a warning, never a revert.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional, Sequence

from hostprep.adapters.services.systemd import SystemdAdapter
from hostprep.adapters.shell.command import CommandRunner
from hostprep.core.engine.errors import ConfigMutationFailure, VerificationWarning
from hostprep.core.engine.mutator import Mutator
from hostprep.core.engine.probe import Probe
from hostprep.core.engine.step import Step
from hostprep.core.models.capability import Capability
from hostprep.core.models.source import Backup, Directive, SourceLayout

logger = logging.getLogger(__name__)

# Returns (confirmed, detail); confirmed is None when inconclusive.
LiveCheck = Callable[[], tuple[Optional[bool], str]]


class DirectiveStep(Step):
    """Make every directive in ``directives`` the effective setting."""

    unsatisfied_error = ConfigMutationFailure

    def __init__(
        self,
        name: str,
        *,
        layout: SourceLayout,
        directives: Sequence[Directive],
        probe: Probe,
        mutator: Mutator,
        services: SystemdAdapter,
        live_check: LiveCheck | None = None,
        description: str = "",
    ):
        super().__init__(name, description)
        self.layout = layout
        self.directives = list(directives)
        self.capabilities = [Capability.declared(d, layout) for d in self.directives]
        self._probe = probe
        self._mutator = mutator
        self._services = services
        self._live_check = live_check
        self._backups: list[Backup] = []

    def probe(self) -> bool:
        return self._declared() and self._in_effect()

    def _declared(self) -> bool:
        return self._probe.all_satisfied(self.capabilities)

    def _in_effect(self) -> bool:
        service = self.layout.service
        if not self._services.is_active(service):
            logger.info("%s is configured but %s is not running", self.description, service)
            return False
        test = self._services.test_config(self.layout.test_command)
        if test.failed:
            logger.info("%s configuration test fails: %s", service, test.error)
            return False
        started = self._services.started_at(service)
        changed = self._probe.locator.last_changed(self.layout)
        if started is not None and changed is not None and changed > started:
            logger.info("%s changed after %s started, a reload is pending", self.description, service)
            return False
        if self._live_check is not None:
            confirmed, detail = self._live_check()
            if confirmed is False:
                logger.info("%s is configured but not in effect: %s", self.description, detail)
                return False
        return True

    def backups(self) -> list[str]:
        return [str(b.path) for b in self._backups]

    def apply(self) -> None:
        mutated = False
        for directive in self.directives:
            located = self._probe.locator.locate(self.layout, directive.name)
            report = self._mutator.enforce(self.layout, directive, located)
            for backup in report.backups:
                if backup not in self._backups:
                    self._backups.append(backup)
            mutated = mutated or report.mutated

        if not mutated:
            logger.info("%s files are already in place, reloading %s", self.description, self.layout.service)

        test = self._services.test_config(self.layout.test_command)
        if test.failed:
            raise ConfigMutationFailure(
                f"{self.layout.service} configuration test failed, not reloading: {test.error}"
                + self._restore_hint()
            )

        reload = self._services.reload(self.layout.service)
        if reload.failed:
            raise ConfigMutationFailure(
                f"{self.layout.service} is not healthy after reload: {reload.error}"
                + self._restore_hint()
            )

    def verify(self) -> list[str]:
        if not self._declared():
            raise ConfigMutationFailure(f"{self.description} is still not in place after applying")
        warnings: list[str] = []
        if self._live_check is None:
            return warnings

        confirmed, detail = self._live_check()
        if confirmed:
            logger.info("Live check passed: %s", detail)
        elif confirmed is None:
            raise VerificationWarning(f"Could not confirm {self.description}: {detail}")
        else:
            warnings.append(
                f"{self.description} is configured but not effective: {detail}. "
                "Manual verification is recommended."
            )
        return warnings

    def _restore_hint(self) -> str:
        if not self._backups:
            return ""
        return " (backups: " + ", ".join(str(b.path) for b in self._backups) + ")"


# ── sshd live check ─────────────────────────────────────────────

_DENIED_RE = re.compile(r"Permission denied \(([^)]*)\)")


def _effective_value(output: str, name: str) -> str | None:
    key = name.lower()
    for line in output.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) == 2 and parts[0].lower() == key:
            return parts[1].strip().lower()
    return None


def ssh_password_check(
    runner: CommandRunner,
    user: str,
    host: str = "localhost",
) -> LiveCheck:
    """Build a live check that sshd offers password logins.

    Reads the daemon's effective settings (``sshd -T``), then attempts
    a non-interactive connection with public keys disabled and parses
    the authentication methods the server offers.
    """

    def _check() -> tuple[bool | None, str]:
        effective = runner.run(["sshd", "-T"], timeout=15)
        if effective.ok:
            value = _effective_value(effective.output, "PasswordAuthentication")
            if value == "no":
                return False, "sshd reports passwordauthentication no"

        attempt = runner.run(
            [
                "ssh",
                "-o", "BatchMode=yes",
                "-o", "PubkeyAuthentication=no",
                "-o", "StrictHostKeyChecking=no",
                "-o", "UserKnownHostsFile=/dev/null",
                "-o", "ConnectTimeout=5",
                f"{user}@{host}",
                "true",
            ],
            timeout=20,
        )
        m = _DENIED_RE.search(f"{attempt.output}\n{attempt.error or ''}")
        if m is None:
            return None, "no authentication response from sshd"

        methods = [part.strip() for part in m.group(1).split(",")]
        if "password" in methods or "keyboard-interactive" in methods:
            return True, f"sshd offers {', '.join(methods)}"
        return False, f"sshd only offers {', '.join(methods)}"

    return _check
