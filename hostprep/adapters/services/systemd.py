"""
Service adapter — restart daemons and report whether they came up.

Supports systemd, openrc and SysV init. The init system is detected
once per adapter instance and dispatched accordingly.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import Callable, Sequence

from hostprep.adapters.base import Adapter
from hostprep.adapters.shell.command import CommandRunner
from hostprep.core.models.action import Receipt

logger = logging.getLogger(__name__)


def detect_init_system() -> str:
    """Detect the init system (systemd, openrc, initd, or unknown)."""
    if Path("/run/systemd/system").exists():
        return "systemd"
    if shutil.which("rc-service"):
        return "openrc"
    if Path("/etc/init.d").exists():
        return "initd"
    return "unknown"


def _commands(init_system: str, service: str) -> dict[str, list[str]]:
    if init_system == "systemd":
        return {
            "restart": ["systemctl", "restart", service],
            "status": ["systemctl", "is-active", "--quiet", service],
        }
    if init_system == "openrc":
        return {
            "restart": ["rc-service", service, "restart"],
            "status": ["rc-service", service, "status"],
        }
    if init_system == "initd":
        return {
            "restart": ["service", service, "restart"],
            "status": ["service", service, "status"],
        }
    return {}


class SystemdAdapter(Adapter):
    """Service reload provider.

    Args:
        runner: Command runner.
        init_system: Override detection (tests, containers).
        settle_seconds: How long to wait for a restarted service to
            report active before calling it unhealthy.
        sleep: Injected for tests.
        clock: Wall clock, seconds since the epoch; injected for tests.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        init_system: str | None = None,
        settle_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._runner = runner or CommandRunner()
        self._init_system = init_system
        self._settle_seconds = settle_seconds
        self._sleep = sleep
        self._clock = clock

    @property
    def name(self) -> str:
        return "service"

    @property
    def init_system(self) -> str:
        if self._init_system is None:
            self._init_system = detect_init_system()
        return self._init_system

    def is_available(self) -> bool:
        return self.init_system != "unknown"

    def is_active(self, service: str) -> bool:
        cmds = _commands(self.init_system, service)
        if not cmds:
            return False
        return self._runner.run(cmds["status"], timeout=10).ok

    def test_config(self, command: Sequence[str]) -> Receipt:
        """Run a daemon's own configuration check (e.g. ``sshd -t``)."""
        if not command:
            return Receipt.skip(adapter=self.name, operation="config test", reason="No test command")
        r = self._runner.run(list(command), timeout=30)
        if r.failed:
            return Receipt.failure(
                adapter=self.name,
                operation="config test",
                error=r.error or "configuration test failed",
            )
        return Receipt.success(adapter=self.name, operation="config test", output=r.output)

    def reload(self, service: str) -> Receipt:
        """Restart ``service``; the receipt is ok only if it came up healthy."""
        operation = f"reload {service}"
        cmds = _commands(self.init_system, service)
        if not cmds:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error="No init system detected for service management",
            )

        logger.info("Restarting %s to apply changes...", service)
        restart = self._runner.run(cmds["restart"], timeout=60)
        if restart.failed:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=restart.error or f"restart of {service} failed",
                metadata={"healthy": False},
            )

        waited = 0.0
        while True:
            if self._runner.run(cmds["status"], timeout=10).ok:
                return Receipt.success(
                    adapter=self.name,
                    operation=operation,
                    output=f"{service} is active",
                    metadata={"healthy": True, "init_system": self.init_system},
                )
            if waited >= self._settle_seconds:
                break
            self._sleep(0.5)
            waited += 0.5

        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            error=f"{service} did not become active after restart",
            metadata={"healthy": False},
        )

    def started_at(self, service: str) -> float | None:
        """When the running ``service`` process started (epoch seconds).

        Only known under systemd; None when the service is not running
        or the init system cannot tell.
        """
        if self.init_system != "systemd":
            return None
        pid = self._runner.run(
            ["systemctl", "show", service, "--property=MainPID", "--value"], timeout=10
        )
        if pid.failed or not pid.output.strip().isdigit() or pid.output.strip() == "0":
            return None
        elapsed = self._runner.run(["ps", "-o", "etimes=", "-p", pid.output.strip()], timeout=10)
        if elapsed.failed or not elapsed.output.strip().isdigit():
            return None
        return self._clock() - int(elapsed.output.strip())
