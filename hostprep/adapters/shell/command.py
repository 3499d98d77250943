"""
Shell command runner — the SINGLE PLACE where ``subprocess.run`` is
called.

Every adapter that shells out (apt, systemctl, git, dpkg) goes through
a CommandRunner, so logging, timeouts and user switching are handled
in one place and tests can substitute a scripted runner.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from typing import Sequence

from hostprep.adapters.base import Adapter
from hostprep.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Output kept on receipts is truncated to the tail
_OUTPUT_LIMIT = 2000


class CommandRunner(Adapter):
    """Run commands and capture their output as receipts."""

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def run(
        self,
        cmd: Sequence[str],
        *,
        timeout: int = 300,
        cwd: str | None = None,
        as_user: str | None = None,
        env_overrides: dict[str, str] | None = None,
        input_data: bytes | None = None,
    ) -> Receipt:
        """Run ``cmd`` and return a receipt.

        Args:
            cmd: Command list (never a shell string).
            timeout: Seconds before the command is killed.
            cwd: Working directory.
            as_user: Run as this account (via ``runuser``) when we are
                root and it is a different user.
            env_overrides: Extra environment variables.
            input_data: Bytes piped to stdin.
        """
        argv = list(cmd)
        if as_user and os.geteuid() == 0 and as_user != "root":
            argv = ["runuser", "-u", as_user, "--"] + argv

        env = os.environ.copy()
        if env_overrides:
            env.update(env_overrides)
        # apt/dpkg must never stop to ask questions
        env.setdefault("DEBIAN_FRONTEND", "noninteractive")

        operation = " ".join(cmd)
        logger.debug("Executing: %s (cwd=%s)", " ".join(argv), cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                timeout=timeout,
                cwd=cwd,
                env=env,
                input=input_data,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command timed out after {timeout}s",
                metadata={"command": argv, "timeout": timeout},
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command not found: {argv[0]}",
                metadata={"command": argv},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command execution error: {e}",
                metadata={"command": argv},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = result.stdout.decode("utf-8", errors="replace").strip()
        stderr = result.stderr.decode("utf-8", errors="replace").strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                output=stdout[-_OUTPUT_LIMIT:],
                duration_ms=elapsed_ms,
                metadata={
                    "command": argv,
                    "return_code": 0,
                    "stderr": stderr[-_OUTPUT_LIMIT:],
                },
            )

        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            error=stderr[-_OUTPUT_LIMIT:] or f"Command exited with code {result.returncode}",
            duration_ms=elapsed_ms,
            metadata={
                "command": argv,
                "return_code": result.returncode,
                "stdout": stdout[-_OUTPUT_LIMIT:],
            },
        )
