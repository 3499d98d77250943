"""
Shared test fixtures: an in-memory sshd layout, a fixed clock and
scripted adapters.
"""

from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from hostprep.adapters.mock import MemoryFilesystem, ScriptedRunner
from hostprep.adapters.packages.apt import AptAdapter
from hostprep.adapters.registry import AdapterRegistry
from hostprep.adapters.services.systemd import SystemdAdapter
from hostprep.adapters.vcs.git import GitAdapter
from hostprep.core.models.source import SourceLayout

FIXED_NOW = datetime(2024, 5, 1, 12, 30, 0)
# Epoch seconds the service adapter reads as "now".
SERVICE_CLOCK = 1000.0


@pytest.fixture
def layout() -> SourceLayout:
    """The stock Ubuntu sshd layout."""
    return SourceLayout(
        service="ssh",
        primary=Path("/etc/ssh/sshd_config"),
        dropin_dir=Path("/etc/ssh/sshd_config.d"),
        fallback_name="99-enable-password-auth.conf",
        test_command=("sshd", "-t"),
    )


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def make_registry():
    """Factory: registry over in-memory and scripted doubles."""

    def _make(fs: MemoryFilesystem, runner: ScriptedRunner, fetch=None) -> AdapterRegistry:
        return AdapterRegistry(
            fs=fs,
            runner=runner,
            packages=AptAdapter(runner, fetch=fetch or (lambda url: b"key-material")),
            services=SystemdAdapter(
                runner, init_system="systemd", settle_seconds=0, sleep=lambda s: None,
                clock=lambda: SERVICE_CLOCK,
            ),
            vcs=GitAdapter(runner, fs),
        )

    return _make


@pytest.fixture
def passwd():
    """getpwnam stand-in knowing ``alice`` and ``root``."""

    def _getpwnam(name: str) -> SimpleNamespace:
        if name not in ("alice", "root"):
            raise KeyError(name)
        home = "/root" if name == "root" else f"/home/{name}"
        return SimpleNamespace(pw_name=name, pw_dir=home)

    return _getpwnam


@pytest.fixture
def clone_effect():
    """ScriptedRunner effect: ``git clone URL TARGET`` leaves TARGET/.git."""

    def _bind(fs: MemoryFilesystem):
        def _effect(argv: list[str]) -> None:
            fs.write_text_atomic(Path(argv[3]) / ".git" / "HEAD", "ref: refs/heads/main\n")

        return _effect

    return _bind


@pytest.fixture
def finished_setup():
    """Script the read-only checks so every post-install hook reads as done.

    ``alice`` on host ``box``: git identity set, in the docker group,
    tailscale operator, and ``~/.cloudflared`` present.
    """

    def _apply(fs: MemoryFilesystem, runner: ScriptedRunner) -> None:
        runner.respond("git", "config", "--global", "--get", "user.name", output="alice")
        runner.respond("git", "config", "--global", "--get", "user.email", output="alice@box")
        runner.respond("id", "-nG", "alice", output="alice sudo docker")
        runner.respond("tailscale", "debug", "prefs", output='{\n  "OperatorUser": "alice"\n}')
        fs.dirs.add(Path("/home/alice/.cloudflared"))
        fs.dirs.update(Path("/home/alice/.cloudflared").parents)

    return _apply
