"""
Step catalog — turn tool recipes and host settings into ordered Steps.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from hostprep.adapters.registry import AdapterRegistry
from hostprep.core.data.recipes import TOOL_ORDER, TOOL_RECIPES
from hostprep.core.engine.mutator import Mutator
from hostprep.core.engine.probe import Probe
from hostprep.core.engine.snapshot import Snapshotter
from hostprep.core.engine.step import Step
from hostprep.core.models.action import Receipt
from hostprep.core.models.capability import Capability
from hostprep.core.models.host import HostConfig, TargetUser
from hostprep.core.steps.directive import DirectiveStep, ssh_password_check
from hostprep.core.steps.package import Hook, PackageStep
from hostprep.core.steps.repository import RepositoryStep

logger = logging.getLogger(__name__)

SSH_STEP = "ssh-password-auth"
REPOSITORY_STEP = "repository"


def _fill(value: str, user: TargetUser) -> str:
    return (
        value.replace("{user}", user.name)
        .replace("{home}", str(user.home))
        .replace("{hostname}", user.hostname)
    )


def resolve_target(target: str, user: TargetUser) -> Path:
    """Expand ``~`` and placeholders against the target user's home."""
    value = _fill(target, user)
    if value == "~":
        return user.home
    if value.startswith("~/"):
        return user.home / value[2:]
    return Path(value)


def _hook(entry: dict, registry: AdapterRegistry, user: TargetUser) -> Hook:
    label = entry["label"]

    if "git_config" in entry:
        key, value = entry["git_config"]
        value = _fill(value, user)

        def _git() -> Receipt:
            return registry.vcs.set_global_config(key, value, as_user=user.name)

        def _git_done() -> bool:
            current = registry.vcs.get_global_config(key, as_user=user.name)
            return current.ok and current.output == value

        return Hook(label, _git, _git_done)

    command = [_fill(part, user) for part in entry["command"]]
    as_user = user.name if entry.get("as_user") else None

    def _command() -> Receipt:
        return registry.runner.run(command, timeout=60, as_user=as_user)

    return Hook(label, _command, _check(entry.get("check"), registry, user))


def _check(
    entry: dict | None,
    registry: AdapterRegistry,
    user: TargetUser,
) -> Callable[[], bool] | None:
    if not entry:
        return None

    if "dir" in entry:
        path = Path(_fill(entry["dir"], user))
        return lambda: registry.fs.is_dir(path)

    command = [_fill(part, user) for part in entry["command"]]
    word = entry.get("word")
    contains = _fill(entry["contains"], user) if "contains" in entry else None

    def _done() -> bool:
        r = registry.runner.run(command, timeout=30)
        if r.failed:
            return False
        if word is not None and word not in r.output.split():
            return False
        return contains is None or contains in r.output

    return _done


def tool_step(
    tool_id: str,
    registry: AdapterRegistry,
    probe: Probe,
    user: TargetUser,
) -> PackageStep:
    """A PackageStep built from ``TOOL_RECIPES[tool_id]``."""
    recipe = TOOL_RECIPES[tool_id]
    return PackageStep(
        tool_id,
        capability=Capability.binary(recipe["cli"]),
        probe=probe,
        packages=registry.packages,
        prerequisites=recipe.get("prerequisites", ()),
        apt_source=recipe.get("apt_source"),
        install=recipe.get("packages", ()),
        deb_url=recipe.get("deb_url"),
        hooks=[_hook(h, registry, user) for h in recipe.get("post_install", ())],
        service=recipe.get("service") if recipe.get("apt_source") else None,
        description=recipe["label"],
    )


def build_steps(
    config: HostConfig,
    registry: AdapterRegistry,
    user: TargetUser,
    *,
    probe: Probe | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> list[Step]:
    """The full, ordered provisioning plan for one host."""
    probe = probe or Probe(registry.fs, registry.services)
    steps: list[Step] = [tool_step(t, registry, probe, user) for t in TOOL_ORDER]

    ssh = config.ssh
    snapshotter = Snapshotter(registry.fs, clock=clock)
    steps.append(
        DirectiveStep(
            SSH_STEP,
            layout=ssh.layout(),
            directives=ssh.directive_list(),
            probe=probe,
            mutator=Mutator(registry.fs, snapshotter, probe.locator),
            services=registry.services,
            live_check=ssh_password_check(registry.runner, user.name) if ssh.verify_live else None,
            description="SSH password authentication",
        )
    )

    repo = config.repository
    steps.append(
        RepositoryStep(
            REPOSITORY_STEP,
            url=repo.url,
            target=resolve_target(repo.target, user),
            vcs=registry.vcs,
            fs=registry.fs,
            as_user=user.name,
        )
    )
    return steps
