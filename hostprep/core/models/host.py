"""
Host model — the operator's settings for one provisioning run.

Loaded from hostprep.yml (optional). Every field has a default that
matches a stock Ubuntu host, so an empty or missing file is valid.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from hostprep.core.models.source import Directive, SourceLayout


class SshSettings(BaseModel):
    """sshd configuration layout and the directives to enforce."""

    service: str = "ssh"
    primary: Path = Path("/etc/ssh/sshd_config")
    dropin_dir: Path | None = Path("/etc/ssh/sshd_config.d")
    include_pattern: str = "*.conf"
    fallback_name: str = "99-enable-password-auth.conf"
    test_command: list[str] = Field(default_factory=lambda: ["sshd", "-t"])
    directives: dict[str, str] = Field(
        default_factory=lambda: {
            "PasswordAuthentication": "yes",
            # Required alongside PasswordAuthentication on Ubuntu 22.04+
            "KbdInteractiveAuthentication": "yes",
        }
    )
    verify_live: bool = True

    def layout(self) -> SourceLayout:
        return SourceLayout(
            service=self.service,
            primary=self.primary,
            dropin_dir=self.dropin_dir,
            include_pattern=self.include_pattern,
            fallback_name=self.fallback_name,
            test_command=tuple(self.test_command),
        )

    def directive_list(self) -> list[Directive]:
        return [Directive(name=k, value=v) for k, v in self.directives.items()]


class RepositorySettings(BaseModel):
    """The repository to materialize in the target user's home."""

    url: str = "https://github.com/onicarpeso/cftunnel.git"
    target: str = "~/cftunnel"


class HostConfig(BaseModel):
    """Root settings model.

    ``user`` is the account that receives group membership, git
    identity, the tailscale operator role and the repository clone.
    When unset it is resolved from ``SUDO_USER`` / ``USER``.
    """

    user: str | None = None
    min_free_gb: int = 5
    disk_path: Path = Path("/")
    require_root: bool = True

    ssh: SshSettings = Field(default_factory=SshSettings)
    repository: RepositorySettings = Field(default_factory=RepositorySettings)


class TargetUser(BaseModel):
    """The resolved account per-user work is done for."""

    model_config = ConfigDict(frozen=True)

    name: str
    home: Path
    hostname: str = "localhost"
