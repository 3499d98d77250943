"""
Tool recipes — how each tool is detected, sourced and installed.

Pure data. Placeholders:

- ``{arch}`` / ``{codename}``: dpkg architecture and release codename,
  filled in by the apt adapter.
- ``{keyring}``: the source's keyring path (``repo_line`` only).
- ``{user}`` / ``{home}`` / ``{hostname}``: the target user and host,
  filled in for hooks.

Hook kinds: ``command`` (argv, run as root unless ``as_user``) and
``git_config`` ([key, value], always for the target user).

A hook's ``check`` is its read-only post-condition, evaluated on every
run so an interrupted setup is finished later:

- ``{"command": argv}``: the command succeeds.
- ``"word"``: ...and its output contains this whitespace-separated word.
- ``"contains"``: ...and its output contains this text.
- ``{"dir": path}``: the directory exists.

``git_config`` hooks check the current value themselves.
"""

from __future__ import annotations

TOOL_RECIPES: dict[str, dict] = {

    "git": {
        "label": "Git",
        "cli": "git",
        "packages": ["git"],
        "post_install": [
            {
                "label": "Set git user.name",
                "git_config": ["user.name", "{user}"],
            },
            {
                "label": "Set git user.email",
                "git_config": ["user.email", "{user}@{hostname}"],
            },
        ],
    },

    "docker": {
        "label": "Docker",
        "cli": "docker",
        "prerequisites": [
            "apt-transport-https", "ca-certificates", "curl",
            "software-properties-common", "gnupg",
        ],
        "apt_source": {
            "name": "docker",
            "key_url": "https://download.docker.com/linux/ubuntu/gpg",
            "keyring": "/usr/share/keyrings/docker-archive-keyring.gpg",
            "list_path": "/etc/apt/sources.list.d/docker.list",
            "repo_line": (
                "deb [arch={arch} signed-by={keyring}] "
                "https://download.docker.com/linux/ubuntu {codename} stable"
            ),
            "dearmor": True,
        },
        "packages": ["docker-ce", "docker-ce-cli", "containerd.io"],
        "post_install": [
            {
                "label": "Create docker group",
                "command": ["groupadd", "-f", "docker"],
                "check": {"command": ["getent", "group", "docker"]},
            },
            {
                "label": "Add user to docker group",
                "command": ["usermod", "-aG", "docker", "{user}"],
                "check": {"command": ["id", "-nG", "{user}"], "word": "docker"},
            },
        ],
        "service": "docker",
    },

    "tailscale": {
        "label": "Tailscale",
        "cli": "tailscale",
        "prerequisites": ["curl", "lsb-release"],
        "apt_source": {
            "name": "tailscale",
            "key_url": "https://pkgs.tailscale.com/stable/ubuntu/{codename}.noarmor.gpg",
            "keyring": "/usr/share/keyrings/tailscale-archive-keyring.gpg",
            "list_path": "/etc/apt/sources.list.d/tailscale.list",
            "list_url": "https://pkgs.tailscale.com/stable/ubuntu/{codename}.tailscale-keyring.list",
        },
        "packages": ["tailscale"],
        "post_install": [
            {
                "label": "Allow user to operate tailscale",
                "command": ["tailscale", "set", "--operator={user}"],
                "check": {
                    "command": ["tailscale", "debug", "prefs"],
                    "contains": '"OperatorUser": "{user}"',
                },
            },
        ],
        "service": "tailscaled",
    },

    "cloudflared": {
        "label": "Cloudflared",
        "cli": "cloudflared",
        "deb_url": (
            "https://github.com/cloudflare/cloudflared/releases/latest/"
            "download/cloudflared-linux-{arch}.deb"
        ),
        "post_install": [
            {
                "label": "Create cloudflared config directory",
                "command": ["mkdir", "-p", "{home}/.cloudflared"],
                "check": {"dir": "{home}/.cloudflared"},
                "as_user": True,
            },
        ],
    },

    "openssh-server": {
        "label": "OpenSSH server",
        "cli": "sshd",
        "packages": ["openssh-server"],
        "service": "ssh",
    },
}

# Install order; docker and tailscale need curl and gnupg from apt first.
TOOL_ORDER: list[str] = ["git", "docker", "tailscale", "cloudflared", "openssh-server"]
