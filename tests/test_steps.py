"""
Tests for Step and the concrete steps — state machine, package,
directive and repository steps, and the step catalog.
"""

from pathlib import Path

import pytest

from hostprep.adapters.mock import MemoryFilesystem
from hostprep.adapters.shell.filesystem import LocalFilesystem
from hostprep.core.engine.errors import ConfigMutationFailure, VerificationWarning
from hostprep.core.engine.mutator import Mutator
from hostprep.core.engine.probe import Probe
from hostprep.core.engine.snapshot import Snapshotter
from hostprep.core.engine.step import IllegalTransition, Step
from hostprep.core.models.action import Receipt
from hostprep.core.models.capability import Capability
from hostprep.core.models.host import HostConfig, TargetUser
from hostprep.core.models.outcome import StepState
from hostprep.core.models.source import Directive, SourceLayout
from hostprep.core.steps.catalog import build_steps, resolve_target, tool_step
from hostprep.core.steps.directive import DirectiveStep, ssh_password_check
from hostprep.core.steps.package import Hook, PackageStep
from hostprep.core.steps.repository import RepositoryStep

PRIMARY = Path("/etc/ssh/sshd_config")
DROPIN = Path("/etc/ssh/sshd_config.d")
ALICE = TargetUser(name="alice", home=Path("/home/alice"), hostname="box")


# ── Step state machine ──────────────────────────────────────────


class FlakyVerifyStep(Step):
    def __init__(self, warn=None):
        super().__init__("flaky")
        self._warn = warn

    def probe(self):
        return False

    def apply(self):
        pass

    def verify(self):
        if self._warn:
            raise VerificationWarning(self._warn)
        return []


class TestStepStateMachine:
    def test_illegal_transition_raises(self):
        step = FlakyVerifyStep()
        with pytest.raises(IllegalTransition):
            step._transition(StepState.DONE)

    def test_terminal_state_cannot_rerun(self):
        step = FlakyVerifyStep()
        step.run()
        assert step.state == StepState.DONE
        with pytest.raises(IllegalTransition):
            step.run()

    def test_verification_warning_is_not_failure(self):
        step = FlakyVerifyStep(warn="could not connect")
        result = step.run()
        assert result.ok
        assert result.status == "applied"
        assert result.warnings == ["could not connect"]
        assert step.state == StepState.DONE

    def test_os_error_becomes_failure(self):
        class Broken(FlakyVerifyStep):
            def apply(self):
                raise PermissionError("denied")

        result = Broken().run()
        assert result.status == "failed"
        assert result.error_type == "os"

    def test_undecodable_file_becomes_failure(self):
        class Garbled(FlakyVerifyStep):
            def probe(self):
                raise UnicodeDecodeError("utf-8", b"\xfc", 0, 1, "invalid start byte")

        result = Garbled().run()
        assert result.status == "failed"
        assert "invalid start byte" in result.reason


# ── PackageStep ─────────────────────────────────────────────────


def _package_step(runner, make_registry, installed, **kwargs):
    registry = make_registry(MemoryFilesystem(), runner)
    probe = Probe(registry.fs, registry.services, which=lambda exe: f"/usr/bin/{exe}" if exe in installed else None)
    defaults = dict(
        capability=Capability.binary("git"),
        probe=probe,
        packages=registry.packages,
        install=["git"],
        description="Git",
    )
    defaults.update(kwargs)
    return PackageStep("git", **defaults)


class TestPackageStep:
    def test_satisfied_does_nothing(self, runner, make_registry):
        step = _package_step(runner, make_registry, installed={"git"})
        result = step.run()
        assert result.status == "satisfied"
        assert runner.calls == []

    def test_installs_missing_package(self, runner, make_registry):
        installed = set()
        runner.respond("dpkg-query", ok=False, error="no packages found")
        runner.respond("apt-get", "install", effect=lambda argv: installed.add("git"))
        step = _package_step(runner, make_registry, installed)

        result = step.run()
        assert result.status == "applied"
        assert ["apt-get", "update"] in runner.calls
        assert ["apt-get", "install", "-y", "git"] in runner.calls

    def test_install_failure_is_acquisition_failure(self, runner, make_registry):
        runner.respond("dpkg-query", ok=False)
        runner.respond("apt-get", "install", ok=False, error="E: Unable to locate package git")
        result = _package_step(runner, make_registry, set()).run()
        assert result.status == "failed"
        assert result.error_type == "acquisition"
        assert "Unable to locate package" in result.reason

    def test_binary_still_missing_after_install(self, runner, make_registry):
        runner.respond("dpkg-query", ok=False)
        result = _package_step(runner, make_registry, set()).run()
        assert result.status == "failed"
        assert result.error_type == "acquisition"
        assert "still not in place" in result.reason

    def test_hooks_run_in_order_after_install(self, runner, make_registry):
        installed = set()
        order = []
        runner.respond("dpkg-query", ok=False)
        runner.respond("apt-get", "install", effect=lambda argv: installed.add("git"))

        def hook(label):
            def _run():
                order.append(label)
                return Receipt.success(adapter="test", operation=label)
            return Hook(label, _run)

        step = _package_step(runner, make_registry, installed, hooks=[hook("one"), hook("two")])
        assert step.run().ok
        assert order == ["one", "two"]

    def test_failing_hook_fails_step(self, runner, make_registry):
        installed = set()
        runner.respond("dpkg-query", ok=False)
        runner.respond("apt-get", "install", effect=lambda argv: installed.add("git"))
        bad = Hook("Add user to group", lambda: Receipt.failure(adapter="t", operation="x", error="no such user"))

        result = _package_step(runner, make_registry, installed, hooks=[bad]).run()
        assert result.status == "failed"
        assert "Add user to group failed: no such user" in result.reason

    def test_inactive_service_is_warning(self, runner, make_registry):
        installed = set()
        runner.respond("dpkg-query", ok=False)
        runner.respond("apt-get", "install", effect=lambda argv: installed.add("git"))
        runner.respond("systemctl", "is-active", ok=False)

        result = _package_step(runner, make_registry, installed, service="docker").run()
        assert result.status == "applied"
        assert result.warnings == ["docker service is not active"]

    def test_unfinished_hook_keeps_step_pending(self, runner, make_registry):
        done = {"first": True, "second": False}
        ran = []

        def hook(label):
            def _run():
                ran.append(label)
                done[label] = True
                return Receipt.success(adapter="test", operation=label)
            return Hook(label, _run, lambda: done[label])

        step = _package_step(runner, make_registry, {"git"}, hooks=[hook("first"), hook("second")])
        assert not step.probe()

        result = step.run()
        assert result.status == "applied"
        assert ran == ["second"]
        assert not runner.ran("apt-get")

    def test_unfinished_hook_failure_fails_again(self, runner, make_registry):
        bad = Hook(
            "Add user to group",
            lambda: Receipt.failure(adapter="t", operation="x", error="no such group"),
            lambda: False,
        )
        result = _package_step(runner, make_registry, {"git"}, hooks=[bad]).run()
        assert result.status == "failed"
        assert "Add user to group failed" in result.reason
        assert not runner.ran("apt-get")

    def test_hook_without_check_runs_only_on_install(self, runner, make_registry):
        ran = []
        once = Hook("Announce", lambda: ran.append(1) or Receipt.success(adapter="t", operation="x"))
        result = _package_step(runner, make_registry, {"git"}, hooks=[once]).run()
        assert result.status == "satisfied"
        assert ran == []

    def test_apt_source_registered_before_install(self, runner, make_registry, tmp_path):
        installed = set()
        runner.respond("dpkg-query", ok=False)
        runner.respond("apt-get", "install", effect=lambda argv: installed.add(argv[-1]))
        source = {
            "name": "tailscale",
            "key_url": "https://example.invalid/key.gpg",
            "keyring": str(tmp_path / "keyrings" / "tailscale.gpg"),
            "list_path": str(tmp_path / "sources" / "tailscale.list"),
            "repo_line": "deb [signed-by={keyring}] https://example.invalid stable main",
        }
        step = _package_step(
            runner,
            make_registry,
            installed,
            capability=Capability.binary("tailscale"),
            prerequisites=["curl"],
            apt_source=source,
            install=["tailscale"],
        )
        assert step.run().ok
        assert (tmp_path / "keyrings" / "tailscale.gpg").read_bytes() == b"key-material"
        assert "signed-by=" + str(tmp_path / "keyrings" / "tailscale.gpg") in (
            tmp_path / "sources" / "tailscale.list"
        ).read_text()
        installs = [c for c in runner.calls if c[:2] == ["apt-get", "install"]]
        assert installs == [["apt-get", "install", "-y", "curl"], ["apt-get", "install", "-y", "tailscale"]]


# ── DirectiveStep ───────────────────────────────────────────────


def _directive_step(fs, runner, make_registry, layout, clock, live_check=None):
    registry = make_registry(fs, runner)
    probe = Probe(fs, registry.services)
    return DirectiveStep(
        "ssh-password-auth",
        layout=layout,
        directives=[
            Directive(name="PasswordAuthentication", value="yes"),
            Directive(name="KbdInteractiveAuthentication", value="yes"),
        ],
        probe=probe,
        mutator=Mutator(fs, Snapshotter(fs, clock), probe.locator),
        services=registry.services,
        live_check=live_check,
        description="SSH password authentication",
    )


class TestDirectiveStep:
    def test_satisfied_without_reload(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({
            PRIMARY: "PasswordAuthentication yes\nKbdInteractiveAuthentication yes\n",
        })
        result = _directive_step(fs, runner, make_registry, layout, clock).run()
        assert result.status == "satisfied"
        assert not runner.ran("systemctl", "restart")
        assert fs.journal == []

    def test_apply_tests_config_then_reloads(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication no\n"}, dirs=[DROPIN])
        result = _directive_step(fs, runner, make_registry, layout, clock).run()

        assert result.status == "applied"
        assert runner.calls.index(["sshd", "-t"]) < runner.calls.index(["systemctl", "restart", "ssh"])
        assert fs.files[PRIMARY] == "PasswordAuthentication yes\n"
        assert fs.files[DROPIN / "99-enable-password-auth.conf"] == "KbdInteractiveAuthentication yes\n"
        assert result.backups == ["/etc/ssh/sshd_config.backup.20240501123000"]

    def test_config_test_failure_skips_reload(self, runner, make_registry, layout, clock):
        runner.respond("sshd", "-t", ok=False, error="line 3: Bad configuration option")
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication no\nKbdInteractiveAuthentication yes\n"})
        result = _directive_step(fs, runner, make_registry, layout, clock).run()

        assert result.status == "failed"
        assert result.error_type == "config-mutation"
        assert "Bad configuration option" in result.reason
        assert "sshd_config.backup.20240501123000" in result.reason
        assert not runner.ran("systemctl", "restart")

    def test_unhealthy_after_reload_fails(self, runner, make_registry, layout, clock):
        runner.respond("systemctl", "is-active", ok=False)
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication no\nKbdInteractiveAuthentication yes\n"})
        result = _directive_step(fs, runner, make_registry, layout, clock).run()
        assert result.status == "failed"
        assert "not healthy after reload" in result.reason

    def test_inconclusive_live_check_warns(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication no\nKbdInteractiveAuthentication yes\n"})
        step = _directive_step(
            fs, runner, make_registry, layout, clock,
            live_check=lambda: (None, "connection refused"),
        )
        result = step.run()
        assert result.status == "applied"
        assert result.warnings == ["Could not confirm SSH password authentication: connection refused"]

    def test_negative_live_check_warns_not_reverts(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication no\nKbdInteractiveAuthentication yes\n"})
        step = _directive_step(
            fs, runner, make_registry, layout, clock,
            live_check=lambda: (False, "sshd only offers publickey"),
        )
        result = step.run()
        assert result.status == "applied"
        assert "Manual verification is recommended" in result.warnings[0]
        assert fs.files[PRIMARY].startswith("PasswordAuthentication yes")

    def test_stopped_service_is_reloaded(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication yes\nKbdInteractiveAuthentication yes\n"})
        runner.respond("systemctl", "is-active", ok=False)
        runner.respond(
            "systemctl", "restart", "ssh",
            effect=lambda argv: runner.respond("systemctl", "is-active"),
        )
        result = _directive_step(fs, runner, make_registry, layout, clock).run()

        assert result.status == "applied"
        assert runner.ran("systemctl", "restart", "ssh")
        assert result.backups == []
        assert fs.journal == []

    def test_failing_config_test_keeps_step_pending(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication yes\nKbdInteractiveAuthentication yes\n"})
        runner.respond("sshd", "-t", ok=False, error="line 3: Bad configuration option")
        step = _directive_step(fs, runner, make_registry, layout, clock)
        assert not step.probe()

        result = step.run()
        assert result.status == "failed"
        assert "configuration test failed" in result.reason
        assert not runner.ran("systemctl", "restart")

    def test_files_newer_than_daemon_are_reloaded(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem()
        fs.now = 900.0
        fs.write_text_atomic(PRIMARY, "PasswordAuthentication yes\nKbdInteractiveAuthentication yes\n")
        runner.respond("systemctl", "show", "ssh", output="812\n")
        runner.respond("ps", "-o", "etimes=", "-p", "812", output="300\n")
        runner.respond(
            "systemctl", "restart", "ssh",
            effect=lambda argv: runner.respond("ps", "-o", "etimes=", "-p", "812", output="0\n"),
        )
        step = _directive_step(fs, runner, make_registry, layout, clock)

        assert step.run().status == "applied"
        assert _directive_step(fs, runner, make_registry, layout, clock).run().status == "satisfied"
        assert sum(1 for c in runner.calls if c[:2] == ["systemctl", "restart"]) == 1

    def test_daemon_started_after_change_is_satisfied(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication yes\nKbdInteractiveAuthentication yes\n"})
        runner.respond("systemctl", "show", "ssh", output="812\n")
        runner.respond("ps", "-o", "etimes=", "-p", "812", output="50\n")
        result = _directive_step(fs, runner, make_registry, layout, clock).run()
        assert result.status == "satisfied"

    def test_negative_live_check_on_correct_files_reloads(self, runner, make_registry, layout, clock):
        fs = MemoryFilesystem({PRIMARY: "PasswordAuthentication yes\nKbdInteractiveAuthentication yes\n"})
        step = _directive_step(
            fs, runner, make_registry, layout, clock,
            live_check=lambda: (False, "sshd only offers publickey"),
        )
        result = step.run()
        assert result.status == "applied"
        assert runner.ran("systemctl", "restart", "ssh")
        assert "Manual verification is recommended" in result.warnings[0]

    def test_latin1_primary_on_disk(self, runner, make_registry, tmp_path, clock):
        local = SourceLayout(
            service="ssh",
            primary=tmp_path / "sshd_config",
            dropin_dir=tmp_path / "sshd_config.d",
            fallback_name="99-enable-password-auth.conf",
            test_command=("sshd", "-t"),
        )
        local.primary.write_bytes(b"# Konfiguration f\xfcr M\xfcller\nPasswordAuthentication no\n")
        result = _directive_step(LocalFilesystem(), runner, make_registry, local, clock).run()

        assert result.status == "applied", result.reason
        assert local.primary.read_bytes() == (
            b"# Konfiguration f\xfcr M\xfcller\nPasswordAuthentication yes\nKbdInteractiveAuthentication yes\n"
        )


class TestSshPasswordCheck:
    def test_password_offered(self, runner):
        runner.respond("ssh", ok=False, error="alice@localhost: Permission denied (publickey,password).")
        assert ssh_password_check(runner, "alice")() == (True, "sshd offers publickey, password")

    def test_keyboard_interactive_offered(self, runner):
        runner.respond("ssh", ok=False, error="Permission denied (publickey,keyboard-interactive).")
        confirmed, _ = ssh_password_check(runner, "alice")()
        assert confirmed is True

    def test_publickey_only(self, runner):
        runner.respond("ssh", ok=False, error="Permission denied (publickey).")
        confirmed, detail = ssh_password_check(runner, "alice")()
        assert confirmed is False
        assert "publickey" in detail

    def test_effective_config_says_no(self, runner):
        runner.respond("sshd", "-T", output="port 22\npasswordauthentication no\n")
        confirmed, _ = ssh_password_check(runner, "alice")()
        assert confirmed is False
        assert not runner.ran("ssh")

    def test_connection_refused_is_inconclusive(self, runner):
        runner.respond("ssh", ok=False, error="ssh: connect to host localhost port 22: Connection refused")
        confirmed, _ = ssh_password_check(runner, "alice")()
        assert confirmed is None

    def test_never_offers_public_keys(self, runner):
        runner.respond("ssh", ok=False, error="Permission denied (password).")
        ssh_password_check(runner, "alice")()
        argv = next(c for c in runner.calls if c[0] == "ssh")
        assert "PubkeyAuthentication=no" in argv
        assert "BatchMode=yes" in argv
        assert argv[-2] == "alice@localhost"


# ── RepositoryStep ──────────────────────────────────────────────


class TestRepositoryStep:
    def _step(self, fs, runner, make_registry):
        registry = make_registry(fs, runner)
        return RepositoryStep(
            "repository",
            url="https://github.com/onicarpeso/cftunnel.git",
            target=Path("/home/alice/cftunnel"),
            vcs=registry.vcs,
            fs=fs,
            as_user="alice",
        )

    def test_always_reclones(self, runner, make_registry, clone_effect):
        fs = MemoryFilesystem({
            "/home/alice/cftunnel/.git/HEAD": "old\n",
            "/home/alice/cftunnel/local-change.txt": "mine\n",
        })
        runner.respond("git", "clone", effect=clone_effect(fs))
        result = self._step(fs, runner, make_registry).run()

        assert result.status == "applied"
        assert ("remove", Path("/home/alice/cftunnel")) in fs.journal
        assert Path("/home/alice/cftunnel/local-change.txt") not in fs.files
        assert runner.call_options[-1]["as_user"] == "alice"

    def test_clone_failure(self, runner, make_registry):
        runner.respond("git", "clone", ok=False, error="fatal: repository not found")
        result = self._step(MemoryFilesystem(), runner, make_registry).run()
        assert result.status == "failed"
        assert "Failed to clone repository: fatal: repository not found" == result.reason

    def test_missing_git_dir_after_clone(self, runner, make_registry):
        result = self._step(MemoryFilesystem(), runner, make_registry).run()
        assert result.status == "failed"
        assert "not a git working copy" in result.reason


# ── Catalog ─────────────────────────────────────────────────────


class TestCatalog:
    def test_resolve_target(self):
        assert resolve_target("~/cftunnel", ALICE) == Path("/home/alice/cftunnel")
        assert resolve_target("~", ALICE) == Path("/home/alice")
        assert resolve_target("/srv/{user}/repo", ALICE) == Path("/srv/alice/repo")

    def test_step_order(self, runner, make_registry):
        steps = build_steps(HostConfig(), make_registry(MemoryFilesystem(), runner), ALICE)
        assert [s.name for s in steps] == [
            "git", "docker", "tailscale", "cloudflared", "openssh-server",
            "ssh-password-auth", "repository",
        ]

    def test_live_check_optional(self, runner, make_registry):
        config = HostConfig.model_validate({"ssh": {"verify_live": False}})
        steps = build_steps(config, make_registry(MemoryFilesystem(), runner), ALICE)
        ssh = next(s for s in steps if s.name == "ssh-password-auth")
        assert ssh._live_check is None

    def test_git_hooks_set_identity_for_user(self, runner, make_registry):
        registry = make_registry(MemoryFilesystem(), runner)
        step = tool_step("git", registry, Probe(registry.fs), ALICE)
        for hook in step._hooks:
            assert hook.action().ok
        assert runner.calls == [
            ["git", "config", "--global", "user.name", "alice"],
            ["git", "config", "--global", "user.email", "alice@box"],
        ]
        assert all(opts["as_user"] == "alice" for opts in runner.call_options)

    def test_docker_hooks_add_user_to_group(self, runner, make_registry):
        registry = make_registry(MemoryFilesystem(), runner)
        step = tool_step("docker", registry, Probe(registry.fs), ALICE)
        for hook in step._hooks:
            hook.action()
        assert runner.calls == [
            ["groupadd", "-f", "docker"],
            ["usermod", "-aG", "docker", "alice"],
        ]

    def test_cloudflared_dir_created_as_user(self, runner, make_registry):
        registry = make_registry(MemoryFilesystem(), runner)
        step = tool_step("cloudflared", registry, Probe(registry.fs), ALICE)
        step._hooks[0].action()
        assert runner.calls == [["mkdir", "-p", "/home/alice/.cloudflared"]]
        assert runner.call_options[0]["as_user"] == "alice"

    def test_docker_group_check_reads_membership(self, runner, make_registry):
        registry = make_registry(MemoryFilesystem(), runner)
        usermod = tool_step("docker", registry, Probe(registry.fs), ALICE)._hooks[1]
        runner.respond("id", "-nG", "alice", output="alice sudo docker-users\n")
        assert usermod.pending()
        runner.respond("id", "-nG", "alice", output="alice sudo docker\n")
        assert not usermod.pending()

    def test_git_identity_check_compares_values(self, runner, make_registry):
        registry = make_registry(MemoryFilesystem(), runner)
        name, email = tool_step("git", registry, Probe(registry.fs), ALICE)._hooks
        runner.respond("git", "config", "--global", "--get", "user.name", output="alice\n")
        runner.respond("git", "config", "--global", "--get", "user.email", ok=False, error="")
        assert not name.pending()
        assert email.pending()
        assert not runner.ran("git", "config", "--global", "user.name")

    def test_tailscale_operator_check(self, runner, make_registry):
        registry = make_registry(MemoryFilesystem(), runner)
        operator = tool_step("tailscale", registry, Probe(registry.fs), ALICE)._hooks[0]
        runner.respond("tailscale", "debug", "prefs", output='{\n  "OperatorUser": ""\n}')
        assert operator.pending()
        runner.respond("tailscale", "debug", "prefs", output='{\n  "OperatorUser": "alice"\n}')
        assert not operator.pending()

    def test_cloudflared_dir_check(self, runner, make_registry):
        fs = MemoryFilesystem()
        registry = make_registry(fs, runner)
        mkdir = tool_step("cloudflared", registry, Probe(fs), ALICE)._hooks[0]
        assert mkdir.pending()
        fs.dirs.add(Path("/home/alice/.cloudflared"))
        assert not mkdir.pending()
        assert runner.calls == []
