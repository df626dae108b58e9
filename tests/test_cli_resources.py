"""Tests for the plan and apply commands."""

import subprocess
from unittest.mock import patch

import pytest

from bootlayer.cli.resources import (
    ResourceArgs,
    apply_command,
    destroy_command,
    load_resources,
    plan_command,
    resources_from_args,
)
from bootlayer.config.settings import Settings
from bootlayer.core.errors import ConfigurationError, ExitCode

CONFIG = """
project:
  id: my-project
  zone: us-west1-a
resources:
  - kind: static-ip
    name: web-ip
  - kind: firewall-rule
    name: allow-web
  - kind: bucket
    name: freehost-backups
"""


class FakeGcloud:
    """Answers describe/create/delete calls for a set of existing resources."""

    def __init__(self, existing=()):
        self.existing = set(existing)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        verb, target = cmd[3], cmd[4]
        if verb == "describe":
            if target in self.existing:
                return subprocess.CompletedProcess(cmd, 0, stdout=target, stderr="")
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="NOT_FOUND")
        if verb == "create":
            self.existing.add(target)
        if verb == "delete":
            if target not in self.existing:
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="NOT_FOUND")
            self.existing.discard(target)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def verbs(self, verb):
        return [cmd[4] for cmd in self.calls if cmd[3] == verb]


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "host.yaml"
    path.write_text(CONFIG)
    return path


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        log_file=tmp_path / "bootlayer.log",
        retry_base_delay=0.0,
        non_interactive=True,
    )


class TestResourcesFromArgs:
    def test_creation_order_and_wiring(self):
        args = ResourceArgs(
            project="p",
            vm_name="vm",
            firewall_rule="fw",
            tags="http-server",
            static_ip="ip",
            service_account="sa",
            bucket="b",
            repo_name="repo",
        )

        configs = resources_from_args(args)

        assert [c.kind for c in configs] == [
            "static-ip",
            "service-account",
            "bucket",
            "vm",
            "firewall-rule",
            "artifact-registry",
        ]
        vm = configs[3]
        assert vm.params == {
            "tags": "http-server",
            "address": "ip",
            "service_account": "sa@p.iam.gserviceaccount.com",
        }

    def test_nothing_named(self):
        assert resources_from_args(ResourceArgs()) == []


class TestLoadResources:
    def test_file_and_args_merged(self, config_file):
        project, configs = load_resources(config_file, ResourceArgs(vm_name="vm"))
        assert project.id == "my-project"
        assert [c.name for c in configs] == ["web-ip", "allow-web", "freehost-backups", "vm"]

    def test_args_override_project(self, config_file):
        project, _ = load_resources(config_file, ResourceArgs(project="other"))
        assert project.id == "other"
        assert project.zone == "us-west1-a"

    def test_no_resources(self):
        with pytest.raises(ConfigurationError, match="No resources"):
            load_resources(None, ResourceArgs(project="p"))

    def test_no_project(self):
        with pytest.raises(ConfigurationError, match="No GCP project"):
            load_resources(None, ResourceArgs(bucket="b"))


class TestPlanCommand:
    def test_plan_makes_no_changes(self, config_file, settings):
        gcloud = FakeGcloud(existing={"web-ip"})

        result = plan_command(config_file, settings=settings, runner=gcloud)

        assert result == ExitCode.SUCCESS
        assert gcloud.verbs("create") == []
        assert len(gcloud.verbs("describe")) == 3

    def test_unknown_status_aborts(self, config_file, settings):
        def denied(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="PERMISSION_DENIED")

        assert plan_command(config_file, settings=settings, runner=denied) == (
            ExitCode.PROVIDER_ERROR
        )


class TestApplyCommand:
    def test_creates_only_missing(self, config_file, settings):
        gcloud = FakeGcloud(existing={"web-ip", "gs://freehost-backups"})

        result = apply_command(config_file, assume_yes=True, settings=settings, runner=gcloud)

        assert result == ExitCode.SUCCESS
        assert gcloud.verbs("create") == ["allow-web"]

    def test_everything_exists(self, config_file, settings):
        gcloud = FakeGcloud(existing={"web-ip", "allow-web", "gs://freehost-backups"})

        assert apply_command(config_file, assume_yes=True, settings=settings, runner=gcloud) == 0
        assert gcloud.verbs("create") == []

    def test_non_interactive_creates_without_prompt(self, config_file, settings):
        gcloud = FakeGcloud(existing={"web-ip", "gs://freehost-backups"})

        with patch("bootlayer.cli.resources.confirm_prompt") as mock_confirm:
            result = apply_command(
                config_file, non_interactive=True, settings=settings, runner=gcloud
            )

        assert result == ExitCode.SUCCESS
        assert gcloud.verbs("create") == ["allow-web"]
        mock_confirm.assert_not_called()

    @patch("bootlayer.cli.resources.is_interactive", return_value=False)
    def test_no_terminal_without_flags_requires_yes(self, mock_tty, config_file, tmp_path):
        settings = Settings(_env_file=None, log_file=tmp_path / "l.log")
        gcloud = FakeGcloud()

        result = apply_command(config_file, settings=settings, runner=gcloud)

        assert result == ExitCode.WARNING
        assert gcloud.verbs("create") == []

    @patch("bootlayer.cli.resources.confirm_prompt", return_value=True)
    @patch("bootlayer.cli.resources.is_interactive", return_value=True)
    def test_confirmed_interactively(self, mock_tty, mock_confirm, config_file, tmp_path):
        settings = Settings(_env_file=None, log_file=tmp_path / "l.log")
        gcloud = FakeGcloud()

        assert apply_command(config_file, settings=settings, runner=gcloud) == ExitCode.SUCCESS
        assert gcloud.verbs("create") == ["web-ip", "allow-web", "gs://freehost-backups"]
        mock_confirm.assert_called_once()

    def test_create_failure_rolls_back(self, config_file, settings):
        gcloud = FakeGcloud()

        def failing(cmd, **kwargs):
            if cmd[3] == "create" and cmd[4] == "gs://freehost-backups":
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="QUOTA_EXCEEDED")
            return gcloud(cmd, **kwargs)

        result = apply_command(config_file, assume_yes=True, settings=settings, runner=failing)

        assert result == ExitCode.PROVIDER_ERROR
        assert gcloud.verbs("delete") == ["allow-web", "web-ip"]

    def test_create_failure_prints_rollback_report(self, config_file, settings):
        gcloud = FakeGcloud()

        def failing(cmd, **kwargs):
            if cmd[3] == "create" and cmd[4] == "allow-web":
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="QUOTA_EXCEEDED")
            return gcloud(cmd, **kwargs)

        with patch("bootlayer.cli.resources.print_rollback_report") as mock_report:
            result = apply_command(config_file, assume_yes=True, settings=settings, runner=failing)

        assert result == ExitCode.PROVIDER_ERROR
        report = mock_report.call_args.args[0]
        assert report.reverted == ["static-ip/web-ip"]


class TestDestroyCommand:
    def test_deletes_in_reverse_declared_order(self, config_file, settings):
        gcloud = FakeGcloud(existing={"web-ip", "allow-web", "gs://freehost-backups"})

        result = destroy_command(config_file, assume_yes=True, settings=settings, runner=gcloud)

        assert result == ExitCode.SUCCESS
        assert gcloud.verbs("delete") == ["gs://freehost-backups", "allow-web", "web-ip"]
        assert gcloud.existing == set()

    def test_already_gone_is_tolerated(self, config_file, settings):
        gcloud = FakeGcloud(existing={"allow-web"})

        result = destroy_command(config_file, assume_yes=True, settings=settings, runner=gcloud)

        assert result == ExitCode.SUCCESS
        assert len(gcloud.verbs("delete")) == 3

    def test_requires_confirmation(self, config_file, settings):
        gcloud = FakeGcloud(existing={"web-ip"})

        result = destroy_command(config_file, settings=settings, runner=gcloud)

        assert result == ExitCode.WARNING
        assert gcloud.verbs("delete") == []

    @patch("bootlayer.cli.resources.confirm_prompt", return_value=False)
    @patch("bootlayer.cli.resources.is_interactive", return_value=True)
    def test_operator_declines(self, mock_tty, mock_confirm, config_file, tmp_path):
        settings = Settings(_env_file=None, log_file=tmp_path / "l.log")
        gcloud = FakeGcloud(existing={"web-ip"})

        assert destroy_command(config_file, settings=settings, runner=gcloud) == ExitCode.WARNING
        assert gcloud.verbs("delete") == []
        mock_confirm.assert_called_once()

    def test_failed_delete_continues_and_reports(self, config_file, settings):
        gcloud = FakeGcloud(existing={"web-ip", "allow-web", "gs://freehost-backups"})

        def failing(cmd, **kwargs):
            if cmd[3] == "delete" and cmd[4] == "allow-web":
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="PERMISSION_DENIED")
            return gcloud(cmd, **kwargs)

        result = destroy_command(config_file, assume_yes=True, settings=settings, runner=failing)

        assert result == ExitCode.PROVIDER_ERROR
        assert gcloud.existing == {"allow-web"}
