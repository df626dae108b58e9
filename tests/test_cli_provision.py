"""Tests for the provision, status and reset commands."""

from unittest.mock import patch

import pytest

from bootlayer.cli.provision import (
    print_sequence_summary,
    provision_command,
    reset_command,
    status_command,
)
from bootlayer.config.settings import Settings
from bootlayer.core.errors import ExitCode, PhaseFailedError, ProviderError
from bootlayer.orchestration import (
    PhaseState,
    RollbackReport,
    SequenceResult,
    SequenceStatus,
)

CONFIG = """
namespace: freehost
bundle:
  uri: gs://bucket/bundle.tar.gz
  checksum: 0123456789abcdef0123456789abcdef
phases:
  - name: swap
    script: swap.sh
  - name: nginx
    script: nginx.sh
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "host.yaml"
    path.write_text(CONFIG)
    return path


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        state_dir=tmp_path / "state",
        log_file=tmp_path / "bootlayer.log",
        non_interactive=True,
    )


@pytest.fixture
def provisioner():
    with patch("bootlayer.cli.provision.HostProvisioner") as mock_cls:
        instance = mock_cls.return_value
        instance.namespace = "freehost"
        instance.markers.is_complete.return_value = False
        instance.status.return_value = {
            "swap": PhaseState.COMPLETED,
            "nginx": PhaseState.PENDING,
        }
        yield instance


class TestProvisionCommand:
    def test_success(self, config_file, settings, provisioner):
        provisioner.provision.return_value = SequenceResult(
            status=SequenceStatus.ALL_COMPLETE, completed=["nginx"], skipped=["swap"]
        )

        assert provision_command(config_file, settings=settings) == ExitCode.SUCCESS
        provisioner.provision.assert_called_once_with([])

    def test_partial_is_warning(self, config_file, settings, provisioner):
        provisioner.provision.return_value = SequenceResult(
            status=SequenceStatus.PARTIAL, completed=["swap"], excluded=["nginx"]
        )

        result = provision_command(config_file, skip=["nginx"], settings=settings)

        assert result == ExitCode.WARNING
        provisioner.provision.assert_called_once_with(["nginx"])

    def test_phase_failure_exit_code(self, config_file, settings, provisioner):
        report = RollbackReport(irreversible=["nginx"])
        provisioner.provision.side_effect = PhaseFailedError(
            "nginx", ProviderError("exit 1"), rollback=report
        )

        with patch("bootlayer.cli.provision.print_rollback_report") as mock_report:
            result = provision_command(config_file, settings=settings)

        assert result == ExitCode.PHASE_FAILED
        mock_report.assert_called_once_with(report)

    @patch("bootlayer.cli.provision.confirm")
    @patch("bootlayer.cli.provision.is_interactive", return_value=True)
    def test_already_complete_never_prompts(
        self, mock_tty, mock_confirm, config_file, tmp_path, provisioner
    ):
        settings = Settings(_env_file=None, state_dir=tmp_path, log_file=tmp_path / "l.log")
        provisioner.markers.is_complete.return_value = True

        with patch("bootlayer.cli.provision.print_table") as mock_table:
            assert provision_command(config_file, settings=settings) == ExitCode.SUCCESS

        mock_confirm.assert_not_called()
        mock_table.assert_not_called()
        provisioner.provision.assert_not_called()

    def test_missing_config(self, tmp_path, settings):
        assert (
            provision_command(tmp_path / "missing.yaml", settings=settings)
            == ExitCode.CONFIG_ERROR
        )

    @patch("bootlayer.cli.provision.confirm", return_value=False)
    @patch("bootlayer.cli.provision.is_interactive", return_value=True)
    def test_operator_declines(self, mock_tty, mock_confirm, config_file, tmp_path, provisioner):
        settings = Settings(_env_file=None, state_dir=tmp_path, log_file=tmp_path / "l.log")

        assert provision_command(config_file, settings=settings) == ExitCode.WARNING
        provisioner.provision.assert_not_called()

    @patch("bootlayer.cli.provision.confirm")
    @patch("bootlayer.cli.provision.is_interactive", return_value=True)
    def test_yes_skips_prompt(self, mock_tty, mock_confirm, config_file, tmp_path, provisioner):
        settings = Settings(_env_file=None, state_dir=tmp_path, log_file=tmp_path / "l.log")
        provisioner.provision.return_value = SequenceResult(status=SequenceStatus.ALL_COMPLETE)

        assert provision_command(config_file, assume_yes=True, settings=settings) == 0
        mock_confirm.assert_not_called()


class TestStatusAndReset:
    def test_status_reads_markers(self, config_file, settings):
        (settings.state_dir).mkdir()
        (settings.state_dir / "freehost-swap-complete").write_text("")

        with patch("bootlayer.cli.provision.print_table") as mock_table:
            assert status_command(config_file, settings=settings) == ExitCode.SUCCESS

        rows = mock_table.call_args.args[2]
        assert [row[0] for row in rows] == ["swap", "nginx"]
        assert "completed" in rows[0][1]
        assert "pending" in rows[1][1]

    def test_reset_phase(self, config_file, settings):
        settings.state_dir.mkdir()
        (settings.state_dir / "freehost-nginx-failed").write_text("")
        (settings.state_dir / "freehost-complete").write_text("")

        assert reset_command(config_file, phases=["nginx"], settings=settings) == ExitCode.SUCCESS

        assert list(settings.state_dir.iterdir()) == []

    def test_reset_unknown_phase(self, config_file, settings):
        assert reset_command(config_file, phases=["nope"], settings=settings) == (
            ExitCode.CONFIG_ERROR
        )

    def test_reset_nothing_selected(self, config_file, settings):
        assert reset_command(config_file, phases=[], settings=settings) == (
            ExitCode.VALIDATION_ERROR
        )


class TestOutput:
    @patch("bootlayer.cli.provision.console")
    def test_already_complete_summary(self, mock_console):
        with patch("bootlayer.cli.provision.success") as mock_success:
            print_sequence_summary(SequenceResult(status=SequenceStatus.ALREADY_COMPLETE))
        mock_success.assert_called_once()
