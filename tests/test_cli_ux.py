"""Tests for CLI UX module - styling and interactive prompts."""

from unittest.mock import MagicMock, patch


class TestEnvironmentDetection:
    """Test environment detection functions."""

    def test_is_interactive_in_ci(self):
        """_is_interactive returns False when CI env var is set."""
        from bootlayer.cli.ux import _is_interactive

        with patch.dict("os.environ", {"CI": "true"}, clear=True):
            assert _is_interactive() is False

    def test_is_interactive_in_github_actions(self):
        """_is_interactive returns False in GitHub Actions."""
        from bootlayer.cli.ux import _is_interactive

        with patch.dict("os.environ", {"GITHUB_ACTIONS": "true"}, clear=True):
            assert _is_interactive() is False

    def test_is_interactive_with_tty(self):
        """_is_interactive returns True when stdin and stdout are TTYs."""
        from bootlayer.cli.ux import _is_interactive

        with patch.dict("os.environ", {}, clear=True):
            with patch("sys.stdout") as mock_stdout, patch("sys.stdin") as mock_stdin:
                mock_stdout.isatty.return_value = True
                mock_stdin.isatty.return_value = True
                assert _is_interactive() is True

    def test_is_interactive_at_boot(self):
        """_is_interactive returns False when stdin is not a TTY (systemd, cloud-init)."""
        from bootlayer.cli.ux import _is_interactive

        with patch.dict("os.environ", {}, clear=True):
            with patch("sys.stdout") as mock_stdout, patch("sys.stdin") as mock_stdin:
                mock_stdout.isatty.return_value = True
                mock_stdin.isatty.return_value = False
                assert _is_interactive() is False

    def test_is_interactive_public_function(self):
        """is_interactive() (public) wraps _is_interactive()."""
        from bootlayer.cli.ux import is_interactive

        with patch.dict("os.environ", {"CI": "true"}, clear=True):
            assert is_interactive() is False


class TestOutputFunctions:
    """Test output functions actually execute."""

    @patch("bootlayer.cli.ux.console")
    def test_messages(self, mock_console):
        from bootlayer.cli.ux import error, info, success, warning

        success("done")
        error("failed")
        warning("careful")
        info("note")

        printed = [c.args[0] for c in mock_console.print.call_args_list]
        assert printed == [
            "[success]✓ done[/success]",
            "[error]✗ failed[/error]",
            "[warning]⚠ careful[/warning]",
            "[info]ℹ note[/info]",
        ]

    @patch("bootlayer.cli.ux.console")
    def test_print_table(self, mock_console):
        from rich.table import Table

        from bootlayer.cli.ux import print_table

        print_table("Phases", ["Phase", "State"], [["swap", "completed"]])

        table = mock_console.print.call_args.args[0]
        assert isinstance(table, Table)
        assert table.row_count == 1

    @patch("bootlayer.cli.ux.warning")
    @patch("bootlayer.cli.ux.console")
    def test_rollback_report_flags_operator(self, mock_console, mock_warning):
        from bootlayer.cli.ux import print_rollback_report
        from bootlayer.orchestration import RollbackReport

        print_rollback_report(
            RollbackReport(reverted=["ssl"], failed={"firewall": "denied"}, irreversible=["swap"])
        )

        printed = " ".join(str(c.args[0]) for c in mock_console.print.call_args_list)
        assert "ssl" in printed and "firewall" in printed and "swap" in printed
        assert "Manual intervention" in mock_warning.call_args.args[0]

    @patch("bootlayer.cli.ux.warning")
    @patch("bootlayer.cli.ux.console")
    def test_clean_rollback_no_warning(self, mock_console, mock_warning):
        from bootlayer.cli.ux import print_rollback_report
        from bootlayer.orchestration import RollbackReport

        print_rollback_report(RollbackReport(reverted=["ssl"]))
        mock_warning.assert_not_called()

    @patch("bootlayer.cli.ux.console")
    def test_spinner_wraps_work(self, mock_console):
        from bootlayer.cli.ux import spinner

        with patch("bootlayer.cli.ux.Progress") as mock_progress:
            with spinner("Checking resources..."):
                pass

        progress = mock_progress.return_value.__enter__.return_value
        progress.add_task.assert_called_once_with(description="Checking resources...", total=None)


class TestPrompts:
    @patch("bootlayer.cli.ux.questionary")
    def test_confirm(self, mock_questionary):
        from bootlayer.cli.ux import confirm

        mock_questionary.confirm.return_value = MagicMock(ask=MagicMock(return_value=True))
        assert confirm("Proceed?") is True

    @patch("bootlayer.cli.ux.questionary")
    def test_confirm_cancelled(self, mock_questionary):
        from bootlayer.cli.ux import confirm

        mock_questionary.confirm.return_value = MagicMock(ask=MagicMock(return_value=None))
        assert confirm("Proceed?") is False
