"""Tests for the notification jobs CLI."""
import json

import pytest
from unittest.mock import MagicMock, patch

from mindcompanion.shared.database import RepositoryError
from mindcompanion.services.notification_service import cli


@pytest.fixture(autouse=True)
def in_memory_mode(monkeypatch):
    monkeypatch.delenv("DB_HOST", raising=False)


class TestParser:
    def test_dispatch_arguments(self):
        args = cli.setup_parser().parse_args(["dispatch", "--limit", "50", "--dry-run"])

        assert args.command == "dispatch"
        assert args.limit == 50
        assert args.dry_run is True

    def test_reminders_arguments(self):
        args = cli.setup_parser().parse_args(["reminders", "--look-ahead-minutes", "120"])

        assert args.look_ahead_minutes == 120
        assert args.dry_run is False

    def test_non_numeric_limit_rejected(self):
        with pytest.raises(SystemExit):
            cli.setup_parser().parse_args(["dispatch", "--limit", "many"])


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "mindcompanion-dispatch" in capsys.readouterr().out

    def test_dispatch_prints_report(self, capsys):
        assert cli.main(["dispatch", "--dry-run"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report == {"processedCount": 0, "dryRun": True, "results": []}

    def test_reminders_prints_summary(self, capsys):
        assert cli.main(["reminders", "--look-ahead-minutes", "60"]) == 0

        summary = json.loads(capsys.readouterr().out)
        assert summary["processed"] == 0
        assert summary["results"] == []

    def test_repository_error_exits_nonzero(self, capsys):
        components = MagicMock()
        components.build_dispatcher.return_value.dispatch_pending.side_effect = (
            RepositoryError("db down")
        )

        with patch.object(cli, "build_components", return_value=components):
            assert cli.main(["dispatch"]) == 1

        assert "db down" in capsys.readouterr().err
        components.connection_manager.close.assert_called_once()
