from pathlib import Path

import pytest
from filelock import FileLock

from sms_patrol import cli
from sms_patrol.models import ScrapeOutcome


def test_parse_args_with_sources_add() -> None:
    args = cli.parse_args(["sources", "add", "https://a.example/", "https://b.example/"])
    assert args.command == "sources"
    assert args.urls == ["https://a.example/", "https://b.example/"]


def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])


def test_parse_args_rejects_unknown_interval() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["schedule", "interval", "45"])


def test_reset_requires_confirmation() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["reset"])


def test_main_returns_two_on_invalid_config(tmp_path: Path) -> None:
    storage = str(tmp_path / "store.json")
    assert cli.main(["--storage", storage, "--timeout", "0", "stats"]) == 2


def test_sources_and_schedule_commands(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    storage = str(tmp_path / "store.json")
    assert cli.main(["--storage", storage, "sources", "add", "https://a.example/"]) == 0
    assert cli.main(["--storage", storage, "sources", "add", "not-a-url"]) == 2
    assert cli.main(["--storage", storage, "sources", "disable", "https://a.example/"]) == 0
    assert cli.main(["--storage", storage, "sources", "remove", "https://x.example/"]) == 2
    assert cli.main(["--storage", storage, "schedule", "interval", "15"]) == 0
    assert cli.main(["--storage", storage, "schedule", "on"]) == 0
    output = capsys.readouterr().out
    assert "interval: 15 minutes" in output
    assert "active: yes" in output

    capsys.readouterr()
    assert cli.main(["--storage", storage, "sources", "list"]) == 0
    assert "https://a.example/\tdisabled" in capsys.readouterr().out


def test_scrape_without_sources_returns_one(tmp_path: Path) -> None:
    storage = str(tmp_path / "store.json")
    assert cli.main(["--storage", storage, "--no-progress", "scrape"]) == 1


def test_scrape_uses_orchestrator(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    class FakeOrchestrator:
        def scrape_all(self) -> ScrapeOutcome:
            return ScrapeOutcome(
                success=True, new_record_count=2, total_candidates_processed=2, message="ok"
            )

    monkeypatch.setattr(
        cli, "build_orchestrator", lambda config, storage, logger: FakeOrchestrator()
    )
    assert cli.main(["--storage", str(tmp_path / "store.json"), "scrape"]) == 0


def test_export_and_import_commands(tmp_path: Path) -> None:
    storage = str(tmp_path / "store.json")
    backup = str(tmp_path / "backup.json")
    assert cli.main(["--storage", storage, "sources", "import-defaults"]) == 0
    assert cli.main(["--storage", storage, "export-json", backup]) == 0
    assert cli.main(["--storage", storage, "export-csv", str(tmp_path / "out.csv")]) == 0
    assert cli.main(["--storage", storage, "reset", "--yes"]) == 0
    assert cli.main(["--storage", storage, "import-json", backup]) == 0
    assert cli.main(["--storage", storage, "import-json", str(tmp_path / "missing.json")]) == 2


def test_scrape_is_skipped_while_another_batch_holds_the_run_lock(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    calls: list[str] = []

    class FakeOrchestrator:
        def scrape_all(self) -> ScrapeOutcome:
            calls.append("scrape")
            return ScrapeOutcome(
                success=True, new_record_count=0, total_candidates_processed=0, message="ok"
            )

    monkeypatch.setattr(
        cli, "build_orchestrator", lambda config, storage, logger: FakeOrchestrator()
    )
    storage = tmp_path / "store.json"
    with FileLock(f"{storage}.run.lock"):
        assert cli.main(["--storage", str(storage), "scrape"]) == 1
    assert calls == []
