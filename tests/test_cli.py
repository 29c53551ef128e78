"""Tests for the command-line runner"""
import pytest

from app import cli
from app.core.config import settings
from app.schemas.job import JobStatus
from tests.factories import ScriptedLLM, checklist_reply, discovered, not_found, report_reply, sample_files


@pytest.mark.asyncio
async def test_run_local_analysis(monkeypatch, capsys):
    monkeypatch.setattr(settings, "SAVE_DEBUG_OUTPUT", False)
    llm = ScriptedLLM(
        discovery=[discovered(), not_found()],
        checklist=[checklist_reply()],
        inspection=[report_reply()],
    )

    snapshot = await cli.run_local_analysis(sample_files(), llm=llm)

    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.result.metrics.reports_generated == 1
    assert "[info] 🚀 Starting security analysis..." in capsys.readouterr().out


def test_main_missing_directory(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(cli, "setup_logging", lambda level=None: None)

    assert cli.main([str(tmp_path / "missing")]) == 1
    assert "Project path not found" in capsys.readouterr().out


def test_main_empty_directory(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(cli, "setup_logging", lambda level=None: None)

    assert cli.main([str(tmp_path), "--quiet"]) == 1
    assert "no readable files" in capsys.readouterr().out
