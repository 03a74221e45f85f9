"""Unit tests for the text file loader, service wiring and the run CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from docweave.config.settings import Settings
from docweave.main import build_engine, build_services
from docweave.models.document import TextUnit
from docweave.providers.loader.text_file_loader import TextFileLoader
from docweave.utils.errors import ValidationError


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class TestTextFileLoader:
    @pytest.mark.asyncio
    async def test_load_markdown(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.md"
        path.write_text("# Title\n\nBody text.", encoding="utf-8")

        result = await TextFileLoader().load(str(path))

        assert len(result.units) == 1
        unit = result.units[0]
        assert unit.content == "# Title\n\nBody text."
        assert unit.metadata["format"] == "markdown"
        assert unit.metadata["filename"] == "notes.md"
        assert unit.metadata["size_bytes"] == path.stat().st_size

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("a.TXT", "text"), ("b.htm", "html"), ("c.json", "json"), ("d.csv", "csv"), ("e.pdf", None)],
    )
    async def test_detect_format(self, name: str, expected: str | None) -> None:
        assert await TextFileLoader().detect_format(name) == expected

    @pytest.mark.asyncio
    async def test_missing_file_fails_validation(self, tmp_path: Path) -> None:
        validation = await TextFileLoader().validate(str(tmp_path / "nope.txt"))
        assert not validation.ok
        assert "File not found" in validation.errors[0]

    @pytest.mark.asyncio
    async def test_oversized_file_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "big.txt"
        path.write_text("x" * 100, encoding="utf-8")

        with pytest.raises(ValidationError, match="too large"):
            await TextFileLoader(max_bytes=10).load(str(path))

    @pytest.mark.asyncio
    async def test_unsupported_type_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(ValidationError, match="Unsupported"):
            await TextFileLoader().load(str(path))

    @pytest.mark.asyncio
    async def test_undecodable_bytes_raise_validation_error(self, tmp_path: Path) -> None:
        path = tmp_path / "binary.txt"
        path.write_bytes(b"\xff\xfe\x00garbage")

        with pytest.raises(ValidationError, match="Cannot decode binary.txt") as excinfo:
            await TextFileLoader().load(str(path))

        assert excinfo.value.component == "loader"


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


class TestBuildServices:
    def test_services_are_wired(self, tmp_path: Path) -> None:
        settings = Settings(_env_file=None, pipelines_path=str(tmp_path / "absent.yaml"))
        services = build_services(settings)

        assert {"composer", "chunker", "versioning", "enricher", "registry", "loader"} <= set(services)
        assert services["registry"].names() == ["standard-processing", "rag-optimized", "quick-analysis"]

    def test_engine_registers_yaml_pipelines(self, project_root: Path) -> None:
        settings = Settings(_env_file=None, pipelines_path=str(project_root / "config" / "pipelines.yaml"))
        engine = build_engine(settings)

        assert "markdown-knowledge-base" in engine.list_pipelines()
        assert engine.loader is not None

    @pytest.mark.asyncio
    async def test_default_engine_publishes_events(self, tmp_path: Path) -> None:
        settings = Settings(_env_file=None, pipelines_path=str(tmp_path / "absent.yaml"))
        engine = build_engine(settings)
        seen: list[str] = []
        engine.event_bus.subscribe(lambda event: seen.append(event.name))

        result = await engine.execute_pipeline("quick-analysis", [TextUnit(content="Some  text here.")])

        assert result.success
        assert seen[0] == "pipeline.started"
        assert seen[-1] == "pipeline.completed"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class TestRunCli:
    def test_list_exits_zero(self, capsys: pytest.CaptureFixture[str]) -> None:
        from docweave.cli.run import main

        with pytest.raises(SystemExit) as excinfo:
            main(["--list", "--quiet"])

        assert excinfo.value.code == 0
        assert "standard-processing" in capsys.readouterr().out

    def test_missing_arguments_exit_one(self) -> None:
        from docweave.cli.run import main

        with pytest.raises(SystemExit) as excinfo:
            main(["--quiet"])

        assert excinfo.value.code == 1

    def test_json_summary(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        from docweave.cli.run import main

        doc = tmp_path / "doc.txt"
        doc.write_text("First paragraph.\n\nSecond paragraph.", encoding="utf-8")
        out = tmp_path / "summary.json"

        with pytest.raises(SystemExit) as excinfo:
            main(["quick-analysis", str(doc), "--json", "-o", str(out)])

        assert excinfo.value.code == 0
        summary = json.loads(out.read_text(encoding="utf-8"))
        assert summary["pipeline"] == "quick-analysis"
        assert summary["status"] == "completed"
        assert [stage["name"] for stage in summary["stages"]] == ["basic-clean", "extract-summary"]

    def test_undecodable_file_exits_one(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        from docweave.cli.run import main

        doc = tmp_path / "broken.txt"
        doc.write_bytes(b"\xff\xfe")

        with pytest.raises(SystemExit) as excinfo:
            main(["quick-analysis", str(doc), "--quiet"])

        assert excinfo.value.code == 1
        assert "Cannot decode" in capsys.readouterr().err

    def test_unknown_pipeline_exits_one(self, tmp_path: Path) -> None:
        from docweave.cli.run import main

        doc = tmp_path / "doc.txt"
        doc.write_text("text", encoding="utf-8")

        with pytest.raises(SystemExit) as excinfo:
            main(["no-such-pipeline", str(doc), "--quiet"])

        assert excinfo.value.code == 1
