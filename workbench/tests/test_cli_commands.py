"""
Tests for workbench/cli/commands.py
"""

from __future__ import annotations

import csv
import json

import httpx
import pytest

from workbench.cli import commands
from workbench.services.api_client import ApiClient

pytestmark = pytest.mark.asyncio

EXTRACTED = {
    "tables": [{"columns": ["item", "qty"], "rows": [{"item": "bolt", "qty": "4"}, {"item": "", "qty": ""}]}],
}


@pytest.fixture(autouse=True)
def fake_api(monkeypatch, backend):
    """Every command's ApiClient talks to the fake backend."""
    monkeypatch.setattr(
        commands,
        "ApiClient",
        lambda config: ApiClient(config, transport=httpx.MockTransport(backend.handle)),
    )


def _source(tmp_path, text="def add(a, b):\n    return a - b\n"):
    path = tmp_path / "add.py"
    path.write_text(text)
    return path


class TestCode:
    async def test_generate_prints_content_and_provider(self, config, backend, capsys):
        backend.json(
            "POST",
            "/code/generate",
            {"content": "print('hi')", "provider": "anthropic", "model": "claude"},
        )

        assert await commands.code(config, "generate", "say hi", language="python") is True

        out = capsys.readouterr().out
        assert "print('hi')" in out
        assert "(anthropic / claude)" in out
        assert json.loads(backend.requests[0].content)["description"] == "say hi"

    async def test_review_sends_file_and_focus(self, config, backend, tmp_path, capsys):
        path = _source(tmp_path)
        backend.json("POST", "/code/review", {"review": "Subtracts instead of adding"})

        assert await commands.code(config, "review", str(path), focus="bugs") is True

        body = json.loads(backend.requests[0].content)
        assert body["code"] == path.read_text()
        assert body["focus"] == "bugs"
        assert "Subtracts instead of adding" in capsys.readouterr().out

    async def test_explain_defaults_to_beginner(self, config, backend, tmp_path):
        backend.json("POST", "/code/explain", {"explanation": "It adds"})

        await commands.code(config, "explain", str(_source(tmp_path)))

        assert json.loads(backend.requests[0].content)["level"] == "beginner"

    async def test_fix_sends_error(self, config, backend, tmp_path, capsys):
        backend.json("POST", "/code/fix", {"result": "def add(a, b):\n    return a + b\n"})

        ok = await commands.code(config, "fix", str(_source(tmp_path)), error="AssertionError: 3 != -1")

        assert ok is True
        assert json.loads(backend.requests[0].content)["error"] == "AssertionError: 3 != -1"
        assert "return a + b" in capsys.readouterr().out

    async def test_unknown_result_shape_printed_as_json(self, config, backend, capsys):
        backend.json("POST", "/code/generate", {"code": "x = 1"})

        await commands.code(config, "generate", "assign x")

        assert json.loads(capsys.readouterr().out) == {"code": "x = 1"}

    async def test_missing_file_makes_no_request(self, config, backend, tmp_path, capsys):
        ok = await commands.code(config, "review", str(tmp_path / "nope.py"))

        assert ok is False
        assert backend.requests == []
        assert "No such file" in capsys.readouterr().out

    async def test_backend_error_reported(self, config, backend, capsys):
        backend.json("POST", "/code/generate", {"detail": "No provider configured"}, status=503)

        assert await commands.code(config, "generate", "anything") is False

        assert "Code generate failed" in capsys.readouterr().out


class TestResearch:
    async def test_file_content_appended_to_query(self, config, backend, tmp_path, capsys):
        document = tmp_path / "report.txt"
        document.write_text("Revenue grew 12%")
        backend.json("POST", "/research/upload", {"content": "Revenue grew 12%", "word_count": 3})
        backend.json(
            "POST",
            "/research/topic",
            {"synthesis": "Growth was strong", "sources": [{"title": "Report", "url": "https://r.example"}]},
        )

        assert await commands.research(config, "summarize growth", [], file_path=str(document)) is True

        assert backend.calls() == [("POST", "/research/upload"), ("POST", "/research/topic")]
        query = json.loads(backend.requests[1].content)["query"]
        assert query.startswith("summarize growth")
        assert "Document Content:\nRevenue grew 12%" in query
        out = capsys.readouterr().out
        assert "Uploaded report.txt (3 words)" in out
        assert "Growth was strong" in out
        assert "https://r.example" in out

    async def test_missing_file(self, config, backend, tmp_path):
        ok = await commands.research(config, "q", [], file_path=str(tmp_path / "gone.txt"))

        assert ok is False
        assert backend.requests == []


class TestExtract:
    @pytest.fixture
    def document(self, tmp_path, backend):
        path = tmp_path / "order.pdf"
        path.write_bytes(b"%PDF-1.4")
        backend.json("POST", "/extraction/extract", EXTRACTED)
        return path

    async def test_instruction_replaces_data(self, config, backend, document, capsys):
        transformed = {"tables": [{"columns": ["item", "qty"], "rows": [{"item": "bolt", "qty": "4"}]}]}
        backend.json(
            "POST",
            "/instruction/process",
            {
                "success": True,
                "confidence": 0.9,
                "transformation_rules": [{"operation": "filter", "description": "drop empty rows"}],
                "transformed_data": transformed,
            },
        )

        ok = await commands.extract(config, str(document), instruction="drop empty rows")

        assert ok is True
        assert json.loads(backend.requests[1].content)["extracted_data"] == EXTRACTED
        out = capsys.readouterr().out
        assert "Instruction ok (90% confidence)" in out
        assert "filter: drop empty rows" in out
        assert json.dumps(transformed, indent=2) in out

    async def test_preview_keeps_data(self, config, backend, document, capsys):
        backend.json("POST", "/instruction/preview", {"success": True, "explanation": "Would drop 1 row"})

        ok = await commands.extract(config, str(document), instruction="drop empty rows", preview=True)

        assert ok is True
        assert backend.calls()[-1] == ("POST", "/instruction/preview")
        out = capsys.readouterr().out
        assert "Would drop 1 row" in out
        assert json.dumps(EXTRACTED, indent=2) in out

    async def test_export_falls_back_to_local_csv(self, config, backend, document, tmp_path, capsys):
        backend.json("POST", "/export/csv", {"detail": "Exporter down"}, status=500)
        out_dir = tmp_path / "exports"

        ok = await commands.extract(config, str(document), export_format="csv", directory=out_dir)

        assert ok is True
        [written] = list(out_dir.iterdir())
        with written.open(newline="") as f:
            assert next(csv.reader(f)) == ["item", "qty"]
        assert f"Exported csv to {written}" in capsys.readouterr().out

    async def test_export_without_tables_fails(self, config, backend, tmp_path, capsys):
        path = tmp_path / "note.txt"
        path.write_text("nothing tabular")
        backend.json("POST", "/extraction/extract", {"text": "nothing tabular"})
        backend.json("POST", "/export/csv", {}, status=500)

        ok = await commands.extract(config, str(path), export_format="csv", directory=tmp_path / "out")

        assert ok is False
        assert "Export failed" in capsys.readouterr().out

    async def test_instruction_error_reported(self, config, backend, document, capsys):
        backend.json("POST", "/instruction/process", {"detail": "Instruction too vague"}, status=400)

        ok = await commands.extract(config, str(document), instruction="do things")

        assert ok is False
        assert "Instruction too vague" in capsys.readouterr().out


class TestInstructions:
    async def test_lists_examples(self, config, backend, capsys):
        backend.json(
            "GET",
            "/instruction/examples",
            {"examples": [{"instruction": "Sort rows by date"}, "Remove duplicate rows"]},
        )

        assert await commands.instructions(config) is True

        out = capsys.readouterr().out
        assert "  - Sort rows by date" in out
        assert "  - Remove duplicate rows" in out

    async def test_error(self, config, backend, capsys):
        backend.json("GET", "/instruction/examples", {"detail": "boom"}, status=500)

        assert await commands.instructions(config) is False
        assert "Could not load examples" in capsys.readouterr().out
