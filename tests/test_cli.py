"""Tests for the CLI module."""

from __future__ import annotations

import json
import zipfile
from pathlib import Path

import pytest

from conftest import read_part
from html2docx import __version__
from html2docx.cli import main
from html2docx.fragments import qn

FIXTURE_DIR = Path(__file__).parent / "fixtures"
SAMPLE_HTML = FIXTURE_DIR / "sample.html"
SAMPLE_MD = FIXTURE_DIR / "sample.md"


class TestCLIMain:
    """Test the main() entry point."""

    def test_list_styles(self, capsys):
        ret = main(["--list-styles"])
        assert ret == 0
        out = capsys.readouterr().out
        assert "default" in out
        assert "academic" in out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_missing_input(self):
        with pytest.raises(SystemExit):
            main([])

    def test_unknown_style(self):
        with pytest.raises(SystemExit):
            main([str(SAMPLE_HTML), "-s", "fancy"])

    def test_file_not_found(self, capsys):
        ret = main(["nonexistent.html"])
        assert ret == 1
        err = capsys.readouterr().err
        assert "not found" in err

    def test_convert_sample(self, tmp_path, capsys):
        out = tmp_path / "output.docx"
        ret = main([str(SAMPLE_HTML), "-o", str(out)])
        assert ret == 0
        assert zipfile.is_zipfile(out)
        assert "Converted:" in capsys.readouterr().out

    def test_convert_markdown(self, tmp_path):
        out = tmp_path / "notes.docx"
        assert main([str(SAMPLE_MD), "-o", str(out)]) == 0
        assert out.stat().st_size > 0

    def test_verbose_flag(self, tmp_path, capsys):
        out = tmp_path / "output.docx"
        ret = main([str(SAMPLE_HTML), "-o", str(out), "-v"])
        assert ret == 0
        stdout = capsys.readouterr().out
        assert "Input:" in stdout
        assert "Output:" in stdout
        assert "Done." in stdout

    def test_default_output_name(self, tmp_path):
        html_file = tmp_path / "myfile.html"
        html_file.write_text("<h1>Test</h1>", encoding="utf-8")
        ret = main([str(html_file)])
        assert ret == 0
        assert (tmp_path / "myfile.docx").exists()

    @pytest.mark.parametrize("preset", ["default", "academic", "business", "minimal"])
    def test_style_presets(self, tmp_path, preset):
        out = tmp_path / f"output_{preset}.docx"
        ret = main([str(SAMPLE_HTML), "-o", str(out), "-s", preset])
        assert ret == 0, f"Failed for preset: {preset}"
        assert out.exists()


class TestCLIOptions:

    def test_config_file(self, tmp_path):
        config = tmp_path / "options.json"
        config.write_text(json.dumps({"pageSize": "A4", "header": "<p>Draft</p>"}), encoding="utf-8")
        out = tmp_path / "out.docx"
        assert main([str(SAMPLE_HTML), "-o", str(out), "-c", str(config)]) == 0
        data = out.read_bytes()
        pg_sz = next(read_part(data, "word/document.xml").iter(qn("w:pgSz")))
        assert pg_sz.get(qn("w:w")) == "11906"
        assert [t.text for t in read_part(data, "word/header1.xml").iter(qn("w:t"))] == ["Draft"]

    def test_page_size_flag_overrides_config(self, tmp_path):
        config = tmp_path / "options.json"
        config.write_text(json.dumps({"page_size": "A4"}), encoding="utf-8")
        out = tmp_path / "out.docx"
        assert main([str(SAMPLE_HTML), "-o", str(out), "-c", str(config), "--page-size", "LEGAL"]) == 0
        pg_sz = next(read_part(out.read_bytes(), "word/document.xml").iter(qn("w:pgSz")))
        assert pg_sz.get(qn("w:h")) == "20160"

    def test_page_numbers_flag(self, tmp_path):
        out = tmp_path / "out.docx"
        assert main([str(SAMPLE_HTML), "-o", str(out), "--page-numbers"]) == 0
        footer = read_part(out.read_bytes(), "word/footer1.xml")
        assert next(footer.iter(qn("w:instrText"))).text == " PAGE "

    def test_config_must_be_object(self, tmp_path, capsys):
        config = tmp_path / "options.json"
        config.write_text("[1, 2]", encoding="utf-8")
        ret = main([str(SAMPLE_HTML), "-o", str(tmp_path / "o.docx"), "-c", str(config)])
        assert ret == 1
        assert "JSON object" in capsys.readouterr().err

    def test_invalid_config_json(self, tmp_path, capsys):
        config = tmp_path / "options.json"
        config.write_text("{not json", encoding="utf-8")
        ret = main([str(SAMPLE_HTML), "-o", str(tmp_path / "o.docx"), "-c", str(config)])
        assert ret == 1
        assert "Error:" in capsys.readouterr().err
