"""
Integration tests for CLI.
"""

import io
from pathlib import Path

import pytest

from hierdoc.cli import indent_option, main, parse_args, read_input


FIXTURES = Path(__file__).parent.parent / "fixtures"


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.file is None
        assert args.format_type is None
        assert args.target_format is None
        assert args.indent is None
        assert args.validate is False
        assert args.tree is False
        assert args.depth is None
        assert args.verbose == 0

    def test_all_flags(self):
        args = parse_args([
            "input.json",
            "--type", "json",
            "--to", "yaml",
            "--indent", "4",
            "--tree",
            "--depth", "2",
            "-vv",
        ])
        assert args.file == "input.json"
        assert args.format_type == "json"
        assert args.target_format == "yaml"
        assert args.indent == "4"
        assert args.tree is True
        assert args.depth == 2
        assert args.verbose == 2


class TestIndentOption:
    @pytest.mark.parametrize("raw,fmt,expected", [
        (None, "json", {}),
        ("4", "json", {"indent": 4}),
        ("4", "yaml", {"indent": "    "}),
        ("\\t", "xml", {"indent": "\t"}),
        ("  ", "xml", {"indent": "  "}),
    ])
    def test_indent_option(self, raw, fmt, expected):
        assert indent_option(raw, fmt) == expected


class TestReadInput:
    def test_file(self):
        content, filename = read_input(str(FIXTURES / "sample.json"))
        assert content.startswith('{"name"')
        assert filename.endswith("sample.json")

    def test_stdin(self, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("a: 1\n"))
        assert read_input(None) == ("a: 1\n", None)


class TestNormalize:
    def test_json_file(self, capsys):
        exit_code = main([str(FIXTURES / "sample.json")])
        assert exit_code == 0
        assert capsys.readouterr().out == (
            '{\n  "name": "hierdoc",\n  "tags": [\n    "a",\n    "b"\n  ]\n}\n'
        )

    def test_json_indent(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--indent", "4"]) == 0
        assert '\n    "name"' in capsys.readouterr().out

    def test_yaml_keeps_indentation(self, capsys):
        path = FIXTURES / "config.yaml"
        assert main([str(path)]) == 0
        assert capsys.readouterr().out == path.read_text()

    def test_markdown_round_trip(self, capsys):
        path = FIXTURES / "guide.md"
        assert main([str(path)]) == 0
        assert capsys.readouterr().out == path.read_text()

    def test_stdin_detected(self, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO('{"a": 1}'))
        assert main([]) == 0
        assert capsys.readouterr().out == '{\n  "a": 1\n}\n'

    def test_type_accepts_extension(self, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("a: 1"))
        assert main(["--type", "yml"]) == 0
        assert capsys.readouterr().out == "a: 1\n"

    def test_extension_beats_detection(self, tmp_path, capsys):
        path = tmp_path / "notes.md"
        path.write_text("key: value")
        assert main([str(path), "--tree"]) == 0
        assert "content-1: 'key: value'" in capsys.readouterr().out


class TestConvert:
    def test_json_to_yaml(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--to", "yaml"]) == 0
        assert capsys.readouterr().out == "name: hierdoc\ntags:\n  - a\n  - b\n"

    def test_json_to_xml(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--to", "XML"]) == 0
        assert capsys.readouterr().out == (
            "<root><name>hierdoc</name><tags><item>a</item><item>b</item></tags></root>\n"
        )

    def test_yaml_to_json(self, capsys):
        assert main([str(FIXTURES / "config.yaml"), "--to", "json", "--indent", "0"]) == 0
        assert capsys.readouterr().out.startswith('{\n"server": {\n"host": "localhost"')

    def test_incompatible_target(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--to", "markdown"]) == 1
        assert "Unknown node type" in capsys.readouterr().err

    def test_unknown_target(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--to", "toml"]) == 1
        assert "Error:" in capsys.readouterr().err


class TestValidate:
    def test_valid(self, capsys):
        assert main([str(FIXTURES / "config.yaml"), "--validate"]) == 0
        assert capsys.readouterr().out == "valid\n"


class TestTree:
    def test_full_tree(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--tree"]) == 0
        assert capsys.readouterr().out.splitlines() == [
            "root [object]  (.)",
            "  name: 'hierdoc'  (name)",
            "  tags [array]  (tags)",
            "    0: 'a'  (tags.0)",
            "    1: 'b'  (tags.1)",
        ]

    def test_depth_limits_expansion(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--tree", "--depth", "0"]) == 0
        assert capsys.readouterr().out.splitlines() == [
            "root [object]  (.)",
            "  name: 'hierdoc'  (name)",
            "  tags [array] [+2]  (tags)",
        ]

    def test_markdown_outline(self, capsys):
        assert main([str(FIXTURES / "guide.md"), "--tree"]) == 0
        assert capsys.readouterr().out.splitlines() == [
            "<document> [document]  (.)",
            "  Guide [heading]  (Guide)",
            "    content-1: 'Intro text.'  (Guide.content-1)",
            "    Install [heading]  (Guide.Install)",
            "      content-2: 'Run the installer.'  (Guide.Install.content-2)",
        ]

    def test_negative_depth(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--tree", "--depth", "-1"]) == 1
        assert "depth" in capsys.readouterr().err


class TestErrors:
    def test_file_not_found(self, capsys):
        assert main(["nonexistent.json"]) == 1
        assert "not found" in capsys.readouterr().err.lower()

    def test_malformed_input(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text("{")
        assert main([str(path)]) == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_unknown_type(self, capsys):
        assert main([str(FIXTURES / "sample.json"), "--type", "toml"]) == 1
        assert "toml" in capsys.readouterr().err

    def test_config_from_env(self, capsys, monkeypatch):
        monkeypatch.setenv("HIERDOC_JSON_INDENT", "1")
        assert main([str(FIXTURES / "sample.json")]) == 0
        assert capsys.readouterr().out.startswith('{\n "name"')
