"""Tests for the command line interface."""

import io
import json

import pytest

from kotoba.cli import build_parser, format_text, main


def run_cli(capsys, *argv):
    main(list(argv))
    return capsys.readouterr().out


class TestSearch:
    """Tests for plain query lookups."""

    def test_json(self, capsys, dictionary_path):
        """--json prints hydrated entries in rank order."""
        out = run_cli(capsys, "いぬ", "--db", str(dictionary_path), "--json")
        data = json.loads(out)
        assert [e["id"] for e in data] == ["1000", "1009"]

    def test_text(self, capsys, dictionary_path):
        """Text output shows the word, reading, pos, tier and glosses."""
        out = run_cli(capsys, "いぬ", "--db", str(dictionary_path))
        lines = out.splitlines()
        assert lines[0] == "犬【いぬ】 (n) [exact]"
        assert lines[1] == "  1. dog"
        assert "子犬【こいぬ】 (n) [suffix]" in lines

    def test_paging(self, capsys, dictionary_path):
        """--offset and --limit select a page."""
        out = run_cli(capsys, "いぬ", "--db", str(dictionary_path), "--offset", "1", "-n", "1", "--json")
        assert [e["id"] for e in json.loads(out)] == ["1009"]

    def test_no_results(self, capsys, dictionary_path):
        """An empty result prints a message."""
        out = run_cli(capsys, "=ほげ", "--db", str(dictionary_path))
        assert out.strip() == "No entries found."

    def test_stdin(self, capsys, monkeypatch, dictionary_path):
        """The query is read from stdin when omitted."""
        monkeypatch.setattr("sys.stdin", io.StringIO("ねこ\n"))
        out = run_cli(capsys, "--db", str(dictionary_path), "--json")
        assert [e["id"] for e in json.loads(out)] == ["1006"]


class TestDeinflect:
    """Tests for --deinflect and --phrase."""

    def test_deinflect(self, capsys, dictionary_path):
        """Inflected words show their dictionary form and rules."""
        out = run_cli(capsys, "-d", "食べました", "--db", str(dictionary_path))
        assert out.splitlines()[0] == "食べる【たべる】 (v1, vt) ← 食べました [polite → polite past]"

    def test_phrase(self, capsys, dictionary_path):
        """--phrase splits the input into words."""
        out = run_cli(capsys, "-p", "猫が魚を食べた", "--db", str(dictionary_path))
        lines = out.splitlines()
        assert lines[0] == "猫 | 魚 | 食べた"
        assert lines[2].startswith("0: 猫【ねこ】")

    def test_phrase_json(self, capsys, dictionary_path):
        """--phrase --json includes positions."""
        out = run_cli(capsys, "-p", "-j", "猫が魚を食べた", "--db", str(dictionary_path))
        data = json.loads(out)
        assert [(m["position"], m["input"]) for m in data] == [(0, "猫"), (2, "魚"), (4, "食べた")]


class TestErrors:
    """Tests for error handling."""

    def test_syntax_error(self, capsys, dictionary_path):
        """Malformed queries exit with status 1."""
        with pytest.raises(SystemExit) as exc:
            main(["(犬", "--db", str(dictionary_path)])
        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "Error:" in err
        assert "Unclosed bracket" in err

    def test_missing_database(self, capsys, tmp_path):
        """A missing dictionary is reported."""
        with pytest.raises(SystemExit) as exc:
            main(["犬", "--db", str(tmp_path / "missing.db")])
        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_empty_query(self, capsys, monkeypatch):
        """No query at all prints help."""
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1
        assert "usage: kotoba" in capsys.readouterr().out


class TestFormatting:
    """Tests for output helpers."""

    def test_empty(self):
        """No entries, one message."""
        assert format_text([]) == "No entries found."

    def test_parser_defaults(self):
        """Paging defaults to the first twenty results."""
        args = build_parser().parse_args(["犬"])
        assert (args.offset, args.limit) == (0, 20)
        assert not args.deinflect and not args.phrase and not args.json
