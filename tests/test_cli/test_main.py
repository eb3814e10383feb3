"""
Tests for the command-line entry point.
"""
import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from rosterindex.main import build_parser, main


PLAYERS = {
    "people": [
        {"id": 660271, "nameSlug": "shohei-ohtani-660271", "primaryPosition": {"abbreviation": "TWP"}},
        {"id": 121578, "nameSlug": "babe-ruth-121578", "primaryPosition": {"abbreviation": "P"}},
        {"id": 669257, "nameSlug": "will-smith-669257", "primaryPosition": {"abbreviation": "C"}},
        {"id": 519293, "nameSlug": "will-smith-519293", "primaryPosition": {"abbreviation": "P"}},
    ]
}


class TestMain:
    """End-to-end tests through main()."""

    def setup_method(self):
        """Set up test environment before each test."""
        self.temp_dir = tempfile.mkdtemp()
        self.payload = Path(self.temp_dir) / "players.json"
        self.payload.write_text(json.dumps(PLAYERS))
        self.data_dir = str(Path(self.temp_dir) / "db")

    def teardown_method(self):
        """Clean up after each test."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run(self, *args):
        return main(["--data-dir", self.data_dir, *args])

    def update(self):
        assert self.run("update", "players", "--from-json", str(self.payload)) == 0

    def test_update_from_json(self, capsys):
        self.update()
        out = capsys.readouterr().out
        assert "Index rebuilt" in out
        assert (Path(self.data_dir) / "players_ids.txt").exists()
        assert (Path(self.data_dir) / "players.txt").exists()

    def test_update_from_api(self, capsys):
        with patch("rosterindex.main.StatsApiClient") as client_cls:
            client_cls.return_value.players.return_value = [("ruth", 1, "h")]
            assert self.run("update", "players", "--all-time") == 0

        seasons = client_cls.return_value.players.call_args.args[0]
        assert seasons[0] == 1876
        assert "Index rebuilt" in capsys.readouterr().out

    def test_lookup(self, capsys):
        self.update()
        capsys.readouterr()

        assert self.run("lookup", "players", "Shohei Ohtani", "will-smith-1-h") == 0
        out = capsys.readouterr().out
        assert "660271" in out
        assert "669257" in out

    def test_lookup_ambiguous_and_missing(self, capsys):
        self.update()
        capsys.readouterr()

        assert self.run("lookup", "players", "will smith", "gehrig") == 0
        out = capsys.readouterr().out
        assert "ambiguous" in out
        assert "no entry found" in out

    def test_names(self, capsys):
        self.update()
        capsys.readouterr()

        assert self.run("names", "players", "will") == 0
        assert capsys.readouterr().out.split() == ["will-smith-0-p", "will-smith-1-h"]

    def test_verify(self, capsys):
        self.update()
        capsys.readouterr()

        assert self.run("verify", "players") == 0
        assert "valid" in capsys.readouterr().out

    def test_verify_reports_corruption(self, capsys):
        self.update()
        index = Path(self.data_dir) / "players_ids.txt"
        lines = index.read_bytes().splitlines(keepends=True)
        index.write_bytes(b"".join(reversed(lines)))
        capsys.readouterr()

        assert self.run("verify", "players") == 1
        assert "✗" in capsys.readouterr().err

    def test_missing_index_is_an_error(self, capsys):
        assert self.run("lookup", "teams", "nyy") == 1
        assert "error" in capsys.readouterr().err

    def test_bad_payload_file(self, capsys):
        self.payload.write_text("{not json")
        assert self.run("update", "players", "--from-json", str(self.payload)) == 1
        assert not (Path(self.data_dir) / "players_ids.txt").exists()

    def test_unknown_index(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["lookup", "umpires", "joe"])
        assert exc_info.value.code == 2

    def test_verbose_lookup(self, capsys):
        self.update()
        with patch("rosterindex.main.setup_logging") as setup:
            assert self.run("-v", "lookup", "players", "Shohei Ohtani") == 0
        setup.assert_called_once_with(True)
        assert "660271" in capsys.readouterr().out
