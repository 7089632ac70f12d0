"""Tests for the CLI: argument parsing, ICP upload and error reporting."""

import json
from pathlib import Path
from textwrap import dedent

import pytest

from main import main, parse_args
from targeting.core.db import init_db
from targeting.mission.repository import MissionRepository


def _config(tmp_path: Path) -> Path:
    p = tmp_path / "settings.yaml"
    p.write_text(dedent(f"""\
        database:
          path: "{tmp_path / 'cli.db'}"
        generation:
          provider: ollama
    """))
    return p


class TestParseArgs:
    def test_validate_reasons(self) -> None:
        args = parse_args([
            "validate", "o1", "--reject", "--reason", "too small", "--reason", "agency",
            "--user", "u1",
        ])
        assert args.command == "validate"
        assert args.accepted is False
        assert args.reason == ["too small", "agency"]
        assert args.slot == "default"

    def test_accept_and_reject_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["decide", "c1", "--accept", "--reject", "--user", "u1"])

    def test_user_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["status"])

    def test_campaign_type_choices(self) -> None:
        args = parse_args(["select-campaign", "c1", "c2", "--type", "linkedin", "--user", "u1"])
        assert args.contact_ids == ["c1", "c2"]
        with pytest.raises(SystemExit):
            parse_args(["select-campaign", "c1", "--type", "fax", "--user", "u1"])


class TestMain:
    def test_set_icp(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        icp_file = tmp_path / "icp.yaml"
        icp_file.write_text(dedent("""\
            jobTitles: [VP Sales, CRO]
            industries: [SaaS]
            avoidList: "Acme, Globex"
        """))

        main(["set-icp", "--file", str(icp_file), "--user", "u1",
              "--config", str(_config(tmp_path))])

        out = json.loads(capsys.readouterr().out)
        assert out["icp"]["jobTitles"] == ["VP Sales", "CRO"]
        conn = init_db(tmp_path / "cli.db")
        assert MissionRepository(conn).load_icp("u1").avoid_list == "Acme, Globex"
        conn.close()

    def test_targeting_error_reported_as_json(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["status", "--user", "nobody", "--config", str(_config(tmp_path))])

        assert exc.value.code == 1
        err = capsys.readouterr().err
        payload = json.loads(err[err.index("{\n"):])
        assert payload["error"] == "configuration_error"
        assert payload["reason"] == "icp_missing"

    def test_missing_config(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["status", "--user", "u1", "--config", str(tmp_path / "nope.yaml")])
        assert exc.value.code == 1

    def test_unopenable_database_reported_as_json(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        db_dir = tmp_path / "is-a-directory"
        db_dir.mkdir()
        config = tmp_path / "settings.yaml"
        config.write_text(f'database:\n  path: "{db_dir}"\ngeneration:\n  provider: ollama\n')

        with pytest.raises(SystemExit) as exc:
            main(["status", "--user", "u1", "--config", str(config)])

        assert exc.value.code == 1
        err = capsys.readouterr().err
        payload = json.loads(err[err.index("{\n"):])
        assert payload["error"] == "persistence_failure"
        assert str(db_dir) in payload["message"]
