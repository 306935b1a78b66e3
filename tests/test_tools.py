# tests/test_tools.py
import pytest

from gst_pos.database.db_path import count_rows
from gst_pos.database.schema import SCHEMA_VERSION
from gst_pos.tools import build_parser, main

from conftest import make_legacy_db


def test_where(resolver, capsys):
    assert main(["where"], resolver=resolver) == 0
    out = capsys.readouterr().out
    assert f"database: {resolver.new_path}" in out
    assert f"legacy:   {resolver.legacy_path}" in out


def test_init_reports_version(tmp_path, resolver, capsys):
    db = tmp_path / "cli.db"
    assert main(["init", "--db", str(db)], resolver=resolver) == 0
    assert f"schema version {SCHEMA_VERSION}" in capsys.readouterr().out
    assert db.is_file()


def test_migrate(resolver, capsys):
    make_legacy_db(resolver.legacy_path, products=3, sales=1)
    assert main(["migrate"], resolver=resolver) == 0
    assert count_rows(resolver.new_path) == 4
    assert main(["migrate", "--from", str(resolver.legacy_path)], resolver=resolver) == 0


def test_migrate_missing_source_fails(resolver, capsys):
    assert main(["migrate"], resolver=resolver) == 1
    assert "failed" in capsys.readouterr().out


def test_backup_and_dump(tmp_path, resolver, capsys):
    db = tmp_path / "cli.db"
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    assert main(["backup", str(out_dir / "snap.db"), "--db", str(db)], resolver=resolver) == 0
    assert (out_dir / "snap.db").is_file()
    assert main(["dump", str(out_dir), "--db", str(db)], resolver=resolver) == 0
    assert list(out_dir.glob("pos-dump-*.json"))


def test_backup_failure_exit_code(tmp_path, resolver, capsys):
    db = tmp_path / "cli.db"
    assert main(["backup", str(tmp_path / "missing" / "snap.db"), "--db", str(db)], resolver=resolver) == 1
    assert "Backup failed" in capsys.readouterr().err


def test_export_gst(tmp_path, resolver, capsys):
    out = tmp_path / "gst.xlsx"
    code = main(
        ["export-gst", "--start", "2025-01-01", "--end", "2025-12-31", "--out", str(out), "--db", str(tmp_path / "c.db")],
        resolver=resolver,
    )
    assert code == 0
    assert out.is_file()


def test_export_gst_bad_date(tmp_path, resolver, capsys):
    assert main(["export-gst", "--start", "01-01-2025", "--db", str(tmp_path / "c.db")], resolver=resolver) == 2
    assert "Invalid start date" in capsys.readouterr().err


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
