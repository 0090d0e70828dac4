from __future__ import annotations

from pathlib import Path

from geofence_attendance.database.bootstrap import iter_sql_statements

SCHEMA = Path(__file__).resolve().parents[2] / "database" / "schema.sql"


def test_splits_on_semicolons_outside_quotes():
    sql = "INSERT INTO t VALUES ('a;b');\nINSERT INTO t VALUES (\"c;d\");\nSELECT 1"
    assert list(iter_sql_statements(sql)) == [
        "INSERT INTO t VALUES ('a;b')",
        'INSERT INTO t VALUES ("c;d")',
        "SELECT 1",
    ]


def test_skips_comment_lines_and_blank_statements():
    sql = "-- header; with a semicolon\n;\nCREATE TABLE x (id INT);\n\n"
    assert list(iter_sql_statements(sql)) == ["CREATE TABLE x (id INT)"]


def test_escaped_quote_stays_in_string():
    sql = r"INSERT INTO t VALUES ('it\'s;fine'); SELECT 2;"
    assert list(iter_sql_statements(sql)) == [r"INSERT INTO t VALUES ('it\'s;fine')", "SELECT 2"]


def test_schema_defines_all_tables():
    statements = list(iter_sql_statements(SCHEMA.read_text(encoding="utf-8")))
    created = [s.split()[5] for s in statements if s.upper().startswith("CREATE TABLE")]
    assert created == ["participants", "events", "attendance_records", "attendance_alerts"]
