import oracledb

from conftest import FakeConnection
from diagnostics.report import (
    Environment, Report, Section, rac_only, OK, EMPTY, SKIPPED, ERROR,
)
from diagnostics.runner import ReportRunner, advice_for_error, used_binds

SINGLE = Environment(db_name="ORCL", version="19.3.0.0.0", instance_count=1, log_mode="ARCHIVELOG")


class TwoSectionReport(Report):
    name = "two_sections"
    title = "Two Sections"

    def build_sections(self, params, env):
        return [
            Section("Broken", "SELECT * FROM dba_hist_sqlstat"),
            Section("Working", "SELECT name FROM v$tablespace"),
        ]


def test_failing_section_does_not_stop_report():
    conn = FakeConnection([
        ("dba_hist_sqlstat", oracledb.DatabaseError("ORA-00942: table or view does not exist")),
        ("v$tablespace", (["name"], [("SYSTEM",), ("USERS",)])),
    ])
    result = ReportRunner(conn).run(TwoSectionReport(), environment=SINGLE)

    broken, working = result.sections
    assert broken.status == ERROR
    assert broken.message.startswith("ORA-00942: table or view does not exist - ")
    assert "Diagnostics Pack" in broken.message
    assert working.status == OK
    assert working.rows == [{"name": "SYSTEM"}, {"name": "USERS"}]
    assert [s.title for s in result.errors] == ["Broken"]


def test_rac_only_section_skipped_on_single_instance():
    runner = ReportRunner(FakeConnection())
    section = Section("Cluster", "SELECT * FROM gv$instance", when=rac_only, skip_message="standalone")
    res = runner.run_section(section, {}, SINGLE)
    assert res.status == SKIPPED
    assert res.message == "standalone"
    assert runner.cursor.executed == []


def test_non_query_is_refused():
    runner = ReportRunner(FakeConnection())
    res = runner.run_section(Section("Kill", "ALTER SYSTEM KILL SESSION '1,2'"), {}, SINGLE)
    assert res.status == ERROR
    assert runner.cursor.executed == []


def test_with_clause_is_allowed_and_binds_filtered():
    conn = FakeConnection([("dual", (["x"], [(1,)]))])
    runner = ReportRunner(conn)
    sql = "WITH t AS (SELECT :hours h FROM dual) SELECT h AS x FROM t"
    res = runner.run_section(Section("W", sql, {"hours": 24, "top_count": 5}), {}, SINGLE)
    assert res.status == OK
    assert conn.cursor_obj.executed[-1][1] == {"hours": 24}


def test_empty_result_uses_empty_message():
    runner = ReportRunner(FakeConnection())
    res = runner.run_section(Section("Nothing", "SELECT 1 FROM dual", empty_message="none here"), {}, SINGLE)
    assert res.status == EMPTY
    assert res.message == "none here"


def test_rows_truncated_to_max_rows():
    conn = FakeConnection([("v$session", (["sid"], [(i,) for i in range(10)]))])
    res = ReportRunner(conn, max_rows=3).run_section(Section("S", "SELECT sid FROM v$session"), {}, SINGLE)
    assert len(res.rows) == 3
    assert res.message == "Showing first 3 of 10 rows."


def test_section_error_reported_without_query():
    runner = ReportRunner(FakeConnection())
    res = runner.run_section(Section("Input", error="Required input is missing: sql_id."), {}, SINGLE)
    assert res.status == ERROR
    assert res.message == "Required input is missing: sql_id."
    assert runner.cursor.executed == []


def test_precomputed_rows():
    runner = ReportRunner(FakeConnection())
    res = runner.run_section(Section("Calc", rows=[{"a": 1}]), {}, SINGLE)
    assert res.status == OK
    assert res.columns == ["a"]


def test_detect_environment_rac():
    conn = FakeConnection([
        ("FROM v$database", (["name", "log_mode"], [("PROD", "ARCHIVELOG")])),
        ("FROM v$instance", (["version"], [("12.2.0.1.0",)])),
        ("FROM gv$instance", (["count"], [(2,)])),
        ("cluster_database", (["value"], [("TRUE",)])),
    ])
    env = ReportRunner(conn).detect_environment()
    assert env.db_name == "PROD"
    assert env.is_rac
    assert env.instance_count == 2
    assert env.major_version == 12
    assert env.archivelog


def test_detect_environment_survives_failed_probes():
    conn = FakeConnection([("gv$instance", oracledb.DatabaseError("ORA-01031: insufficient privileges"))])
    env = ReportRunner(conn).detect_environment()
    assert env.instance_count == 1
    assert not env.is_rac


def test_advice_and_used_binds():
    assert "SELECT_CATALOG_ROLE" in advice_for_error(Exception("ORA-00942: missing"))
    assert advice_for_error(Exception("ORA-99999: odd")).startswith("Section could not be produced")
    assert used_binds("SELECT :a, :B FROM dual", {"a": 1, "b": 2, "c": 3}) == {"a": 1, "b": 2}
