from unittest import mock

import oracledb

from conftest import FakeConnection, SINGLE_INSTANCE
from tools import access_check, report_tools


def call(tool, *args, **kwargs):
    return getattr(tool, "fn", tool)(*args, **kwargs)


def test_list_reports():
    data = call(report_tools.list_reports)
    assert data["count"] == 12
    names = [r["name"] for r in data["reports"]]
    assert names == sorted(names)
    top = next(r for r in data["reports"] if r["name"] == "top_sql")
    assert top["parameters"][0] == {"name": "hours_back", "label": "Hours to analyze", "type": "int",
                                    "default": 24, "range": [1, 168]}


def test_unknown_report_is_an_error_dict():
    data = call(report_tools.run_diagnostic_report, "local_xe", "does_not_exist")
    assert data["error"] == "Unknown report 'does_not_exist'"
    assert "health_check" in data["available_reports"]


def test_unknown_preset_is_an_error_dict():
    data = call(report_tools.run_diagnostic_report, "no_such_db", "sga_usage")
    assert data == {"error": "DB preset 'no_such_db' is not defined in settings.yaml", "database": "no_such_db"}


def test_connection_failure_is_an_error_dict():
    with mock.patch.object(report_tools.oracle_connector, "connect",
                           side_effect=oracledb.DatabaseError("ORA-12541: TNS:no listener")):
        data = call(report_tools.run_diagnostic_report, "local_xe", "sga_usage")
    assert data["error"].startswith("Database connection failed: ORA-12541")


def test_connection_closed_when_cursor_cannot_open():
    class BrokenCursorConnection(FakeConnection):
        def cursor(self):
            raise oracledb.DatabaseError("ORA-01012: not logged on")

    conn = BrokenCursorConnection()
    with mock.patch.object(report_tools.oracle_connector, "connect", return_value=conn):
        data = call(report_tools.run_diagnostic_report, "local_xe", "sga_usage")
    assert data["error"] == "Database connection failed: ORA-01012: not logged on"
    assert conn.closed


def test_run_report_returns_sections_and_prompt():
    conn = FakeConnection([("v$sgastat", (["pool", "free_mb"], [("shared pool", 12)]))] + SINGLE_INSTANCE)
    with mock.patch.object(report_tools.oracle_connector, "connect", return_value=conn):
        data = call(report_tools.run_diagnostic_report, "local_xe", "sga_usage", output_preset="minimal")
    assert data["sections"][0]["rows"] == [{"pool": "shared pool", "free_mb": 12}]
    assert data["prompt"].startswith("Oracle Database SGA Usage on local_xe: 1 sections")
    assert conn.closed


def test_fra_estimate_tool():
    conn = FakeConnection([
        ("v$datafile", (["total_datafiles_gb", "total_datafiles_tb"], [(100, 0.1)])),
        ("from v$log\n", (["threads", "total_groups", "total_members", "total_size_gb", "avg_size_mb"],
                          [(1, 3, 3, 1.5, 512)])),
    ] + SINGLE_INSTANCE)
    with mock.patch.object(report_tools.oracle_connector, "connect", return_value=conn):
        data = call(report_tools.estimate_fra_size, "local_xe")
    assert data["inputs"]["db_size_gb"] == 100
    assert data["inputs"]["redo_gb"] == 1.5
    assert data["estimate"]["components"]["Online Redo Logs"] == 1.5
    assert "Backup size ESTIMATED (no RMAN history found)" in data["estimate"]["notes"]


def test_access_score_levels():
    assert access_check.score({"A": "✓ Accessible", "B": "✓ Accessible"}) == (10, "HIGH - Reports fully available")
    points, level = access_check.score({"A": "✓ Accessible", "B": "✗ No access: ORA-00942"})
    assert points == 5
    assert level.startswith("LOW")


def test_check_diagnostic_access_reports_missing_awr():
    conn = FakeConnection([("DBA_HIST_", oracledb.DatabaseError("ORA-00942: table or view does not exist"))])
    with mock.patch.object(access_check.oracle_connector, "connect", return_value=conn):
        data = call(access_check.check_diagnostic_access, "local_xe", "top_sql")
    report = data["access_report"]
    assert report["access_checks"]["V$SESSION"] == "✓ Accessible"
    assert report["access_checks"]["DBA_HIST_SQLSTAT"] == "✗ No access: ORA-00942: table or view does not exist"
    assert report["impact_score"] == "6/10"
    assert report["affected_reports"] == {
        "top_sql": ["DBA_HIST_SNAPSHOT", "DBA_HIST_SQLSTAT", "DBA_HIST_SQLTEXT"]}
    assert report["recommendations"][0].startswith("AWR views (DBA_HIST_*)")
    assert conn.closed


def test_check_diagnostic_access_unknown_report():
    data = call(access_check.check_diagnostic_access, "local_xe", "nope")
    assert data["error"] == "Unknown report 'nope'"


def test_prompts_point_at_report_tool():
    from prompts import diagnostic_prompts

    text = call(diagnostic_prompts.interpret_wait_events, "prod_rac", 3)
    assert 'report="awr_wait_events"' in text
    assert '"days_back": 3' in text
    assert 'report="health_check"' in call(diagnostic_prompts.interpret_health_check, "prod_rac")


def test_list_available_databases_reports_each_preset():
    from tools import database_tools

    def connect(name):
        if name == "prod_rac":
            raise oracledb.DatabaseError("ORA-12154: could not resolve the connect identifier")
        return FakeConnection([("v$version", oracledb.DatabaseError("ORA-00942: table or view does not exist"))])

    with mock.patch.object(database_tools.oracle_connector, "connect", side_effect=connect):
        data = call(database_tools.list_available_databases)

    by_name = {db["name"]: db for db in data["databases"]}
    assert by_name["local_xe"]["status"] == "accessible"
    assert by_name["local_xe"]["message"] == "Connected (limited V$ access)"
    assert by_name["prod_rac"]["status"] == "error"
    assert data["summary"] == {"total_databases": 2, "total_accessible": 1, "total_errors": 1}
