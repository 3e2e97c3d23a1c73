from conftest import FakeConnection
from diagnostics import REPORTS, get_report, report_names, sga_advanced
from diagnostics.health_check import data_guard_status
from diagnostics.lock_analysis import kill_command, kill_commands, name_modes
from diagnostics.parameters import resolve_parameters
from diagnostics.report import Environment, SKIPPED
from diagnostics.runner import ReportRunner
from diagnostics.schema_sizes import add_grand_total, owner_filter
from diagnostics.sga_advanced import (
    db_cache_advice, executive_summary, pivot_cache_fusion, sga_target_advice, shared_pool_advice,
)
from diagnostics.sql_analysis import BY_TEXT, sql_recommendations
from diagnostics.tablespace_growth import STATISTICS_SQL, SUMMARY_SQL, add_growth_level, project_growth
from diagnostics.tablespace_usage import SPECIFIC, TEMP, summary_line, usage_sql

SINGLE = Environment(db_name="ORCL", version="19.3.0.0.0")
RAC = Environment(db_name="PROD", version="19.3.0.0.0", instance_count=2, cluster_database=True)


def build(name, env=SINGLE, **raw):
    report = get_report(name)
    values, _ = resolve_parameters(report.parameters, raw)
    return report.build_sections(values, env)


def test_registry_has_all_reports():
    assert report_names() == sorted([
        "awr_wait_events", "fra_sizing", "health_check", "lock_analysis", "schema_sizes",
        "sga_advanced", "sga_usage", "sql_analysis", "tablespace_growth", "tablespace_usage",
        "temp_usage", "top_sql",
    ])
    for report in REPORTS.values():
        assert report.title
        assert report.required_views


def test_unknown_report_lists_names():
    try:
        get_report("nope")
    except KeyError as e:
        assert "Available: awr_wait_events" in e.args[0]
    else:
        raise AssertionError("expected KeyError")


def test_every_report_builds_read_only_sections():
    for name in REPORTS:
        for env in (SINGLE, RAC):
            for section in build(name, env):
                if section.sql is not None:
                    assert section.sql.lstrip().upper().startswith(("SELECT", "WITH")), section.title


def test_sql_analysis_requires_sql_id():
    sections = build("sql_analysis")
    assert len(sections) == 1
    assert sections[0].error == "Required input is missing: sql_id for SQL_ID analysis."


def test_sql_analysis_text_search_without_sql_id_stops_after_search():
    sections = build("sql_analysis", analysis_type=BY_TEXT, search_text="orders")
    assert [s.title for s in sections] == ["1. SQL Identification", "Next Step"]
    assert sections[0].binds["pattern"] == "%orders%"


def test_sql_analysis_full_run():
    sections = build("sql_analysis", sql_id="7h35uxf5uhmm1", days_back=3)
    assert len(sections) == 9
    assert sections[5].title == "6. Detailed Performance Metrics (Last 3 days)"
    assert sections[1].binds == {"sql_id": "7h35uxf5uhmm1", "days": 3}


def test_sql_recommendations():
    lines = sql_recommendations({"plan_count": 4, "avg_pio": 2000, "avg_lio": 50,
                                 "avg_et_sec": 1, "stddev_et_sec": 5, "has_io_waits": 1})
    assert lines[0] == "CRITICAL: 4 different plans - investigate bind peeking"
    assert lines[1].startswith("CRITICAL: Very high physical I/O (2000)")
    assert lines[3].startswith("WARNING: High performance variance")
    assert lines[4].startswith("SUGGESTION: I/O wait events detected")
    assert len(lines) == 7
    assert sql_recommendations({})[0] == "INFO: Consistent execution plan"


def test_sql_recommendations_round_half_up():
    lines = sql_recommendations({"avg_pio": 150.5, "avg_lio": 2.5})
    assert lines[1] == "WARNING: High physical I/O (151) - review access patterns"
    assert lines[2] == "INFO: Efficient logical I/O (3)"


def test_top_sql_plan_section_gated():
    runner = ReportRunner(FakeConnection())
    plan = build("top_sql")[-1]
    res = runner.run_section(plan, {"plan_sql_id": ""}, SINGLE)
    assert res.status == SKIPPED
    assert res.message == "No SQL_ID provided - skipping execution plan analysis"

    plan = build("top_sql", plan_sql_id="abc")[-1]
    assert plan.when({"plan_sql_id": "abc"}, SINGLE)
    assert plan.binds == {"plan_sql_id": "abc"}


def test_top_sql_out_of_range_uses_default():
    values, warnings = resolve_parameters(get_report("top_sql").parameters, {"hours_back": "1000"})
    assert values["hours_back"] == 24
    assert len(warnings) == 1


def test_tablespace_usage_filters():
    assert "WHERE type = 'TEMP'" in usage_sql(TEMP)
    section = build("tablespace_usage", choice=SPECIFIC, tablespace_name="users")[0]
    assert section.binds == {"ts_name": "USERS"}
    assert section.lines == ["SUMMARY: Specific tablespace - USERS"]
    assert build("tablespace_usage")[0].binds == {}
    assert summary_line(1, "DUMMY") == "SUMMARY: All tablespaces displayed"


def test_tablespace_usage_invalid_choice_shows_all():
    section = build("tablespace_usage", choice="9")[0]
    assert section.lines == ["SUMMARY: All tablespaces displayed"]


def test_schema_owner_filter():
    predicates, binds = owner_filter("ALL")
    assert "NOT IN" in predicates["table_owner"]
    assert "'SYS'" in predicates["lob_owner"]
    assert binds == {}

    predicates, binds = owner_filter("HR")
    assert predicates["table_owner"] == "UPPER(s.owner) = UPPER(:schema)"
    assert binds == {"schema": "HR"}


def test_schema_summary_only_for_all():
    runner = ReportRunner(FakeConnection())
    summary = build("schema_sizes", schema="hr")[1]
    assert runner.run_section(summary, {"schema": "HR"}, SINGLE).status == SKIPPED


def test_grand_total_row():
    rows = add_grand_total([
        {"owner": "HR", "table_name": "A", "table_mb": 1.5, "lob_mb": 0, "total_mb": 1.5},
        {"owner": "HR", "table_name": "B", "table_mb": 2, "lob_mb": 3.25, "total_mb": 5.25},
    ])
    assert rows[-1] == {"owner": "GRAND TOTAL:", "table_name": None,
                        "table_mb": 3.5, "lob_mb": 3.25, "total_mb": 6.75}
    assert add_grand_total([]) == []


def test_lock_helpers():
    assert kill_command(123, 4567) == "ALTER SYSTEM KILL SESSION '123,4567' IMMEDIATE;"
    assert name_modes([{"sid": 1, "lmode": 6, "request": 0}]) == [
        {"sid": 1, "mode_held": "Exclusive", "mode_requested": "None"}]

    rows = kill_commands([
        {"sid": 10, "serial_num": 20, "lock_type": "TX", "lmode": 6, "owner": "HR", "object_name": "EMP"},
        {"sid": 11, "serial_num": 21, "lock_type": "UL", "lmode": 4, "owner": None, "object_name": None},
    ])
    assert rows[0]["kill_command"] == "ALTER SYSTEM KILL SESSION '10,20' IMMEDIATE;"
    assert rows[0]["reason"] == "BLOCKER - TX (Exclusive) on (HR.EMP)"
    assert rows[1]["reason"] == "BLOCKER - UL (Share) on (SYSTEM_LOCK)"


def test_lock_long_transaction_threshold_bound():
    sections = build("lock_analysis", long_txn_minutes="15")
    long_txn = [s for s in sections if s.title.startswith("8.")][0]
    assert long_txn.title == "8. Long Transactions and Undo Usage (> 15 min)"
    assert long_txn.binds == {"minutes": 15}


def test_health_check_rac_sections_skipped_standalone():
    conn = FakeConnection()
    result = ReportRunner(conn).run(get_report("health_check"), environment=SINGLE)
    rac_titles = {"2. RAC Services Status", "9. Global Cache Efficiency", "8. Global Enqueue Activity"}
    for title in rac_titles:
        assert result.section(title).status == SKIPPED
    assert "gv$services" not in " ".join(sql.lower() for sql, _ in conn.cursor_obj.executed)


def test_sga_advice_texts():
    assert sga_target_advice({"size_factor": 1}) == "Current configuration (baseline)"
    assert sga_target_advice({"size_factor": 0.5, "target_size_gb": 2, "current_sga_gb": 4}) == \
        "REDUCE: Potential memory waste of 2GB"
    assert sga_target_advice({"size_factor": 1.5, "target_size_gb": 6, "current_sga_gb": 4,
                              "baseline_db_time": 100, "estd_db_time": 80}) == \
        "INCREASE: Add 2GB for 20.0% performance improvement"

    assert db_cache_advice({"size_ratio": 1}) == "CURRENT CONFIGURATION"
    assert db_cache_advice({"cache_size_gb": 6, "current_cache_gb": 4, "estd_physical_read_factor": 0.8}) == \
        "RECOMMENDED: Increase cache by 2GB for 20.0% fewer physical reads"
    assert db_cache_advice({"cache_size_gb": 4, "current_cache_gb": 4, "estd_physical_read_factor": 1.0}) == \
        "MINIMAL IMPACT: Little performance change"

    assert shared_pool_advice({"size_factor": 1}) == "CURRENT CONFIGURATION"
    assert shared_pool_advice({"size_factor": 0.5, "pool_size_gb": 1, "estd_lc_time_saved": -30}) == \
        "RISKY: Reducing to 1GB may increase parse time by 30ms"
    assert shared_pool_advice({"size_factor": 2, "estd_lc_time_saved": 0}) == \
        "MINIMAL BENEFIT: Little performance improvement expected"


def test_cache_fusion_pivot():
    rows = pivot_cache_fusion([
        {"inst_id": 1, "metric_name": "gc blocks lost", "value": 800},
        {"inst_id": 2, "metric_name": "gc blocks lost", "value": 400},
        {"inst_id": 2, "metric_name": "gc cr blocks received", "value": 50},
    ])
    lost = rows[0]
    assert lost == {"metric_name": "gc blocks lost", "inst1_value": 800, "inst2_value": 400,
                    "cluster_total": 1200, "performance": "HIGH LOSS RATE"}
    assert rows[1]["inst1_value"] == 0


def test_executive_summary():
    lines = executive_summary(RAC, [70, 80], [20])
    assert lines[0] == "=== CLUSTER HEALTH ASSESSMENT ==="
    assert lines[1] == "CLUSTER: 2 instances RAC cluster detected"
    assert lines[2].startswith("PERFORMANCE: CRITICAL")
    assert lines[3].startswith("MEMORY: STABLE")

    lines = executive_summary(SINGLE, [], [3])
    assert lines[1] == "CLUSTER: Standalone instance (non-RAC)"
    assert lines[2].startswith("PERFORMANCE: UNKNOWN")
    assert lines[3].startswith("MEMORY: CRITICAL")


def test_growth_transforms():
    rows = add_growth_level([
        {"day_seq": 1, "daily_growth_mb": 999},
        {"day_seq": 2, "daily_growth_mb": 250},
    ])
    assert rows[0]["growth_level"] == "BASELINE"
    assert rows[0]["daily_growth_mb"] == 0
    assert rows[1]["growth_level"] == "MODERATE"
    assert "day_seq" not in rows[1]

    projected = project_growth([{"tablespace_name": "USERS", "current_allocated_gb": 100,
                                 "current_used_gb": 80, "avg_daily_growth_gb": 0.5}])[0]
    assert projected["projected_used_gb"] == 95
    assert projected["risk_assessment"] == "CRITICAL - ACTION NEEDED"


def test_growth_statistics_kept_at_mb_precision():
    assert "POWER(1024, 2)" in STATISTICS_SQL
    assert "used_mb - LAG(used_mb)" in STATISTICS_SQL
    assert "* 1024" not in STATISTICS_SQL
    assert "HAVING COUNT(*) > 1" in STATISTICS_SQL


def test_growth_summary_spans_all_snapshots():
    assert "MIN(ROUND((tsu.tablespace_usedsize" in SUMMARY_SQL
    assert "COUNT(DISTINCT TO_CHAR(sp.begin_interval_time, 'YYYY-MM-DD'))" in SUMMARY_SQL
    assert "GROUP BY ts.tsname\n" in SUMMARY_SQL
    assert "GROUP BY TO_CHAR" not in SUMMARY_SQL
    assert "max_used_gb - min_used_gb AS total_growth_gb" in SUMMARY_SQL


def test_data_guard_status_line():
    assert data_guard_status([{"dg_count": 2}]) == [
        {"data_guard": "Data Guard Configuration Detected", "valid_destinations": 2}]
    assert data_guard_status([{"dg_count": 0}])[0]["data_guard"] == "No Data Guard Configuration Found"
    assert data_guard_status([])[0]["data_guard"] == "No Data Guard Configuration Found"


def test_health_check_reports_missing_data_guard():
    conn = FakeConnection([("COUNT(*) AS dg_count", (["dg_count"], [(0,)]))])
    result = ReportRunner(conn).run(get_report("health_check"), environment=SINGLE)
    section = result.section("11. Data Guard Configuration")
    assert section.rows == [{"data_guard": "No Data Guard Configuration Found", "valid_destinations": 0}]
    assert result.section("11. Data Guard Destinations").message == "No active archive destinations."


def test_sga_advanced_runs_every_query_it_defines():
    defined = {v for k, v in vars(sga_advanced).items() if k.endswith("_SQL")}
    used = {s.sql for s in build("sga_advanced", env=RAC) if s.sql}
    assert defined == used
