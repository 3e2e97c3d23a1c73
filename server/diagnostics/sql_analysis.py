"""
Performance analysis for one SQL_ID, or a text search to find candidates.

History comes from AWR (dba_hist_*) and needs the Diagnostics Pack; the
cursor children section reads v$sql.
"""

from typing import Dict, List, Optional

from diagnostics.classify import ora_round
from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

BY_SQL_ID = 1
BY_TEXT = 2

_AWR_WINDOW = """
    JOIN dba_hist_snapshot sn
      ON sn.snap_id = s.snap_id
     AND sn.instance_number = s.instance_number
     AND sn.dbid = s.dbid
    WHERE s.sql_id = :sql_id
      AND sn.end_interval_time >= SYSDATE - :days
"""

TEXT_SEARCH_SQL = """
SELECT * FROM (
    SELECT
        st.sql_id,
        NVL(SUM(s.executions_delta), 0) AS executions,
        ROUND(NVL(SUM(s.elapsed_time_delta) / GREATEST(SUM(s.executions_delta), 1), 0) / 1000, 2) AS avg_elapsed_ms,
        SUBSTR(REPLACE(st.sql_text, CHR(10), ' '), 1, 80) AS sql_text_preview
    FROM dba_hist_sqltext st
    LEFT JOIN dba_hist_sqlstat s ON st.sql_id = s.sql_id AND st.dbid = s.dbid
    LEFT JOIN dba_hist_snapshot sn ON s.snap_id = sn.snap_id AND s.dbid = sn.dbid
                                  AND s.instance_number = sn.instance_number
    WHERE UPPER(st.sql_text) LIKE UPPER(:pattern)
      AND st.sql_text NOT LIKE '%DBA_HIST%'
      AND st.sql_text NOT LIKE '%GV$%'
      AND st.sql_text NOT LIKE '%V$%'
      AND sn.end_interval_time >= SYSDATE - :days
    GROUP BY st.sql_id, SUBSTR(REPLACE(st.sql_text, CHR(10), ' '), 1, 80)
    ORDER BY NVL(SUM(s.elapsed_time_delta), 0) DESC
) WHERE ROWNUM <= 50
"""

SQL_TEXT_SQL = """
SELECT sql_text FROM dba_hist_sqltext WHERE sql_id = :sql_id AND ROWNUM = 1
"""

HISTORY_SQL = """
SELECT
    TO_CHAR(sn.begin_interval_time, 'YYYY/MM/DD') AS sdate,
    TO_CHAR(sn.begin_interval_time, 'HH24:MI') AS stime,
    s.snap_id,
    s.plan_hash_value AS plan,
    ROUND(s.elapsed_time_delta / 1000000, 2) AS et_secs,
    NVL(s.executions_delta, 0) AS execs,
    ROUND(s.elapsed_time_delta / NULLIF(s.executions_delta, 0) / 1000000, 2) AS et_per_exec,
    ROUND(s.buffer_gets_delta / NULLIF(s.executions_delta, 0), 2) AS avg_lio,
    ROUND(s.cpu_time_delta / NULLIF(s.executions_delta, 0) / 1000, 2) AS avg_cpu_ms,
    ROUND(s.iowait_delta / NULLIF(s.executions_delta, 0) / 1000, 2) AS avg_iow_ms,
    ROUND(s.disk_reads_delta / NULLIF(s.executions_delta, 0), 2) AS avg_pio,
    s.rows_processed_delta AS num_rows
FROM dba_hist_sqlstat s
""" + _AWR_WINDOW + """
ORDER BY sn.begin_interval_time DESC
"""

PLAN_VARIATIONS_SQL = """
SELECT
    s.plan_hash_value,
    COUNT(*) AS snapshots,
    MIN(TO_CHAR(sn.begin_interval_time, 'YYYY/MM/DD HH24:MI')) AS first_seen,
    MAX(TO_CHAR(sn.begin_interval_time, 'YYYY/MM/DD HH24:MI')) AS last_seen,
    SUM(s.executions_delta) AS total_execs,
    ROUND(AVG(s.elapsed_time_delta / GREATEST(s.executions_delta, 1)) / 1000000, 3) AS avg_elapsed_sec
FROM dba_hist_sqlstat s
""" + _AWR_WINDOW + """
GROUP BY s.plan_hash_value
ORDER BY total_execs DESC
"""

ASH_SQL = """
SELECT * FROM (
    SELECT
        h.sql_plan_hash_value,
        NVL(h.event, 'ON CPU') AS event,
        h.sql_plan_line_id,
        h.sql_plan_operation,
        h.sql_plan_options,
        COUNT(*) AS samples,
        ROUND(COUNT(*) * 100.0 / SUM(COUNT(*)) OVER (), 1) AS pct,
        SUM(h.delta_read_io_requests) AS read_requests,
        SUM(h.delta_read_io_bytes) AS read_bytes
    FROM dba_hist_active_sess_history h
    JOIN dba_hist_snapshot sn
      ON h.snap_id = sn.snap_id
     AND h.dbid = sn.dbid
     AND h.instance_number = sn.instance_number
    WHERE h.sql_id = :sql_id
      AND sn.end_interval_time >= SYSDATE - :days
    GROUP BY h.sql_plan_hash_value, h.event, h.sql_plan_line_id, h.sql_plan_operation, h.sql_plan_options
    ORDER BY COUNT(*) DESC
) WHERE ROWNUM <= 20
"""

METRICS_SQL = """
WITH perf_data AS (
    SELECT
        SUM(s.executions_delta) AS total_execs,
        SUM(s.elapsed_time_delta) AS total_elapsed,
        SUM(s.cpu_time_delta) AS total_cpu,
        SUM(s.buffer_gets_delta) AS total_buffer_gets,
        SUM(s.disk_reads_delta) AS total_disk_reads,
        SUM(s.rows_processed_delta) AS total_rows,
        SUM(s.fetches_delta) AS total_fetches,
        AVG(s.elapsed_time_delta / GREATEST(s.executions_delta, 1)) AS avg_elapsed,
        MIN(s.elapsed_time_delta / GREATEST(s.executions_delta, 1)) AS min_elapsed,
        MAX(s.elapsed_time_delta / GREATEST(s.executions_delta, 1)) AS max_elapsed,
        AVG(s.cpu_time_delta / GREATEST(s.executions_delta, 1)) AS avg_cpu,
        AVG(s.buffer_gets_delta / GREATEST(s.executions_delta, 1)) AS avg_buffer_gets,
        AVG(s.disk_reads_delta / GREATEST(s.executions_delta, 1)) AS avg_disk_reads
    FROM dba_hist_sqlstat s
""" + _AWR_WINDOW + """
      AND s.executions_delta > 0
)
SELECT 'Total Executions' AS metric, total_execs AS total_value, NULL AS avg_per_exec,
       NULL AS min_per_exec, NULL AS max_per_exec FROM perf_data
UNION ALL
SELECT 'Elapsed Time (sec)', ROUND(total_elapsed / 1000000, 2), ROUND(avg_elapsed / 1000000, 4),
       ROUND(min_elapsed / 1000000, 4), ROUND(max_elapsed / 1000000, 4) FROM perf_data
UNION ALL
SELECT 'CPU Time (sec)', ROUND(total_cpu / 1000000, 2), ROUND(avg_cpu / 1000000, 4), NULL, NULL FROM perf_data
UNION ALL
SELECT 'Buffer Gets', total_buffer_gets, ROUND(avg_buffer_gets, 2), NULL, NULL FROM perf_data
UNION ALL
SELECT 'Disk Reads', total_disk_reads, ROUND(avg_disk_reads, 2), NULL, NULL FROM perf_data
UNION ALL
SELECT 'Rows Processed', total_rows, ROUND(total_rows / GREATEST(total_execs, 1), 2), NULL, NULL FROM perf_data
UNION ALL
SELECT 'Fetches', total_fetches, ROUND(total_fetches / GREATEST(total_execs, 1), 2), NULL, NULL FROM perf_data
"""

CURSORS_SQL = """
SELECT
    child_number,
    plan_hash_value,
    first_load_time,
    last_load_time,
    outline_category,
    sql_profile,
    executions,
    CASE WHEN executions = 0 THEN 0 ELSE TRUNC(rows_processed / executions) END AS rows_avg,
    CASE WHEN executions = 0 THEN 0 ELSE TRUNC(fetches / executions) END AS fetches_avg,
    CASE WHEN executions = 0 THEN 0 ELSE TRUNC(disk_reads / executions) END AS disk_reads_avg,
    CASE WHEN executions = 0 THEN 0 ELSE TRUNC(buffer_gets / executions) END AS buffer_gets_avg,
    CASE WHEN executions = 0 THEN 0 ELSE TRUNC(cpu_time / executions) END AS cpu_time_avg,
    CASE WHEN executions = 0 THEN 0 ELSE TRUNC(elapsed_time / executions) END AS elapsed_time_avg
FROM v$sql
WHERE sql_id = :sql_id
ORDER BY child_number
"""

SESSIONS_SQL = """
SELECT
    h.sql_exec_start,
    NVL(du.username, 'USER_ID_' || h.user_id) AS username,
    h.session_id,
    h.session_serial# AS session_serial,
    COUNT(*) AS samples,
    MIN(h.sample_time) AS first_sample,
    MAX(h.sample_time) AS last_sample
FROM dba_hist_active_sess_history h
LEFT JOIN dba_users du ON h.user_id = du.user_id
WHERE h.sql_id = :sql_id
  AND h.sample_time >= SYSDATE - :days
  AND h.sql_exec_start IS NOT NULL
GROUP BY h.sql_exec_start, du.username, h.session_id, h.session_serial#, h.user_id
ORDER BY h.sql_exec_start DESC
"""

FINDINGS_SQL = """
WITH findings AS (
    SELECT
        COUNT(DISTINCT s.plan_hash_value) AS plan_count,
        AVG(s.disk_reads_delta / GREATEST(s.executions_delta, 1)) AS avg_pio,
        AVG(s.buffer_gets_delta / GREATEST(s.executions_delta, 1)) AS avg_lio,
        AVG(s.elapsed_time_delta / GREATEST(s.executions_delta, 1)) / 1000000 AS avg_et_sec,
        STDDEV(s.elapsed_time_delta / GREATEST(s.executions_delta, 1)) / 1000000 AS stddev_et_sec,
        SUM(s.executions_delta) AS total_executions
    FROM dba_hist_sqlstat s
""" + _AWR_WINDOW + """
      AND s.executions_delta > 0
),
ash_findings AS (
    SELECT
        MAX(CASE WHEN event LIKE '%read%' THEN 1 ELSE 0 END) AS has_io_waits,
        MAX(CASE WHEN event LIKE '%enq%' THEN 1 ELSE 0 END) AS has_lock_waits
    FROM dba_hist_active_sess_history
    WHERE sql_id = :sql_id
      AND sample_time >= SYSDATE - :days
)
SELECT f.*, af.has_io_waits, af.has_lock_waits
FROM findings f CROSS JOIN ash_findings af
"""

FURTHER_ANALYSIS = [
    "For further analysis, consider:",
    "  - SQL Tuning Advisor: EXEC DBMS_SQLTUNE.CREATE_TUNING_TASK",
    "  - SQLT (Oracle Support): Enhanced SQL analysis",
    "  - Real-Time SQL Monitoring: V$SQL_MONITOR",
]


def _round(value) -> int:
    return ora_round(value or 0)


def sql_recommendations(f: Dict) -> List[str]:
    """Findings row (AWR and ASH aggregates) to recommendation lines."""
    plans = f.get("plan_count") or 0
    if plans > 3:
        out = [f"CRITICAL: {plans} different plans - investigate bind peeking"]
    elif plans > 1:
        out = [f"WARNING: Multiple plans ({plans}) - consider SQL Plan Management"]
    else:
        out = ["INFO: Consistent execution plan"]

    pio = f.get("avg_pio") or 0
    if pio > 1000:
        out.append(f"CRITICAL: Very high physical I/O ({_round(pio)}) - check indexes and table access")
    elif pio > 100:
        out.append(f"WARNING: High physical I/O ({_round(pio)}) - review access patterns")
    else:
        out.append(f"INFO: Physical I/O within acceptable range ({_round(pio)})")

    lio = f.get("avg_lio") or 0
    if lio > 100000:
        out.append(f"WARNING: High logical I/O ({_round(lio)}) - review SQL efficiency")
    elif lio > 10000:
        out.append(f"INFO: Moderate logical I/O ({_round(lio)}) - acceptable")
    else:
        out.append(f"INFO: Efficient logical I/O ({_round(lio)})")

    avg_et = f.get("avg_et_sec") or 0
    stddev = f.get("stddev_et_sec") or 0
    if stddev > avg_et * 2:
        out.append("WARNING: High performance variance - investigate execution patterns")
    elif stddev > avg_et:
        out.append("INFO: Moderate performance variance - monitor trends")
    else:
        out.append("INFO: Consistent performance")

    if f.get("has_io_waits") == 1:
        out.append("SUGGESTION: I/O wait events detected - check storage performance")
    elif f.get("has_lock_waits") == 1:
        out.append("SUGGESTION: Lock waits detected - review concurrency")
    else:
        out.append("INFO: No significant wait events detected")

    out.append("BASELINE: Verify table/index statistics are current (last analyzed dates)")
    out.append("BASELINE: Check if SQL is executed during peak hours for resource contention")
    return out


def recommendation_rows(rows: List[Dict]) -> List[Dict]:
    findings = rows[0] if rows else {}
    return [{"recommendation": line} for line in sql_recommendations(findings)]


def target_sql_id(params: Dict) -> Optional[str]:
    value = (params.get("sql_id") or "").strip()
    return value or None


class SqlAnalysisReport(Report):
    name = "sql_analysis"
    title = "Oracle SQL Analysis"
    description = "History, plans, ASH and recommendations for a SQL_ID, or find SQL_IDs by text."
    parameters = [
        Parameter("analysis_type", "Analysis type", BY_SQL_ID, kind="choice",
                  choices={BY_SQL_ID: "Analyze by SQL_ID", BY_TEXT: "Find SQL_ID by text pattern"}),
        Parameter("sql_id", "SQL_ID to analyze", ""),
        Parameter("search_text", "Text pattern to search", ""),
        Parameter("days_back", "Days to analyze", 7, kind="int", minimum=1, maximum=3650),
    ]
    required_views = [
        "DBA_HIST_SQLTEXT", "DBA_HIST_SQLSTAT", "DBA_HIST_SNAPSHOT",
        "DBA_HIST_ACTIVE_SESS_HISTORY", "V$SQL", "DBA_USERS",
    ]

    def build_sections(self, params, env):
        days = params["days_back"]
        sections: List[Section] = []

        if params["analysis_type"] == BY_TEXT:
            pattern = (params.get("search_text") or "").strip()
            if not pattern:
                return [Section("1. SQL Identification",
                                error="Required input is missing: search_text for text pattern search.")]
            sections.append(Section(
                "1. SQL Identification", TEXT_SEARCH_SQL, {"pattern": f"%{pattern}%", "days": days},
                lines=[f"Searching for SQLs matching pattern: {pattern}",
                       "Showing top 50 matches. Use a more specific pattern if needed."],
                empty_message="No SQL found matching the pattern in the AWR window."))
            sql_id = target_sql_id(params)
            if sql_id is None:
                sections.append(Section("Next Step", lines=[
                    "Pick a SQL_ID from the search results and rerun with analysis_type=1 sql_id=<id>."]))
                return sections
        else:
            sql_id = target_sql_id(params)
            if sql_id is None:
                return [Section("1. SQL Identification",
                                error="Required input is missing: sql_id for SQL_ID analysis.")]
            sections.append(Section("1. SQL Identification", lines=[f"Proceeding with SQL_ID: {sql_id}"]))

        binds = {"sql_id": sql_id, "days": days}
        sections.extend([
            Section("2. Complete SQL Text", SQL_TEXT_SQL, binds,
                    empty_message=f"SQL_ID {sql_id} not found in AWR."),
            Section("3. Execution History and Performance Trends", HISTORY_SQL, binds),
            Section("4. Execution Plan Variations", PLAN_VARIATIONS_SQL, binds),
            Section("5. Active Session History Analysis", ASH_SQL, binds),
            Section(f"6. Detailed Performance Metrics (Last {days} days)", METRICS_SQL, binds),
            Section("7. Current Memory Statistics (V$SQL)", CURSORS_SQL, binds,
                    empty_message="Cursor is no longer in the shared pool."),
            Section("8. Recent Execution Sessions", SESSIONS_SQL, binds),
            Section("9. Performance Recommendations", FINDINGS_SQL, binds,
                    transform=recommendation_rows, lines=FURTHER_ANALYSIS),
        ])
        return sections
