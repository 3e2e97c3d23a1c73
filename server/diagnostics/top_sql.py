"""
Top SQL over the last N hours from AWR, plus what is burning CPU right now.
"""

from typing import Dict, List

from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

_STATS = """
WITH sql_stats AS (
    SELECT
        s.sql_id,
        s.plan_hash_value,
        SUM(s.executions_delta) AS executions,
        SUM(s.elapsed_time_delta) AS elapsed_time,
        SUM(s.cpu_time_delta) AS cpu_time,
        SUM(s.buffer_gets_delta) AS buffer_gets,
        SUM(s.disk_reads_delta) AS disk_reads,
        SUM(s.rows_processed_delta) AS rows_processed,
        SUM(s.physical_read_bytes_delta) AS phys_read_bytes,
        MAX(s.module) AS module
    FROM dba_hist_sqlstat s
    JOIN dba_hist_snapshot sn
      ON s.snap_id = sn.snap_id
     AND s.dbid = sn.dbid
     AND s.instance_number = sn.instance_number
    WHERE sn.end_interval_time >= SYSDATE - (:hours / 24)
      AND s.executions_delta > 0
      AND s.{delta} > 0
    GROUP BY s.sql_id, s.plan_hash_value
)
SELECT * FROM (
    SELECT
        ROW_NUMBER() OVER (ORDER BY s.{total} DESC) AS rank,
        s.sql_id,
        s.plan_hash_value,
        s.executions,
{columns},
        SUBSTR(REGEXP_REPLACE(st.sql_text, '[[:space:]]+', ' '), 1, 60) AS sql_text
    FROM sql_stats s
    JOIN dba_hist_sqltext st
      ON s.sql_id = st.sql_id
     AND st.dbid = (SELECT dbid FROM v$database)
)
WHERE rank <= :top_count
ORDER BY rank
"""


def ranked_sql(delta: str, total: str, columns: List[str]) -> str:
    """Top-N statement ranked on one aggregated AWR delta."""
    return _STATS.format(delta=delta, total=total,
                         columns=",\n".join(f"        {c}" for c in columns))


BY_ELAPSED_SQL = ranked_sql("elapsed_time_delta", "elapsed_time", [
    "ROUND(s.elapsed_time / 1000000, 2) AS total_elapsed_sec",
    "ROUND(s.elapsed_time / NULLIF(s.executions, 0) / 1000000, 2) AS avg_elapsed_sec",
    "ROUND(s.cpu_time / NULLIF(s.executions, 0) / 1000000, 2) AS avg_cpu_sec",
    "ROUND(s.cpu_time * 100 / NULLIF(s.elapsed_time, 0), 1) AS cpu_percent",
    "ROUND(s.buffer_gets / NULLIF(s.executions, 0), 0) AS avg_buffer_gets",
    "ROUND(s.disk_reads / NULLIF(s.executions, 0), 0) AS avg_disk_reads",
])

BY_CPU_SQL = ranked_sql("cpu_time_delta", "cpu_time", [
    "ROUND(s.cpu_time / 1000000, 2) AS total_cpu_sec",
    "ROUND(s.cpu_time / NULLIF(s.executions, 0) / 1000000, 2) AS avg_cpu_sec",
    "ROUND(s.elapsed_time / NULLIF(s.executions, 0) / 1000000, 2) AS avg_elapsed_sec",
    "ROUND(s.buffer_gets / NULLIF(s.executions, 0), 0) AS avg_buffer_gets",
    "s.module",
])

BY_BUFFER_GETS_SQL = ranked_sql("buffer_gets_delta", "buffer_gets", [
    "s.buffer_gets AS total_buffer_gets",
    "ROUND(s.buffer_gets / NULLIF(s.executions, 0), 0) AS avg_buffer_gets",
    "ROUND(s.buffer_gets / NULLIF(s.rows_processed, 0), 2) AS gets_per_row",
    "ROUND(s.elapsed_time / NULLIF(s.executions, 0) / 1000000, 2) AS avg_elapsed_sec",
    "ROUND(s.disk_reads / NULLIF(s.executions, 0), 0) AS avg_disk_reads",
])

BY_DISK_READS_SQL = ranked_sql("disk_reads_delta", "disk_reads", [
    "s.disk_reads AS total_disk_reads",
    "ROUND(s.disk_reads / NULLIF(s.executions, 0), 0) AS avg_disk_reads",
    "ROUND(s.phys_read_bytes / 1024 / 1024, 2) AS total_mb_read",
    "ROUND(s.elapsed_time / NULLIF(s.executions, 0) / 1000000, 2) AS avg_elapsed_sec",
    "ROUND(s.buffer_gets / NULLIF(s.executions, 0), 0) AS avg_buffer_gets",
])

ACTIVE_CPU_SQL = """
SELECT ospid, sid, serial_num, sql_id, username, program, module, osuser, status, event,
       blocking_session, cpu_usage_sec, wait_time_sec
FROM (
    SELECT
        ROW_NUMBER() OVER (ORDER BY se.value DESC) AS rank,
        p.spid AS ospid,
        s.sid,
        s.serial# AS serial_num,
        s.sql_id,
        s.username,
        SUBSTR(s.program, 1, 25) AS program,
        s.module,
        s.osuser,
        s.status,
        s.event,
        s.blocking_session,
        se.value / 100 AS cpu_usage_sec,
        s.seconds_in_wait AS wait_time_sec
    FROM v$session s
    JOIN v$sesstat se ON se.sid = s.sid
    JOIN v$statname sn ON se.statistic# = sn.statistic#
    JOIN v$process p ON s.paddr = p.addr
    WHERE sn.name = 'CPU used by this session'
      AND s.username NOT IN ('SYS', 'SYSTEM', 'DBSNMP', 'SYSMAN')
      AND s.status = 'ACTIVE'
      AND s.type = 'USER'
      AND se.value > 100
)
WHERE rank <= 20
ORDER BY rank
"""

LONG_RUNNING_SQL = """
SELECT * FROM (
    SELECT
        sid,
        username,
        status,
        TO_CHAR(logon_time, 'DD-MON HH24:MI:SS') AS logon,
        CASE
            WHEN status = 'ACTIVE' THEN 'ACTIVE'
            ELSE LPAD(FLOOR(last_call_et / 3600), 3) || ':' ||
                 LPAD(FLOOR(MOD(last_call_et, 3600) / 60), 2, '0') || ':' ||
                 LPAD(MOD(MOD(last_call_et, 3600), 60), 2, '0')
        END AS idle,
        sql_id AS current_sql,
        TO_CHAR(sql_exec_start, 'DD-MON HH24:MI:SS') AS sql_exec_start,
        SUBSTR(program, 1, 25) AS program
    FROM v$session
    WHERE type = 'USER'
      AND username IS NOT NULL
      AND (last_call_et > 3600 OR status = 'ACTIVE')
    ORDER BY CASE WHEN status = 'ACTIVE' THEN 0 ELSE 1 END, last_call_et DESC
) WHERE ROWNUM <= 30
"""

AWR_PLAN_SQL = """
SELECT plan_table_output FROM TABLE(DBMS_XPLAN.DISPLAY_AWR(:plan_sql_id))
"""


def _wants_plan(params: Dict, env) -> bool:
    return bool((params.get("plan_sql_id") or "").strip())


class TopSqlReport(Report):
    name = "top_sql"
    title = "Top SQL Performance Analysis"
    description = "Top SQL by elapsed, CPU, logical and physical reads over the last N hours."
    parameters = [
        Parameter("hours_back", "Hours to analyze", 24, kind="int", minimum=1, maximum=168),
        Parameter("top_count", "Number of top SQLs to show", 20, kind="int", minimum=1, maximum=100),
        Parameter("plan_sql_id", "SQL_ID for execution plan (blank to skip)", ""),
    ]
    required_views = [
        "DBA_HIST_SQLSTAT", "DBA_HIST_SNAPSHOT", "DBA_HIST_SQLTEXT",
        "V$SESSION", "V$SESSTAT", "V$STATNAME", "V$PROCESS",
    ]

    def build_sections(self, params, env):
        hours = params["hours_back"]
        binds = {"hours": hours, "top_count": params["top_count"]}
        plan_sql_id = (params.get("plan_sql_id") or "").strip()
        return [
            Section(f"1. Top SQLs by Elapsed Time (Last {hours} hours)", BY_ELAPSED_SQL, binds),
            Section(f"2. Top SQLs by CPU Time (Last {hours} hours)", BY_CPU_SQL, binds),
            Section("3. Top SQLs by Buffer Gets (Logical I/O)", BY_BUFFER_GETS_SQL, binds),
            Section("4. Top SQLs by Disk Reads (Physical I/O)", BY_DISK_READS_SQL, binds),
            Section("5. Currently Active CPU Consuming Sessions", ACTIVE_CPU_SQL),
            Section("6. Long Running Operations (Active and Idle Sessions)", LONG_RUNNING_SQL),
            Section("7. Execution Plan", AWR_PLAN_SQL, {"plan_sql_id": plan_sql_id},
                    when=_wants_plan,
                    skip_message="No SQL_ID provided - skipping execution plan analysis",
                    lines=[f"Showing execution plan for SQL_ID: {plan_sql_id}"] if plan_sql_id else []),
        ]
