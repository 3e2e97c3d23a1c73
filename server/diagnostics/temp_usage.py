"""
Temporary tablespace usage: overview, sessions, SQL, files and totals.
"""

from typing import List

from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

OVERVIEW_SQL = """
SELECT
    ts.tablespace_name,
    NVL(df.total_mb, 0) AS total_mb,
    NVL(tu.used_mb, 0) AS used_mb,
    NVL(df.total_mb, 0) - NVL(tu.used_mb, 0) AS free_mb,
    CASE WHEN NVL(df.total_mb, 0) = 0 THEN 0
         ELSE ROUND(NVL(tu.used_mb, 0) / df.total_mb * 100, 2) END AS usage_pct,
    ts.status
FROM dba_tablespaces ts
LEFT JOIN (
    SELECT tablespace_name, SUM(bytes) / 1024 / 1024 AS total_mb
    FROM dba_temp_files
    GROUP BY tablespace_name
) df ON ts.tablespace_name = df.tablespace_name
LEFT JOIN (
    SELECT ss.tablespace_name, SUM(ss.used_blocks * t.block_size) / 1024 / 1024 AS used_mb
    FROM v$sort_segment ss
    JOIN dba_tablespaces t ON ss.tablespace_name = t.tablespace_name
    GROUP BY ss.tablespace_name
) tu ON ts.tablespace_name = tu.tablespace_name
WHERE ts.contents = 'TEMPORARY'
ORDER BY ts.tablespace_name
"""

BY_SESSION_SQL = """
SELECT
    s.sid || ',' || s.serial# AS sid_serial,
    s.username,
    s.osuser,
    p.spid,
    SUBSTR(s.program, 1, 25) AS program,
    SUBSTR(s.module, 1, 20) AS module,
    SUM(su.blocks) * ts.block_size / 1024 / 1024 AS mb_used,
    su.tablespace,
    COUNT(*) AS statements,
    s.sql_id
FROM v$sort_usage su
JOIN v$session s ON su.session_addr = s.saddr
JOIN v$process p ON s.paddr = p.addr
JOIN dba_tablespaces ts ON su.tablespace = ts.tablespace_name
GROUP BY s.sid, s.serial#, s.username, s.osuser, p.spid,
         s.program, s.module, ts.block_size, su.tablespace, s.sql_id
ORDER BY mb_used DESC, s.sid
"""

TOP_SQL_SQL = """
SELECT * FROM (
    SELECT
        sq.sql_id,
        SUM(su.blocks) * ts.block_size / 1024 / 1024 AS temp_space_mb,
        sq.executions,
        SUBSTR(sq.sql_text, 1, 60) AS sql_text
    FROM v$sort_usage su
    JOIN v$session s ON su.session_addr = s.saddr
    JOIN v$sql sq ON s.sql_id = sq.sql_id AND s.sql_child_number = sq.child_number
    JOIN dba_tablespaces ts ON su.tablespace = ts.tablespace_name
    GROUP BY sq.sql_id, sq.executions, sq.sql_text, ts.block_size
    ORDER BY temp_space_mb DESC
) WHERE ROWNUM <= 10
"""

FILES_SQL = """
SELECT
    tf.tablespace_name,
    tf.file_name,
    tf.bytes / 1024 / 1024 AS total_mb,
    tf.autoextensible,
    CASE WHEN tf.maxbytes = 0 THEN 0 ELSE tf.maxbytes / 1024 / 1024 END AS max_mb,
    tf.increment_by * ts.block_size / 1024 / 1024 AS increment_mb
FROM dba_temp_files tf
JOIN dba_tablespaces ts ON tf.tablespace_name = ts.tablespace_name
ORDER BY tf.tablespace_name, tf.file_id
"""

SUMMARY_SQL = """
SELECT 'Total Temp Tablespaces' AS metric, COUNT(*) AS value
FROM dba_tablespaces WHERE contents = 'TEMPORARY'
UNION ALL
SELECT 'Active Sessions Using Temp', COUNT(DISTINCT s.sid)
FROM v$sort_usage su JOIN v$session s ON su.session_addr = s.saddr
UNION ALL
SELECT 'Total Temp Files', COUNT(*) FROM dba_temp_files
UNION ALL
SELECT 'Total Allocated Temp Space (MB)', ROUND(SUM(bytes) / 1024 / 1024, 2) FROM dba_temp_files
"""


class TempUsageReport(Report):
    name = "temp_usage"
    title = "Temporary Tablespace Usage"
    description = "Temp tablespace sizes, usage by session, top SQL using temp and temp file layout."
    parameters: List[Parameter] = []
    required_views = [
        "DBA_TABLESPACES", "DBA_TEMP_FILES", "V$SORT_SEGMENT", "V$SORT_USAGE",
        "V$SESSION", "V$PROCESS", "V$SQL",
    ]

    def build_sections(self, params, env):
        return [
            Section("Temporary Tablespace Overview", OVERVIEW_SQL),
            Section("Temporary Space Usage by Session", BY_SESSION_SQL,
                    empty_message="No sessions are using temporary space."),
            Section("Top SQL Statements Using Temporary Space", TOP_SQL_SQL,
                    empty_message="No SQL is using temporary space."),
            Section("Temporary Tablespace Configuration", FILES_SQL),
            Section("Summary Statistics", SUMMARY_SQL,
                    lines=["Monitor these metrics regularly for optimal temporary space management."]),
        ]
