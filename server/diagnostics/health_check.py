"""
Database health check.

Thirteen areas, standalone or RAC: overview, configuration, memory,
storage, performance ratios, SQL, sessions, locks, cluster interconnect,
backups, Data Guard, security and recommendations. Cluster-only sections
are skipped on a single instance. Read-only.
"""

from typing import Dict, List

from diagnostics import classify
from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section, rac_only

OVERVIEW_SQL = """
SELECT
    d.name AS db_name, i.inst_id, i.instance_name, i.host_name, i.status, d.platform_name, i.version,
    TO_CHAR(i.startup_time, 'DD-MON-YY HH24:MI') AS startup_time,
    d.database_role, d.open_mode, d.log_mode
FROM v$database d
CROSS JOIN gv$instance i
ORDER BY i.inst_id
"""

UPTIME_SQL = """
SELECT
    inst_id,
    instance_name,
    TRUNC(SYSDATE - startup_time) || ' days, ' ||
    TRUNC(MOD((SYSDATE - startup_time) * 24, 24)) || ' hours' AS uptime
FROM gv$instance
ORDER BY inst_id
"""

PARAMETERS_SQL = """
SELECT inst_id, name AS parameter, value, SUBSTR(description, 1, 50) AS description
FROM gv$parameter
WHERE name IN (
    'memory_target', 'memory_max_target', 'sga_target', 'sga_max_size',
    'pga_aggregate_target', 'processes', 'sessions', 'cpu_count',
    'db_cache_size', 'shared_pool_size', 'large_pool_size',
    'log_buffer', 'db_writer_processes', 'log_archive_dest_1',
    'cluster_database', 'instance_number', 'thread'
)
ORDER BY inst_id, name
"""

RAC_SERVICES_SQL = """
SELECT inst_id, name AS service_name, pdb
FROM gv$services
WHERE name NOT IN ('SYS$BACKGROUND', 'SYS$USERS')
ORDER BY name, inst_id
"""

SGA_SQL = """
SELECT
    component,
    ROUND(current_size / POWER(1024, 3), 2) AS current_size_gb,
    ROUND(max_size / POWER(1024, 3), 2) AS max_size_gb,
    ROUND(current_size * 100 / SUM(current_size) OVER (), 2) AS pct_of_sga
FROM v$sga_dynamic_components
WHERE current_size > 0
ORDER BY current_size DESC
"""

PGA_SQL = """
SELECT name AS statistic, ROUND(value / POWER(1024, 2), 2) AS value_mb
FROM v$pgastat
WHERE name IN (
    'aggregate PGA target parameter', 'total PGA allocated',
    'total PGA inuse', 'PGA memory freed back to OS'
)
ORDER BY value DESC
"""

PGA_ADVICE_SQL = """
SELECT
    ROUND(pga_target_for_estimate / POWER(1024, 3), 2) AS size_gb,
    pga_target_factor AS size_factor,
    estd_pga_cache_hit_percentage AS cache_hit_pct,
    estd_overalloc_count AS overalloc_count
FROM v$pga_target_advice
WHERE pga_target_factor BETWEEN 0.5 AND 2
ORDER BY pga_target_factor
"""

TABLESPACE_SQL = """
SELECT
    ts.tablespace_name,
    ROUND(NVL(df.total_space, 0) / POWER(1024, 3), 2) AS total_gb,
    ROUND(NVL(df.total_space - NVL(fs.free_space, 0), 0) / POWER(1024, 3), 2) AS used_gb,
    ROUND(NVL(fs.free_space, 0) / POWER(1024, 3), 2) AS free_gb,
    ROUND(NVL((df.total_space - NVL(fs.free_space, 0)) * 100 / df.total_space, 0), 2) AS pct_used
FROM dba_tablespaces ts
LEFT JOIN (SELECT tablespace_name, SUM(bytes) AS total_space
           FROM dba_data_files GROUP BY tablespace_name) df ON ts.tablespace_name = df.tablespace_name
LEFT JOIN (SELECT tablespace_name, SUM(bytes) AS free_space
           FROM dba_free_space GROUP BY tablespace_name) fs ON ts.tablespace_name = fs.tablespace_name
WHERE ts.contents != 'TEMPORARY'
ORDER BY pct_used DESC
"""

TEMP_SQL = """
SELECT
    tablespace_name,
    ROUND(SUM(bytes_used) / POWER(1024, 3), 2) AS used_gb,
    ROUND(SUM(bytes_free) / POWER(1024, 3), 2) AS free_gb,
    ROUND(SUM(bytes_used) * 100 / NULLIF(SUM(bytes_used + bytes_free), 0), 2) AS pct_used
FROM v$temp_space_header
GROUP BY tablespace_name
"""

GROWTH_EVENTS_SQL = """
WITH recent_growth AS (
    SELECT
        h.tablespace_id, h.rtime, h.snap_id, h.tablespace_size, h.tablespace_usedsize,
        LAG(h.tablespace_usedsize) OVER (PARTITION BY h.tablespace_id ORDER BY h.snap_id) AS prev_used
    FROM dba_hist_tbspc_space_usage h
    WHERE h.snap_id IN (SELECT snap_id FROM dba_hist_snapshot WHERE begin_interval_time > SYSDATE - 30)
),
block_size AS (
    SELECT TO_NUMBER(value) AS block_bytes FROM v$parameter WHERE name = 'db_block_size'
)
SELECT * FROM (
    SELECT
        v.name AS tablespace_name,
        TO_CHAR(TO_DATE(rg.rtime, 'MM/DD/YYYY HH24:MI:SS'), 'DD-MON-YY HH24:MI') AS resize_time,
        ROUND(rg.tablespace_size * bs.block_bytes / POWER(1024, 2), 2) AS ts_mb,
        ROUND(rg.tablespace_usedsize * bs.block_bytes / POWER(1024, 2), 2) AS used_mb,
        ROUND((rg.tablespace_usedsize - NVL(rg.prev_used, rg.tablespace_usedsize))
              * bs.block_bytes / POWER(1024, 2), 2) AS incr_mb
    FROM recent_growth rg
    JOIN v$tablespace v ON rg.tablespace_id = v.ts#
    JOIN dba_tablespaces t ON v.name = t.tablespace_name
    CROSS JOIN block_size bs
    WHERE t.contents NOT IN ('UNDO', 'TEMPORARY')
      AND (rg.tablespace_usedsize - NVL(rg.prev_used, rg.tablespace_usedsize))
          * bs.block_bytes / POWER(1024, 2) > 10
    ORDER BY rg.snap_id DESC
)
WHERE ROWNUM <= 30
"""

GROWTH_SUMMARY_SQL = """
WITH block_size AS (
    SELECT TO_NUMBER(value) / POWER(1024, 2) AS mb_per_block FROM v$parameter WHERE name = 'db_block_size'
),
ts_growth AS (
    SELECT h.tablespace_id, MIN(h.tablespace_usedsize) AS min_used, MAX(h.tablespace_usedsize) AS max_used,
           COUNT(*) AS snap_count
    FROM dba_hist_tbspc_space_usage h
    WHERE h.snap_id IN (SELECT snap_id FROM dba_hist_snapshot WHERE begin_interval_time > SYSDATE - 30)
    GROUP BY h.tablespace_id
    HAVING MAX(h.tablespace_usedsize) > MIN(h.tablespace_usedsize)
)
SELECT
    v.name AS tablespace_name,
    ROUND((tg.max_used - tg.min_used) * bs.mb_per_block, 2) AS total_growth_mb,
    ROUND((tg.max_used - tg.min_used) * bs.mb_per_block / 30, 2) AS avg_daily_growth_mb,
    tg.snap_count AS snapshots_analyzed
FROM ts_growth tg
JOIN v$tablespace v ON tg.tablespace_id = v.ts#
JOIN dba_tablespaces t ON v.name = t.tablespace_name
CROSS JOIN block_size bs
WHERE t.contents NOT IN ('UNDO', 'TEMPORARY')
ORDER BY total_growth_mb DESC
"""

RATIOS_SQL = """
SELECT 'Buffer Cache Hit Ratio' AS metric,
       ROUND((1 - phy.value / NULLIF(cur.value + con.value, 0)) * 100, 2) AS value
FROM v$sysstat cur, v$sysstat con, v$sysstat phy
WHERE cur.name = 'db block gets' AND con.name = 'consistent gets' AND phy.name = 'physical reads'
UNION ALL
SELECT 'Library Cache Hit Ratio', ROUND(SUM(pins - reloads) * 100 / NULLIF(SUM(pins), 0), 2)
FROM v$librarycache
UNION ALL
SELECT 'Dictionary Cache Hit Ratio', ROUND((1 - SUM(getmisses) / NULLIF(SUM(gets), 0)) * 100, 2)
FROM v$rowcache
WHERE gets > 0
"""

TOP_WAITS_SQL = """
SELECT wait_class, event, total_waits,
       ROUND(time_waited / 100, 2) AS time_waited_sec,
       ROUND(average_wait * 10, 2) AS avg_wait_ms
FROM v$system_event
WHERE wait_class != 'Idle' AND total_waits > 0
ORDER BY time_waited DESC
FETCH FIRST 10 ROWS ONLY
"""

TOP_SQL_EXECUTIONS_SQL = """
SELECT SUBSTR(sql_text, 1, 60) AS sql_text, executions,
       ROUND(elapsed_time / executions / 1000, 2) AS avg_elapsed_ms,
       ROUND(cpu_time / executions / 1000, 2) AS cpu_per_exec_ms,
       sql_id
FROM v$sql
WHERE executions > 0 AND last_active_time > SYSDATE - 1/24
ORDER BY executions DESC
FETCH FIRST 10 ROWS ONLY
"""

TOP_SQL_ELAPSED_SQL = """
SELECT SUBSTR(sql_text, 1, 60) AS sql_text, executions,
       ROUND(elapsed_time / 1000000, 2) AS total_elapsed_sec,
       ROUND(elapsed_time / executions / 1000, 2) AS avg_elapsed_ms,
       sql_id
FROM v$sql
WHERE executions > 0 AND last_active_time > SYSDATE - 1/24
ORDER BY elapsed_time DESC
FETCH FIRST 10 ROWS ONLY
"""

HIGH_PARSE_SQL = """
SELECT SUBSTR(sql_text, 1, 60) AS sql_text, executions, parse_calls,
       ROUND(parse_calls * 100 / GREATEST(executions, 1), 2) AS parse_ratio,
       sql_id
FROM v$sql
WHERE executions > 100 AND parse_calls > executions * 0.5
ORDER BY parse_calls DESC
FETCH FIRST 10 ROWS ONLY
"""

SESSION_SUMMARY_SQL = """
SELECT inst_id, status, COUNT(*) AS count
FROM gv$session
GROUP BY inst_id, status
ORDER BY inst_id, count DESC
"""

SESSIONS_BY_PROGRAM_SQL = """
SELECT * FROM (
    SELECT inst_id, SUBSTR(program, 1, 30) AS program, COUNT(*) AS count
    FROM gv$session
    WHERE status = 'ACTIVE'
    GROUP BY inst_id, SUBSTR(program, 1, 30)
    ORDER BY inst_id, count DESC
)
WHERE ROWNUM <= 20
"""

LONG_SESSIONS_SQL = """
SELECT s.inst_id, s.username, SUBSTR(s.program, 1, 25) AS program, s.status,
       ROUND((SYSDATE - s.logon_time) * 24 * 60) AS minutes_active, s.sid, s.serial#
FROM gv$session s
WHERE s.status = 'ACTIVE'
  AND s.username IS NOT NULL
  AND (SYSDATE - s.logon_time) * 24 * 60 > 30
ORDER BY s.inst_id, minutes_active DESC
"""

SESSION_DISTRIBUTION_SQL = """
SELECT inst_id, status, COUNT(*) AS session_count,
       ROUND(COUNT(*) * 100 / SUM(COUNT(*)) OVER (), 1) AS pct_of_total
FROM gv$session
GROUP BY inst_id, status
ORDER BY inst_id, status
"""

BLOCKING_SQL = """
SELECT
    holder.inst_id AS blocking_inst,
    holder.sid AS blocking_session,
    waiter.inst_id AS blocked_inst,
    waiter.sid AS blocked_session,
    holder.type AS lock_type,
    holder.lmode AS mode_held,
    waiter.request AS mode_requested
FROM gv$lock holder
JOIN gv$lock waiter
  ON holder.id1 = waiter.id1 AND holder.id2 = waiter.id2 AND holder.type = waiter.type
WHERE holder.block > 0
  AND holder.lmode > 0
  AND waiter.request > 0
ORDER BY holder.inst_id, holder.sid
"""

ENQUEUE_SQL = """
SELECT eq_type AS enqueue_type, SUM(total_req#) AS gets, SUM(total_wait#) AS waits,
       ROUND(SUM(cum_wait_time) / 100, 2) AS wait_time_sec
FROM gv$enqueue_stat
WHERE total_req# > 0
GROUP BY eq_type
ORDER BY wait_time_sec DESC, waits DESC
"""

GC_BYTES_SQL = """
SELECT inst_id, name, ROUND(value / POWER(1024, 2), 2) AS value_mb
FROM gv$sysstat
WHERE name LIKE '%gc%bytes%' AND value > 0
ORDER BY inst_id, value DESC
"""

GC_TIMES_SQL = """
SELECT inst_id, name, ROUND(value, 2) AS avg_time_ms
FROM gv$sysstat
WHERE name LIKE '%gc%time%' AND name NOT LIKE '%timeouts%' AND value > 0
ORDER BY inst_id, value DESC
"""

GC_EFFICIENCY_SQL = """
SELECT
    i.inst_id,
    'Global Cache Hit Ratio' AS metric,
    ROUND((1 - s1.value / (s2.value + s3.value)) * 100, 2) AS hit_ratio_pct
FROM gv$instance i
JOIN gv$sysstat s1 ON s1.inst_id = i.inst_id AND s1.name = 'gc blocks lost'
JOIN gv$sysstat s2 ON s2.inst_id = i.inst_id AND s2.name = 'gc cr blocks received'
JOIN gv$sysstat s3 ON s3.inst_id = i.inst_id AND s3.name = 'gc current blocks received'
WHERE s2.value + s3.value > 0
ORDER BY i.inst_id
"""

CLUSTER_PARAMS_SQL = """
SELECT inst_id, name AS parameter, value
FROM gv$parameter
WHERE name IN ('cluster_database', 'cluster_database_instances', 'instance_number',
               'thread', 'remote_listener', 'cluster_interconnects')
ORDER BY inst_id, name
"""

RMAN_JOBS_SQL = """
SELECT input_type, status, TO_CHAR(start_time, 'DD-MON-YY HH24:MI') AS start_time,
       ROUND((end_time - start_time) * 24, 2) AS elapsed_hours
FROM v$rman_backup_job_details
WHERE start_time > SYSDATE - 7
ORDER BY start_time DESC
"""

ARCHIVE_HOURLY_SQL = """
SELECT TO_CHAR(first_time, 'HH24') AS hour, COUNT(*) AS archives_generated
FROM v$log_history
WHERE first_time > SYSDATE - 1
GROUP BY TO_CHAR(first_time, 'HH24')
ORDER BY hour
"""

DATA_GUARD_STATUS_SQL = """
SELECT COUNT(*) AS dg_count
FROM v$archive_dest
WHERE status = 'VALID'
  AND dest_name LIKE 'LOG_ARCHIVE_DEST_%'
"""

DATA_GUARD_SQL = """
SELECT dest_name, destination, status, error
FROM v$archive_dest
WHERE status != 'INACTIVE'
ORDER BY dest_name
"""

ACCOUNT_STATUS_SQL = """
SELECT account_status, COUNT(*) AS count
FROM dba_users
WHERE username NOT IN (
    'SYS', 'SYSTEM', 'DBSNMP', 'SYSMAN', 'OUTLN', 'FLOWS_FILES',
    'MDSYS', 'ORDSYS', 'EXFSYS', 'DMSYS', 'WMSYS', 'CTXSYS',
    'ANONYMOUS', 'XDB', 'XS$NULL', 'ORACLE_OCM', 'APEX_040000'
)
GROUP BY account_status
ORDER BY count DESC
"""

PRIVILEGED_USERS_SQL = """
SELECT DISTINCT grantee AS username, granted_role
FROM dba_role_privs
WHERE granted_role IN ('DBA', 'SYSDBA', 'SYSOPER')
  AND grantee NOT IN ('SYS', 'SYSTEM')
ORDER BY grantee, granted_role
"""

RECOMMENDATIONS_SQL = """
SELECT 'WARNING: ' || tablespace_name || ' is ' || ROUND(pct_used, 1) || '% full' AS recommendation
FROM (
    SELECT ts.tablespace_name,
           NVL((df.total_space - NVL(fs.free_space, 0)) * 100 / df.total_space, 0) AS pct_used
    FROM dba_tablespaces ts
    LEFT JOIN (SELECT tablespace_name, SUM(bytes) AS total_space
               FROM dba_data_files GROUP BY tablespace_name) df ON ts.tablespace_name = df.tablespace_name
    LEFT JOIN (SELECT tablespace_name, SUM(bytes) AS free_space
               FROM dba_free_space GROUP BY tablespace_name) fs ON ts.tablespace_name = fs.tablespace_name
    WHERE ts.contents != 'TEMPORARY'
)
WHERE pct_used > 85
UNION ALL
SELECT 'INFO: Consider PGA tuning on instance ' || inst_id || ' - current allocation: '
       || ROUND(value / POWER(1024, 3), 1) || 'GB'
FROM gv$pgastat
WHERE name = 'total PGA allocated'
  AND value > (SELECT value * 1.2 FROM v$pgastat WHERE name = 'aggregate PGA target parameter')
UNION ALL
SELECT 'WARNING: Instance ' || inst_id || ' has ' || COUNT(*) || ' long-running sessions (>2 hours)'
FROM gv$session
WHERE status = 'ACTIVE' AND username IS NOT NULL AND (SYSDATE - logon_time) * 24 > 2
GROUP BY inst_id
"""

RAC_RECOMMENDATIONS_SQL = """
SELECT 'INFO: RAC Environment - Monitor interconnect latency and global cache efficiency' AS recommendation
FROM dual
UNION ALL
SELECT 'WARNING: High global cache block transfer time detected on instance ' || inst_id
FROM gv$sysstat
WHERE name = 'gc cr block receive time' AND value > 10
"""

SKIP_STANDALONE = "Skipping RAC analysis - standalone environment."


def grade_ratios(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["status"] = classify.ratio_grade(r.get("value"))
    return rows


def name_lock_modes(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["mode_held"] = classify.lock_mode_name(r.get("mode_held"))
        r["mode_requested"] = classify.lock_mode_name(r.get("mode_requested"))
    return rows


def data_guard_status(rows: List[Dict]) -> List[Dict]:
    count = (rows[0].get("dg_count") if rows else 0) or 0
    if count > 0:
        return [{"data_guard": "Data Guard Configuration Detected", "valid_destinations": count}]
    return [{"data_guard": "No Data Guard Configuration Found", "valid_destinations": 0}]


def _flag_data_guard(rows: List[Dict]) -> List[Dict]:
    # LOG_ARCHIVE_DEST_n with VALID status means a standby destination is configured
    for r in rows:
        valid_dest = (r.get("status") == "VALID"
                      and str(r.get("dest_name") or "").startswith("LOG_ARCHIVE_DEST_"))
        r["data_guard"] = "CONFIGURED" if valid_dest else "-"
    return rows


class HealthCheckReport(Report):
    name = "health_check"
    title = "Oracle Database Health Check Report"
    description = "Comprehensive read-only health assessment for standalone and RAC databases."
    spool_prefix = "healthcheck"
    parameters: List[Parameter] = []
    required_views = [
        "GV$INSTANCE", "GV$PARAMETER", "V$SGA_DYNAMIC_COMPONENTS", "V$PGASTAT", "DBA_TABLESPACES",
        "DBA_DATA_FILES", "DBA_FREE_SPACE", "V$TEMP_SPACE_HEADER", "DBA_HIST_TBSPC_SPACE_USAGE",
        "V$SYSSTAT", "V$SYSTEM_EVENT", "V$SQL", "GV$SESSION", "GV$LOCK", "GV$SYSSTAT",
        "V$RMAN_BACKUP_JOB_DETAILS", "V$LOG_HISTORY", "V$ARCHIVE_DEST", "DBA_USERS", "DBA_ROLE_PRIVS",
    ]

    def build_sections(self, params, env):
        banner = (f"** RAC ENVIRONMENT DETECTED - {env.instance_count} instances **"
                  if env.is_rac else "** STANDALONE ENVIRONMENT **")
        return [
            # 1. Overview
            Section("1. Database Overview", OVERVIEW_SQL, lines=[banner]),
            Section("1. Database Uptime by Instance", UPTIME_SQL),
            # 2. Configuration
            Section("2. Key Instance Parameters", PARAMETERS_SQL),
            Section("2. RAC Services Status", RAC_SERVICES_SQL, when=rac_only, skip_message=SKIP_STANDALONE),
            # 3. Memory
            Section("3. SGA Memory Breakdown", SGA_SQL),
            Section("3. PGA Memory Statistics", PGA_SQL),
            Section("3. Memory Advisory (PGA)", PGA_ADVICE_SQL),
            # 4. Storage
            Section("4. Tablespace Usage", TABLESPACE_SQL),
            Section("4. Temporary Tablespace Usage", TEMP_SQL),
            Section("4. Tablespace Growth Events (Last 30 Days)", GROWTH_EVENTS_SQL,
                    empty_message="No growth events over 10 MB in the last 30 days."),
            Section("4. Tablespace Growth Summary (Last 30 Days)", GROWTH_SUMMARY_SQL,
                    empty_message="No tablespace growth recorded in the last 30 days."),
            # 5. Performance
            Section("5. Key Performance Ratios", RATIOS_SQL, transform=grade_ratios),
            Section("5. Top Wait Events (Current)", TOP_WAITS_SQL),
            # 6. SQL
            Section("6. Top SQL by Executions (Last Hour)", TOP_SQL_EXECUTIONS_SQL),
            Section("6. Top SQL by Elapsed Time (Last Hour)", TOP_SQL_ELAPSED_SQL),
            Section("6. SQL with High Parse Ratio", HIGH_PARSE_SQL),
            # 7. Sessions
            Section("7. Current Session Summary", SESSION_SUMMARY_SQL),
            Section("7. Sessions by Program (Active)", SESSIONS_BY_PROGRAM_SQL),
            Section("7. Long Running Sessions (>30 minutes)", LONG_SESSIONS_SQL,
                    empty_message="No active user sessions older than 30 minutes."),
            Section("7. Session Distribution Across Instances", SESSION_DISTRIBUTION_SQL,
                    when=rac_only, skip_message=SKIP_STANDALONE),
            # 8. Locks
            Section("8. Current Blocking Sessions", BLOCKING_SQL, transform=name_lock_modes,
                    empty_message="No blocking sessions."),
            Section("8. Global Enqueue Activity", ENQUEUE_SQL, when=rac_only, skip_message=SKIP_STANDALONE),
            # 9. RAC
            Section("9. Cluster Interconnect Traffic", GC_BYTES_SQL, when=rac_only, skip_message=SKIP_STANDALONE),
            Section("9. Global Cache Transfer Times", GC_TIMES_SQL, when=rac_only, skip_message=SKIP_STANDALONE),
            Section("9. Global Cache Efficiency", GC_EFFICIENCY_SQL, when=rac_only, skip_message=SKIP_STANDALONE),
            Section("9. Cluster Database Parameters", CLUSTER_PARAMS_SQL, when=rac_only,
                    skip_message=SKIP_STANDALONE),
            # 10. Backups
            Section("10. Recent RMAN Backups", RMAN_JOBS_SQL,
                    empty_message="No RMAN backup jobs in the last 7 days."),
            Section("10. Archive Log Generation (Last 24 Hours)", ARCHIVE_HOURLY_SQL),
            # 11. Data Guard
            Section("11. Data Guard Configuration", DATA_GUARD_STATUS_SQL, transform=data_guard_status),
            Section("11. Data Guard Destinations", DATA_GUARD_SQL, transform=_flag_data_guard,
                    empty_message="No active archive destinations."),
            # 12. Security
            Section("12. User Account Status", ACCOUNT_STATUS_SQL),
            Section("12. Privileged Users", PRIVILEGED_USERS_SQL),
            # 13. Recommendations
            Section("13. Health Check Recommendations", RECOMMENDATIONS_SQL,
                    empty_message="No tablespace, memory or session warnings."),
            Section("13. RAC-Specific Recommendations", RAC_RECOMMENDATIONS_SQL, when=rac_only,
                    skip_message=SKIP_STANDALONE),
        ]
