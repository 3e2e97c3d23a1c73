"""
Locks and blocking sessions.

Lock modes come back as numbers and are named in Python. The KILL SESSION
statements in the last section are reference text only; nothing here
executes them.
"""

from typing import Dict, List

from diagnostics import classify
from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

CRITICAL_WAIT_EVENTS = (
    "enq: TX - row lock contention",
    "enq: TM - contention",
    "enq: UL - contention",
    "library cache lock",
    "library cache pin",
    "row cache lock",
    "DFS lock handle",
    "buffer busy waits",
    "read by other session",
    "gc buffer busy acquire",
    "gc buffer busy release",
)

LOCK_SYSTEM_EVENTS = (
    "enq: TX - row lock contention",
    "enq: TM - contention",
    "enq: UL - contention",
    "library cache lock",
    "library cache pin",
    "row cache lock",
    "buffer busy waits",
    "latch free",
    "latch: cache buffers chains",
)


def _in_list(values) -> str:
    return ", ".join("'" + v.replace("'", "''") + "'" for v in values)


SUMMARY_SQL = """
SELECT 'BLOCKED SESSIONS' AS type, COUNT(*) AS quantity
FROM v$session s JOIN v$lock l ON s.sid = l.sid
WHERE l.block = 0 AND l.request > 0
UNION ALL
SELECT 'BLOCKING SESSIONS', COUNT(DISTINCT s.sid)
FROM v$session s JOIN v$lock l ON s.sid = l.sid
WHERE l.block > 0
UNION ALL
SELECT 'TOTAL ACTIVE LOCKS', COUNT(*)
FROM v$lock
WHERE block > 0 OR request > 0
"""

BLOCKING_TREE_SQL = """
WITH lock_tree AS (
    SELECT
        blocker.sid AS blocker_sid, blocker.serial# AS blocker_serial,
        blocker.username AS blocker_user, blocker.program AS blocker_program,
        blocker.machine AS blocker_machine, blocker.status AS blocker_status,
        waiter.sid AS waiter_sid, waiter.serial# AS waiter_serial,
        waiter.username AS waiter_user, waiter.program AS waiter_program,
        waiter.machine AS waiter_machine, waiter.status AS waiter_status,
        waiter.seconds_in_wait AS wait_time_sec,
        l1.type AS lock_type, l1.lmode AS lmode, l2.request AS request
    FROM v$lock l1
    JOIN v$lock l2 ON l1.id1 = l2.id1 AND l1.id2 = l2.id2 AND l1.type = l2.type
    JOIN v$session blocker ON l1.sid = blocker.sid
    JOIN v$session waiter ON l2.sid = waiter.sid
    WHERE l1.block = 1 AND l2.request > 0
)
SELECT '*** BLOCKER ***' AS role, blocker_sid AS sid, blocker_serial AS serial_num,
       blocker_user AS username, blocker_program AS program, blocker_machine AS machine,
       blocker_status AS status, NULL AS wait_time_sec, lock_type, lmode, request
FROM lock_tree
UNION ALL
SELECT '    -> WAITING', waiter_sid, waiter_serial, waiter_user, waiter_program, waiter_machine,
       waiter_status, wait_time_sec, lock_type, lmode, request
FROM lock_tree
ORDER BY 1, 2
"""

LOCKS_BY_OBJECT_SQL = """
SELECT
    s.sid, s.serial# AS serial_num, s.username, s.program, s.machine, s.osuser,
    o.object_name, o.object_type,
    l.type AS lock_type, l.lmode, l.request,
    CASE WHEN l.block = 1 THEN 'BLOCKING'
         WHEN l.request > 0 THEN 'WAITING'
         ELSE 'ACTIVE' END AS lock_status
FROM v$lock l
JOIN v$session s ON l.sid = s.sid
LEFT JOIN dba_objects o ON l.type = 'TM' AND l.id1 = o.object_id
WHERE l.block > 0 OR l.request > 0
ORDER BY o.object_name, lock_status, s.sid
"""

CRITICAL_WAITS_SQL = f"""
SELECT
    s.sid, s.serial# AS serial_num, s.username, s.program, s.machine, s.status,
    s.event AS wait_event, s.state, s.seconds_in_wait, s.wait_time,
    s.p1text, s.p1, s.p2text, s.p2, s.p3text, s.p3,
    s.blocking_session, s.blocking_session_status
FROM v$session s
WHERE s.event IN ({_in_list(CRITICAL_WAIT_EVENTS)})
  AND s.username IS NOT NULL
ORDER BY s.seconds_in_wait DESC, s.sid
"""

BLOCKING_SQL_TEXT_SQL = """
SELECT
    s.sid, s.serial# AS serial_num, s.username, s.status,
    CASE WHEN EXISTS (SELECT 1 FROM v$lock l WHERE l.sid = s.sid AND l.block = 1) THEN 'BLOCKER'
         WHEN EXISTS (SELECT 1 FROM v$lock l WHERE l.sid = s.sid AND l.request > 0) THEN 'BLOCKED'
         ELSE 'OTHERS' END AS session_type,
    s.event, s.seconds_in_wait,
    NVL(sq.sql_text, 'N/A') AS sql_text
FROM v$session s
LEFT JOIN (
    SELECT DISTINCT sql_id,
           FIRST_VALUE(sql_text) OVER (PARTITION BY sql_id ORDER BY child_number) AS sql_text
    FROM v$sql
) sq ON s.sql_id = sq.sql_id
WHERE s.sid IN (SELECT DISTINCT l.sid FROM v$lock l WHERE l.block > 0 OR l.request > 0)
  AND s.username IS NOT NULL
ORDER BY session_type, s.sid
"""

LOCK_EVENTS_SQL = f"""
SELECT
    event, total_waits, total_timeouts, time_waited, average_wait,
    ROUND(time_waited / NULLIF(SUM(time_waited) OVER (), 0) * 100, 2) AS pct_total_wait_time
FROM v$system_event
WHERE event IN ({_in_list(LOCK_SYSTEM_EVENTS)})
  AND total_waits > 0
ORDER BY time_waited DESC
"""

TX_LOCKS_SQL = """
SELECT
    s.sid, s.serial# AS serial_num, s.username, s.program, s.machine,
    l.type AS lock_type, l.id1, l.id2, l.lmode, l.request,
    l.ctime AS hold_time_sec, l.block, s.event, s.seconds_in_wait
FROM v$lock l
JOIN v$session s ON l.sid = s.sid
WHERE l.type = 'TX' AND (l.block > 0 OR l.request > 0)
ORDER BY l.ctime DESC, s.sid
"""

_TXN_MINUTES = """ROUND(EXTRACT(DAY FROM (SYSTIMESTAMP - CAST(t.start_time AS TIMESTAMP))) * 24 * 60 +
          EXTRACT(HOUR FROM (SYSTIMESTAMP - CAST(t.start_time AS TIMESTAMP))) * 60 +
          EXTRACT(MINUTE FROM (SYSTIMESTAMP - CAST(t.start_time AS TIMESTAMP))), 2)"""

LONG_TRANSACTIONS_SQL = f"""
SELECT * FROM (
    SELECT
        s.sid, s.serial# AS serial_num, s.username, s.program, s.status,
        t.start_time,
        {_TXN_MINUTES} AS duration_minutes,
        ROUND(t.used_ublk * (SELECT TO_NUMBER(value) FROM v$parameter WHERE name = 'db_block_size')
              / 1024 / 1024, 2) AS undo_mb,
        t.used_urec AS undo_records,
        r.name AS rollback_segment
    FROM v$session s
    JOIN v$transaction t ON s.taddr = t.addr
    JOIN v$rollname r ON t.xidusn = r.usn
    WHERE t.start_time IS NOT NULL
)
WHERE duration_minutes > :minutes
ORDER BY duration_minutes DESC
"""

BLOCKED_OBJECTS_SQL = """
SELECT
    NVL(o.owner, 'SYSTEM') AS owner,
    NVL(o.object_name, 'TRANSACTION_LOCK') AS object_name,
    NVL(o.object_type, 'TX') AS object_type,
    COUNT(*) AS lock_count,
    COUNT(CASE WHEN l.request > 0 THEN 1 END) AS waiting_locks,
    COUNT(CASE WHEN l.block = 1 THEN 1 END) AS blocking_locks
FROM v$lock l
LEFT JOIN dba_objects o ON l.type = 'TM' AND l.id1 = o.object_id
WHERE l.type IN ('TM', 'TX')
GROUP BY o.owner, o.object_name, o.object_type
HAVING COUNT(*) > 1
ORDER BY lock_count DESC
"""

BLOCKERS_SQL = """
SELECT
    s.sid, s.serial# AS serial_num, s.username, s.program, s.machine,
    l.type AS lock_type, l.lmode, o.owner, o.object_name
FROM v$session s
JOIN v$lock l ON s.sid = l.sid
LEFT JOIN dba_objects o ON l.type = 'TM' AND l.id1 = o.object_id
WHERE l.block = 1 AND s.username IS NOT NULL
ORDER BY s.sid
"""

KILL_WARNING = [
    "WARNING: Review the following KILL commands carefully before execution!",
    "These commands will terminate active database sessions immediately.",
    "Reference only: they are never executed by this tool.",
]

INSTRUCTIONS = [
    "INSTRUCTIONS:",
    "1. First analyze the EXECUTIVE SUMMARY to understand the general situation",
    "2. Check the BLOCKING HIERARCHY to identify dependencies",
    "3. Examine the SQL STATEMENTS from problematic sessions",
    "4. Use KILL SESSION commands only if necessary and with caution",
    "5. Monitor WAIT STATISTICS for trends",
]


def kill_command(sid, serial) -> str:
    return f"ALTER SYSTEM KILL SESSION '{sid},{serial}' IMMEDIATE;"


def name_modes(rows: List[Dict]) -> List[Dict]:
    """Replace numeric lmode/request with mode_held/mode_requested names."""
    out = []
    for r in rows:
        named = {}
        for key, value in r.items():
            if key == "lmode":
                named["mode_held"] = classify.lock_mode_name(value)
            elif key == "request":
                named["mode_requested"] = classify.lock_mode_name(value)
            else:
                named[key] = value
        out.append(named)
    return out


def kill_commands(rows: List[Dict]) -> List[Dict]:
    out = []
    for r in rows:
        target = f"{r['owner']}.{r['object_name']}" if r.get("object_name") else "SYSTEM_LOCK"
        out.append({
            "kill_command": kill_command(r["sid"], r["serial_num"]),
            "sid": r["sid"],
            "serial_num": r["serial_num"],
            "username": r.get("username"),
            "program": r.get("program"),
            "machine": r.get("machine"),
            "reason": f"BLOCKER - {r.get('lock_type')} ({classify.lock_mode_name(r.get('lmode'))}) on ({target})",
        })
    return out


class LockAnalysisReport(Report):
    name = "lock_analysis"
    title = "Complete Locks and Blocking Analysis"
    description = "Blocking tree, lock holders and waiters, long transactions and reference kill commands."
    parameters = [
        Parameter("long_txn_minutes", "Long transaction threshold (minutes)", 5, kind="int", minimum=0),
    ]
    required_views = [
        "V$SESSION", "V$LOCK", "DBA_OBJECTS", "V$SQL", "V$SYSTEM_EVENT",
        "V$TRANSACTION", "V$ROLLNAME", "V$PARAMETER",
    ]

    def build_sections(self, params, env):
        minutes = params["long_txn_minutes"]
        return [
            Section("1. Executive Summary - Blocking Overview", SUMMARY_SQL),
            Section("2. Blocking Hierarchy - Dependency Tree", BLOCKING_TREE_SQL, transform=name_modes,
                    empty_message="No blocking sessions found."),
            Section("3. Active Locks by Object", LOCKS_BY_OBJECT_SQL, transform=name_modes),
            Section("4. Sessions with Critical Wait Events", CRITICAL_WAITS_SQL),
            Section("5. SQL Statements from Sessions Involved in Blocking", BLOCKING_SQL_TEXT_SQL),
            Section("6. Wait Events Statistics", LOCK_EVENTS_SQL),
            Section("7. Transaction (TX) Locks Details", TX_LOCKS_SQL, transform=name_modes),
            Section(f"8. Long Transactions and Undo Usage (> {minutes} min)", LONG_TRANSACTIONS_SQL,
                    {"minutes": minutes}),
            Section("9. Most Frequently Blocked Objects", BLOCKED_OBJECTS_SQL),
            Section("10. Resolution Commands (Reference Only)", BLOCKERS_SQL, transform=kill_commands,
                    lines=KILL_WARNING, empty_message="No blocking sessions - nothing to resolve."),
            Section("Next Steps", lines=INSTRUCTIONS),
        ]
