"""
AWR wait events analysis.

All three output modes share one filtered dataset: per-snapshot deltas of
DBA_HIST_SYSTEM_EVENT (LAG over snap_id per event and instance), idle events
removed, restricted by time window, instance and event name. The grouping
option then picks exactly one aggregation:

    1 - by snapshot (detailed)
    2 - summary by event
    3 - summary by hour

A summary and the top 10 events by wait time always follow.
"""

from typing import Any, Dict, List, Tuple

from diagnostics.parameters import Parameter, parse_oracle_date
from diagnostics.report import Report, Section

FILTER_LAST_DAYS = 1
FILTER_DATE_RANGE = 2
FILTER_SNAP_RANGE = 3

GROUP_BY_SNAPSHOT = 1
GROUP_BY_EVENT = 2
GROUP_BY_HOUR = 3

IDLE_EVENTS = (
    "SQL*Net message from client",
    "SQL*Net message to client",
    "rdbms ipc message",
    "smon timer",
    "pmon timer",
    "Streams AQ: waiting for time",
    "wait for unread message on broadcast channel",
)

MIN_PATTERN_LENGTH = 3
MIN_TIME_WAITED_SEC = 0.01


def snapshot_filter(params: Dict[str, Any]) -> Tuple[str, Dict[str, Any], List[str]]:
    """
    WHERE fragment over dba_hist_snapshot ``s`` for the selected window.

    Returns (sql, binds, warnings).
    """
    warnings: List[str] = []
    filter_type = params["filter_type"]

    if filter_type == FILTER_LAST_DAYS:
        clause = "s.end_interval_time >= SYSDATE - :days_back"
        binds = {"days_back": params["days_back"]}
    elif filter_type == FILTER_SNAP_RANGE:
        start, end = params["start_snap"], params["end_snap"]
        if start > end:
            warnings.append(f"Start snapshot {start} is after end snapshot {end}; swapping them")
            start, end = end, start
        clause = "s.snap_id BETWEEN :start_snap AND :end_snap"
        binds = {"start_snap": start, "end_snap": end}
    else:
        start = parse_oracle_date(params["start_date"])
        end = parse_oracle_date(params["end_date"], end_of_day=True)
        if start > end:
            warnings.append(
                f"Start date {params['start_date']} is after end date {params['end_date']}; swapping them"
            )
            start = parse_oracle_date(params["end_date"])
            end = parse_oracle_date(params["start_date"], end_of_day=True)
        clause = "s.end_interval_time BETWEEN :start_time AND :end_time"
        binds = {"start_time": start, "end_time": end}

    if params.get("instance_filter"):
        clause += " AND s.instance_number = :instance_filter"
        binds["instance_filter"] = params["instance_filter"]

    return clause, binds, warnings


def event_filter(value: str) -> Tuple[str, Dict[str, Any]]:
    """
    Event name predicate over dba_hist_system_event ``se``.

    'ALL' matches everything. Any other value matches the event name exactly
    (case-insensitive); values of 3+ characters also match as a substring.
    """
    text = (value or "").strip()
    if not text or text.upper() == "ALL":
        return "", {}

    if len(text) >= MIN_PATTERN_LENGTH:
        return (
            "AND (UPPER(se.event_name) = :event_exact OR UPPER(se.event_name) LIKE :event_pattern)",
            {"event_exact": text.upper(), "event_pattern": f"%{text.upper()}%"},
        )
    return "AND UPPER(se.event_name) = :event_exact", {"event_exact": text.upper()}


def describe_period(params: Dict[str, Any]) -> str:
    filter_type = params["filter_type"]
    if filter_type == FILTER_LAST_DAYS:
        return f"Last {params['days_back']} day(s)"
    if filter_type == FILTER_SNAP_RANGE:
        return f"Snapshots {params['start_snap']} to {params['end_snap']}"
    return f"From {params['start_date']} to {params['end_date']}"


def event_stats_cte(snap_clause: str, event_clause: str) -> str:
    idle = ",\n        ".join("'" + e.replace("'", "''") + "'" for e in IDLE_EVENTS)
    return f"""
WITH snapshot_range AS (
    SELECT DISTINCT
        s.snap_id, s.dbid, s.instance_number, s.begin_interval_time, s.end_interval_time,
        EXTRACT(DAY FROM (s.end_interval_time - s.begin_interval_time)) * 86400 +
        EXTRACT(HOUR FROM (s.end_interval_time - s.begin_interval_time)) * 3600 +
        EXTRACT(MINUTE FROM (s.end_interval_time - s.begin_interval_time)) * 60 +
        EXTRACT(SECOND FROM (s.end_interval_time - s.begin_interval_time)) AS interval_seconds
    FROM dba_hist_snapshot s
    WHERE {snap_clause}
),
wait_events_delta AS (
    SELECT
        sr.snap_id, sr.instance_number, sr.begin_interval_time, sr.end_interval_time,
        sr.interval_seconds, se.event_name,
        se.total_waits - LAG(se.total_waits) OVER (
            PARTITION BY se.event_name, se.instance_number ORDER BY se.snap_id) AS waits_delta,
        (se.time_waited_micro - LAG(se.time_waited_micro) OVER (
            PARTITION BY se.event_name, se.instance_number ORDER BY se.snap_id)) / 1000000
            AS time_waited_delta_sec
    FROM dba_hist_system_event se
    JOIN snapshot_range sr
      ON se.snap_id = sr.snap_id AND se.dbid = sr.dbid AND se.instance_number = sr.instance_number
    WHERE se.event_name NOT IN (
        {idle}
    )
    {event_clause}
),
event_stats AS (
    SELECT
        snap_id, instance_number, begin_interval_time, end_interval_time, interval_seconds, event_name,
        waits_delta AS total_waits,
        time_waited_delta_sec AS time_waited_sec,
        time_waited_delta_sec * 1000 / waits_delta AS avg_wait_ms,
        CASE WHEN interval_seconds > 0 THEN waits_delta / interval_seconds ELSE 0 END AS waits_per_sec
    FROM wait_events_delta
    WHERE waits_delta > 0 AND time_waited_delta_sec > 0
)"""


BY_SNAPSHOT = """
, snapshot_detail AS (
    SELECT * FROM event_stats WHERE time_waited_sec >= :min_time
)
SELECT
    sd.instance_number,
    sd.snap_id,
    TO_CHAR(sd.end_interval_time, 'DD/MM/YY HH24:MI') AS snap_time,
    sd.event_name,
    sd.total_waits,
    ROUND(sd.time_waited_sec, 2) AS time_waited_sec,
    ROUND(sd.avg_wait_ms, 2) AS avg_wait_ms,
    ROUND(sd.waits_per_sec, 2) AS waits_per_sec,
    ROUND(100 * sd.time_waited_sec / NULLIF(SUM(sd.time_waited_sec) OVER (), 0), 2) AS pct_total_time
FROM snapshot_detail sd
ORDER BY sd.snap_id, sd.time_waited_sec DESC
"""

BY_EVENT = """
, event_summary AS (
    SELECT
        event_name,
        SUM(total_waits) AS total_waits,
        SUM(time_waited_sec) AS time_waited_sec,
        SUM(time_waited_sec * 1000) AS total_time_waited_ms,
        SUM(interval_seconds) AS total_interval_seconds
    FROM event_stats
    WHERE time_waited_sec >= :min_time
    GROUP BY event_name
)
SELECT
    'TOTAL' AS snap_time,
    event_name,
    total_waits,
    ROUND(time_waited_sec, 2) AS time_waited_sec,
    COALESCE(ROUND(total_time_waited_ms / NULLIF(total_waits, 0), 2), 0) AS avg_wait_ms,
    ROUND(total_waits / NULLIF(total_interval_seconds, 0), 2) AS waits_per_sec,
    ROUND(100 * time_waited_sec / NULLIF(SUM(time_waited_sec) OVER (), 0), 2) AS pct_total_time
FROM event_summary
ORDER BY time_waited_sec DESC
"""

BY_HOUR = """
, hourly_summary AS (
    SELECT
        TRUNC(CAST(end_interval_time AS DATE), 'HH24') AS hour_time,
        event_name,
        SUM(total_waits) AS total_waits,
        SUM(time_waited_sec) AS time_waited_sec,
        SUM(time_waited_sec * 1000) AS total_time_waited_ms,
        SUM(interval_seconds) AS total_interval_seconds
    FROM event_stats
    WHERE time_waited_sec >= :min_time
    GROUP BY TRUNC(CAST(end_interval_time AS DATE), 'HH24'), event_name
)
SELECT
    TO_CHAR(hour_time, 'DD/MM/YY HH24') || ':00' AS snap_time,
    event_name,
    total_waits,
    ROUND(time_waited_sec, 2) AS time_waited_sec,
    COALESCE(ROUND(total_time_waited_ms / NULLIF(total_waits, 0), 2), 0) AS avg_wait_ms,
    ROUND(total_waits / NULLIF(total_interval_seconds, 0), 2) AS waits_per_sec,
    ROUND(100 * time_waited_sec / NULLIF(SUM(time_waited_sec) OVER (PARTITION BY hour_time), 0), 2)
        AS pct_total_time
FROM hourly_summary
ORDER BY hour_time, time_waited_sec DESC
"""

SUMMARY = """
SELECT 'Analysis Period' AS metric,
       TO_CHAR(MIN(begin_interval_time), 'DD/MM/YYYY HH24:MI') || ' to ' ||
       TO_CHAR(MAX(end_interval_time), 'DD/MM/YYYY HH24:MI') AS value
FROM event_stats
UNION ALL
SELECT 'Total Snapshots', TO_CHAR(COUNT(DISTINCT snap_id)) FROM event_stats
UNION ALL
SELECT 'Instances Analyzed', TO_CHAR(COUNT(DISTINCT instance_number)) FROM event_stats
UNION ALL
SELECT 'Unique Events', TO_CHAR(COUNT(DISTINCT event_name)) FROM event_stats
UNION ALL
SELECT 'Total Wait Time (s)', TO_CHAR(ROUND(SUM(time_waited_sec), 2)) FROM event_stats
UNION ALL
SELECT 'Total Waits', TO_CHAR(SUM(total_waits)) FROM event_stats
"""

TOP_EVENTS = """
, event_agg AS (
    SELECT
        event_name,
        SUM(total_waits) AS total_waits,
        SUM(time_waited_sec) AS time_waited_sec,
        SUM(time_waited_sec * 1000) AS total_time_waited_ms
    FROM event_stats
    GROUP BY event_name
)
SELECT * FROM (
    SELECT
        ROW_NUMBER() OVER (ORDER BY time_waited_sec DESC) AS rank,
        event_name,
        ROUND(time_waited_sec, 2) AS total_time_sec,
        total_waits,
        COALESCE(ROUND(total_time_waited_ms / NULLIF(total_waits, 0), 2), 0) AS avg_wait_ms,
        ROUND(100 * time_waited_sec / NULLIF(SUM(time_waited_sec) OVER (), 0), 2) AS pct_total
    FROM event_agg
)
WHERE rank <= 10
"""

GROUPINGS = {
    GROUP_BY_SNAPSHOT: ("Wait Events by Snapshot", BY_SNAPSHOT),
    GROUP_BY_EVENT: ("Wait Events Summary by Event", BY_EVENT),
    GROUP_BY_HOUR: ("Wait Events Summary by Hour", BY_HOUR),
}


class AwrWaitEventsReport(Report):
    name = "awr_wait_events"
    title = "AWR Wait Events Analysis"
    description = "Non-idle wait events from AWR, grouped by snapshot, event or hour."
    parameters = [
        Parameter("filter_type", "Filter type", FILTER_DATE_RANGE, kind="choice", choices={
            FILTER_LAST_DAYS: "Last N days",
            FILTER_DATE_RANGE: "Specific date range",
            FILTER_SNAP_RANGE: "Snapshot ID range",
        }),
        Parameter("days_back", "How many days back", 1, kind="int", minimum=1, maximum=3650),
        Parameter("start_date", "Start date (DD-MON-YYYY [HH24:MI:SS])", "01-JAN-2024", kind="date"),
        Parameter("end_date", "End date (DD-MON-YYYY [HH24:MI:SS])", "31-DEC-2024", kind="date"),
        Parameter("start_snap", "Starting snapshot ID", 1, kind="int", minimum=1),
        Parameter("end_snap", "Ending snapshot ID", 999999, kind="int", minimum=1),
        Parameter("instance_filter", "Instance number (0 for all)", 0, kind="int", minimum=0),
        Parameter("event_filter", "Event filter [ALL/exact name/3+ chars for pattern]", "ALL"),
        Parameter("group_option", "Grouping option", GROUP_BY_EVENT, kind="choice", choices={
            GROUP_BY_SNAPSHOT: "By snapshot (detailed)",
            GROUP_BY_EVENT: "Summary by event",
            GROUP_BY_HOUR: "Summary by hour",
        }),
    ]
    required_views = ["DBA_HIST_SNAPSHOT", "DBA_HIST_SYSTEM_EVENT"]

    def validate(self, params):
        return snapshot_filter(params)[2]

    def build_sections(self, params, env):
        snap_clause, snap_binds, warnings = snapshot_filter(params)
        event_clause, event_binds = event_filter(params["event_filter"])
        base = event_stats_cte(snap_clause, event_clause)
        binds = {**snap_binds, **event_binds, "min_time": MIN_TIME_WAITED_SEC}

        title, branch = GROUPINGS[params["group_option"]]
        config_lines = [f"Period: {describe_period(params)}",
                        f"Instance: {params['instance_filter'] or 'ALL'}",
                        f"Event filter: {params['event_filter']}"]
        config_lines.extend(f"WARNING: {w}" for w in warnings)

        return [
            Section(title, base + branch, binds, lines=config_lines,
                    empty_message="No wait events found for the selected filters."),
            Section("Analysis Summary", base + SUMMARY, binds),
            Section("Top 10 Events by Wait Time", base + TOP_EVENTS, binds,
                    empty_message="No wait events found for the selected filters."),
        ]
