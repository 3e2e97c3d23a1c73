"""
Tablespace growth report.

Uses AWR space usage history (DBA_HIST_TBSPC_SPACE_USAGE) to show how each
permanent tablespace has grown, project the next 30 days and suggest how
much space to add. UNDO and TEMPORARY tablespaces are excluded.

Requires the Diagnostics Pack (AWR).
"""

from typing import Dict, List

from diagnostics import classify
from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

# Snapshot-level space usage rows for the selected tablespaces over the last :days days
_SNAPSHOT_USAGE = """
    FROM dba_hist_tbspc_space_usage tsu
    JOIN dba_hist_tablespace_stat ts ON tsu.tablespace_id = ts.ts#
    JOIN dba_hist_snapshot sp ON tsu.snap_id = sp.snap_id AND tsu.dbid = sp.dbid
    JOIN dba_tablespaces dt ON ts.tsname = dt.tablespace_name
    WHERE sp.begin_interval_time >= SYSDATE - :days
      AND sp.begin_interval_time < SYSDATE
      AND UPPER(dt.tablespace_name) LIKE :ts_name
      AND dt.contents NOT IN ('UNDO', 'TEMPORARY')
"""

# Per-day used/allocated GB per tablespace
_DAILY_USAGE = """
    SELECT
        TO_CHAR(sp.begin_interval_time, 'YYYY-MM-DD') AS analysis_date,
        ts.tsname AS tablespace_name,
        MAX(ROUND((tsu.tablespace_size * dt.block_size) / POWER(1024, 3), 2)) AS allocated_gb,
        MAX(ROUND((tsu.tablespace_usedsize * dt.block_size) / POWER(1024, 3), 2)) AS used_gb
""" + _SNAPSHOT_USAGE + """
    GROUP BY TO_CHAR(sp.begin_interval_time, 'YYYY-MM-DD'), ts.tsname
"""

# Per-day used MB, kept at MB precision so small daily changes are not rounded away
_DAILY_USED_MB = """
    SELECT
        TO_CHAR(sp.begin_interval_time, 'YYYY-MM-DD') AS analysis_date,
        ts.tsname AS tablespace_name,
        MAX(ROUND((tsu.tablespace_usedsize * dt.block_size) / POWER(1024, 2), 2)) AS used_mb
""" + _SNAPSHOT_USAGE + """
    GROUP BY TO_CHAR(sp.begin_interval_time, 'YYYY-MM-DD'), ts.tsname
"""

# Growth is the spread over every snapshot in the period, not over daily maxima
SUMMARY_SQL = """
WITH tablespace_summary AS (
    SELECT
        ts.tsname AS tablespace_name,
        COUNT(DISTINCT TO_CHAR(sp.begin_interval_time, 'YYYY-MM-DD')) AS days_analyzed,
        MIN(ROUND((tsu.tablespace_usedsize * dt.block_size) / POWER(1024, 3), 2)) AS min_used_gb,
        MAX(ROUND((tsu.tablespace_usedsize * dt.block_size) / POWER(1024, 3), 2)) AS max_used_gb,
        MAX(ROUND((tsu.tablespace_size * dt.block_size) / POWER(1024, 3), 2)) AS allocated_gb
""" + _SNAPSHOT_USAGE + """
    GROUP BY ts.tsname
)
SELECT
    tablespace_name,
    days_analyzed,
    allocated_gb,
    max_used_gb AS current_used_gb,
    allocated_gb - max_used_gb AS free_gb,
    ROUND(max_used_gb / NULLIF(allocated_gb, 0) * 100, 2) AS usage_pct,
    max_used_gb - min_used_gb AS total_growth_gb,
    ROUND((max_used_gb - min_used_gb) / NULLIF(days_analyzed, 0), 2) AS avg_growth_gb_day
FROM tablespace_summary
WHERE days_analyzed > 0
ORDER BY total_growth_gb DESC
"""

DAILY_SQL = """
SELECT
    tablespace_name,
    analysis_date,
    allocated_gb,
    used_gb,
    allocated_gb - used_gb AS free_gb,
    ROUND(used_gb / NULLIF(allocated_gb, 0) * 100, 2) AS usage_pct,
    ROUND((used_gb - LAG(used_gb) OVER (PARTITION BY tablespace_name ORDER BY analysis_date)) * 1024, 2)
        AS daily_growth_mb,
    ROW_NUMBER() OVER (PARTITION BY tablespace_name ORDER BY analysis_date) AS day_seq
FROM (""" + _DAILY_USAGE + """)
ORDER BY tablespace_name, analysis_date DESC
"""

STATISTICS_SQL = """
WITH growth AS (
    SELECT
        tablespace_name,
        used_mb - LAG(used_mb) OVER (PARTITION BY tablespace_name ORDER BY analysis_date) AS daily_growth_mb
    FROM (""" + _DAILY_USED_MB + """)
)
SELECT
    tablespace_name,
    COUNT(*) AS days_with_data,
    ROUND(AVG(daily_growth_mb), 2) AS avg_growth_mb,
    ROUND(MAX(daily_growth_mb), 2) AS max_growth_mb,
    ROUND(MIN(daily_growth_mb), 2) AS min_growth_mb,
    ROUND(STDDEV(daily_growth_mb), 2) AS stddev_growth_mb,
    COUNT(CASE WHEN daily_growth_mb > 0 THEN 1 END) AS days_with_growth,
    COUNT(CASE WHEN daily_growth_mb = 0 THEN 1 END) AS days_no_growth,
    COUNT(CASE WHEN daily_growth_mb < 0 THEN 1 END) AS days_with_reduction,
    ROUND(COUNT(CASE WHEN daily_growth_mb > 0 THEN 1 END) / NULLIF(COUNT(*), 0) * 100, 2)
        AS growth_frequency_pct
FROM growth
WHERE daily_growth_mb IS NOT NULL
GROUP BY tablespace_name
HAVING COUNT(*) > 1
ORDER BY avg_growth_mb DESC
"""

# Shared by projection and recommendations, :days differs between the two
TREND_SQL = """
WITH growth AS (
    SELECT
        tablespace_name,
        allocated_gb,
        used_gb,
        used_gb - LAG(used_gb) OVER (PARTITION BY tablespace_name ORDER BY analysis_date) AS daily_growth_gb
    FROM (""" + _DAILY_USAGE + """)
)
SELECT
    tablespace_name,
    MAX(allocated_gb) AS current_allocated_gb,
    MAX(used_gb) AS current_used_gb,
    ROUND(AVG(daily_growth_gb), 3) AS avg_daily_growth_gb
FROM growth
WHERE daily_growth_gb IS NOT NULL
GROUP BY tablespace_name
"""

DISK_SPACE_SQL = """
SELECT
    df.tablespace_name,
    ROUND(SUM(df.bytes) / POWER(1024, 3), 2) AS allocated_gb,
    ROUND(SUM(CASE WHEN df.autoextensible = 'YES' THEN df.maxbytes ELSE df.bytes END) / POWER(1024, 3), 2)
        AS max_possible_gb,
    ROUND((SUM(df.bytes) - NVL(fs.free_bytes, 0)) / POWER(1024, 3), 2) AS used_gb,
    ROUND(NVL(fs.free_bytes, 0) / POWER(1024, 3), 2) AS free_gb,
    ROUND((SUM(df.bytes) - NVL(fs.free_bytes, 0)) / SUM(df.bytes) * 100, 2) AS usage_pct,
    COUNT(df.file_id) AS datafiles
FROM dba_data_files df
LEFT JOIN (
    SELECT tablespace_name, SUM(bytes) AS free_bytes
    FROM dba_free_space
    GROUP BY tablespace_name
) fs ON df.tablespace_name = fs.tablespace_name
WHERE UPPER(df.tablespace_name) LIKE :ts_name
GROUP BY df.tablespace_name, fs.free_bytes
ORDER BY usage_pct DESC
"""

NEXT_STEPS = [
    "Next steps:",
    "  1. Review tablespaces with HIGH GROWTH trend",
    "  2. Address any CRITICAL or WARNING risk assessments",
    "  3. Schedule proactive expansions based on recommendations",
    "  4. Monitor daily for sudden growth spikes",
]


def add_growth_trend(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["growth_trend"] = classify.growth_trend(r.get("total_growth_gb"))
    return rows


def add_growth_level(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        first = r.pop("day_seq", None) == 1
        growth = r.get("daily_growth_mb")
        r["growth_level"] = classify.daily_growth_level(growth, first_day=first)
        if first or growth is None:
            r["daily_growth_mb"] = 0
    return rows


def project_growth(rows: List[Dict]) -> List[Dict]:
    out = []
    for r in rows:
        allocated = r.get("current_allocated_gb") or 0
        used = r.get("current_used_gb") or 0
        growth = r.get("avg_daily_growth_gb")
        trending = growth is not None and growth > 0
        projected = round(used + growth * 30, 2) if trending else used
        out.append({
            "tablespace_name": r["tablespace_name"],
            "current_allocated_gb": allocated,
            "current_used_gb": used,
            "current_free_gb": round(allocated - used, 2),
            "current_usage_pct": round(used / allocated * 100, 2) if allocated else None,
            "projected_30day_growth_gb": round(growth * 30, 2) if trending else 0,
            "projected_used_gb": projected,
            "projected_usage_pct": round(projected / allocated * 100, 2) if allocated else None,
            "risk_assessment": classify.projection_risk(projected, allocated, growth),
        })
    out.sort(key=lambda r: r["projected_usage_pct"] or 0, reverse=True)
    return out


def recommend_space(rows: List[Dict]) -> List[Dict]:
    out = []
    for r in rows:
        allocated = r.get("current_allocated_gb") or 0
        used = r.get("current_used_gb") or 0
        pct = round(used / allocated * 100, 2) if allocated else None
        rec = classify.tablespace_recommendation(pct, allocated, r.get("avg_daily_growth_gb"))
        out.append({
            "tablespace_name": r["tablespace_name"],
            "current_allocated_gb": allocated,
            "current_used_gb": used,
            "current_usage_pct": pct,
            "recommended_addition_gb": rec["add_gb"],
            "urgency": rec["urgency"],
            "reason": rec["reason"],
        })
    out.sort(key=lambda r: r["current_usage_pct"] or 0, reverse=True)
    return out


class TablespaceGrowthReport(Report):
    name = "tablespace_growth"
    title = "Tablespace Growth Analysis"
    description = "AWR-based tablespace growth history, 30-day projection and space recommendations."
    parameters = [
        Parameter("tablespace_name", "Tablespace name (% for all)", "%", upper=True),
        Parameter("days_back", "Number of days to analyze", 30, kind="int", minimum=1, maximum=3650),
    ]
    required_views = [
        "DBA_HIST_TBSPC_SPACE_USAGE", "DBA_HIST_TABLESPACE_STAT", "DBA_HIST_SNAPSHOT",
        "DBA_TABLESPACES", "DBA_DATA_FILES", "DBA_FREE_SPACE",
    ]

    def build_sections(self, params, env):
        days = params["days_back"]
        ts_name = params["tablespace_name"]
        binds = {"days": days, "ts_name": ts_name}
        no_awr = "No AWR space history for the selected tablespaces and period."

        return [
            Section("Executive Summary", SUMMARY_SQL, binds, transform=add_growth_trend,
                    empty_message=no_awr),
            Section(f"Daily Growth Details (Last {min(days, 15)} Days)", DAILY_SQL,
                    {"days": min(days, 15), "ts_name": ts_name}, transform=add_growth_level,
                    empty_message=no_awr),
            Section("Growth Statistics", STATISTICS_SQL, binds,
                    empty_message="Not enough days of history to compute growth statistics."),
            Section("Growth Projection (Next 30 Days)", TREND_SQL,
                    {"days": min(days, 14), "ts_name": ts_name}, transform=project_growth,
                    empty_message=no_awr),
            Section("Space Allocation Recommendations", TREND_SQL, binds, transform=recommend_space,
                    empty_message=no_awr),
            Section("Current Disk Space Status", DISK_SPACE_SQL, {"ts_name": ts_name},
                    lines=NEXT_STEPS),
        ]
