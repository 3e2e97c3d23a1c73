"""
SGA analysis for standalone and RAC databases.

Component sizing, cache fusion, buffer cache and shared pool health per
instance, interconnect throughput and the three Oracle memory advisors,
closed by an executive summary built from the sections above.
"""

from typing import Dict, List, Optional

from diagnostics import classify
from diagnostics.parameters import Parameter
from diagnostics.report import Environment, Report, ReportResult, Section, rac_only

INSTANCES_SQL = """
SELECT
    inst_id, instance_name, host_name, status,
    TO_CHAR(startup_time, 'DD-MON HH24:MI') AS startup_time,
    ROUND(SYSDATE - startup_time) || ' days' AS uptime_days,
    thread# AS thread_num
FROM gv$instance
ORDER BY inst_id
"""

SGA_COMPONENTS_SQL = """
WITH cluster_sga AS (
    SELECT
        inst_id,
        name AS component,
        bytes,
        SUM(bytes) OVER (PARTITION BY name) AS cluster_total_bytes,
        SUM(bytes) OVER (PARTITION BY inst_id) AS instance_total_bytes
    FROM gv$sgainfo
    WHERE name IN ('Fixed SGA Size', 'Redo Buffers', 'Buffer Cache Size',
                   'Shared Pool Size', 'Large Pool Size', 'Java Pool Size', 'Streams Pool Size')
      AND bytes > 0
)
SELECT
    inst_id,
    component,
    ROUND(bytes / POWER(1024, 3), 2) AS size_gb,
    ROUND(cluster_total_bytes / POWER(1024, 3), 2) AS cluster_total_gb,
    ROUND(bytes / instance_total_bytes * 100, 2) AS pct_of_inst
FROM cluster_sga
ORDER BY inst_id, bytes DESC
"""

CACHE_FUSION_SQL = """
SELECT name AS metric_name, inst_id, value
FROM gv$sysstat
WHERE name IN (
    'gc cr blocks received', 'gc current blocks received',
    'gc cr blocks served', 'gc current blocks served',
    'gc blocks lost', 'gc cr block receive time', 'gc current block receive time'
)
ORDER BY name, inst_id
"""

GC_EFFICIENCY_SQL = """
SELECT
    inst_id,
    SUM(CASE WHEN name IN ('gc cr blocks received', 'gc current blocks received') THEN value ELSE 0 END)
        AS total_gc_blocks,
    SUM(CASE WHEN name = 'gc blocks lost' THEN value ELSE 0 END) AS blocks_lost
FROM gv$sysstat
WHERE name IN ('gc cr blocks received', 'gc current blocks received', 'gc blocks lost')
GROUP BY inst_id
ORDER BY inst_id
"""

BUFFER_CACHE_SQL = """
WITH instance_cache_stats AS (
    SELECT
        s.inst_id,
        SUM(CASE WHEN s.name = 'db block gets' THEN s.value ELSE 0 END) AS db_block_gets,
        SUM(CASE WHEN s.name = 'consistent gets' THEN s.value ELSE 0 END) AS consistent_gets,
        SUM(CASE WHEN s.name = 'physical reads' THEN s.value ELSE 0 END) AS physical_reads,
        (SYSDATE - i.startup_time) * 24 * 3600 AS uptime_seconds
    FROM gv$sysstat s
    JOIN gv$instance i ON s.inst_id = i.inst_id
    WHERE s.name IN ('db block gets', 'consistent gets', 'physical reads')
    GROUP BY s.inst_id, i.startup_time
)
SELECT
    inst_id,
    ROUND((1 - physical_reads / NULLIF(db_block_gets + consistent_gets, 0)) * 100, 2) AS hit_ratio,
    ROUND(physical_reads / NULLIF(uptime_seconds, 0), 2) AS physical_reads_sec,
    ROUND((db_block_gets + consistent_gets) / NULLIF(uptime_seconds, 0), 2) AS logical_reads_sec
FROM instance_cache_stats
ORDER BY inst_id
"""

SHARED_POOL_SQL = """
SELECT
    inst_id,
    pool,
    ROUND(SUM(bytes) / POWER(1024, 2), 2) AS total_mb,
    ROUND(SUM(CASE WHEN name = 'free memory' THEN bytes ELSE 0 END) / POWER(1024, 2), 2) AS free_mb,
    ROUND(SUM(CASE WHEN name = 'free memory' THEN bytes ELSE 0 END) / NULLIF(SUM(bytes), 0) * 100, 2)
        AS free_pct
FROM gv$sgastat
WHERE pool = 'shared pool'
GROUP BY inst_id, pool
ORDER BY inst_id
"""

INTERCONNECT_SQL = """
SELECT
    s.inst_id,
    s.name AS metric_name,
    ROUND(s.value / POWER(1024, 2), 2) AS value_mb,
    ROUND(s.value / POWER(1024, 2) / NULLIF((SYSDATE - i.startup_time) * 24 * 3600, 0), 2) AS rate_mb_sec
FROM gv$sysstat s
JOIN gv$instance i ON s.inst_id = i.inst_id
WHERE s.name LIKE '%gc%bytes%' AND s.value > 0
ORDER BY s.inst_id, value_mb DESC
"""

SGA_TARGET_ADVICE_SQL = """
SELECT
    ROUND(sta.sga_size * POWER(1024, 2) / POWER(1024, 3), 2) AS target_size_gb,
    sta.sga_size_factor AS size_factor,
    sta.estd_db_time,
    sta.estd_physical_reads,
    (SELECT ROUND(MAX(sga_size) * POWER(1024, 2) / POWER(1024, 3), 2)
       FROM v$sga_target_advice WHERE sga_size_factor = 1) AS current_sga_gb,
    (SELECT MAX(estd_db_time) FROM v$sga_target_advice WHERE sga_size_factor = 1) AS baseline_db_time
FROM v$sga_target_advice sta
WHERE sta.sga_size_factor BETWEEN 0.25 AND 2.0
ORDER BY sta.sga_size_factor
"""

DB_CACHE_ADVICE_SQL = """
WITH current_cache AS (
    SELECT bytes AS current_cache_bytes FROM v$sgainfo WHERE name = 'Buffer Cache Size'
)
SELECT
    ROUND(dca.size_for_estimate / 1024, 2) AS cache_size_gb,
    ROUND(dca.size_for_estimate * POWER(1024, 2) / cc.current_cache_bytes, 2) AS size_ratio,
    dca.buffers_for_estimate,
    dca.estd_physical_read_factor,
    dca.estd_physical_reads,
    ROUND(cc.current_cache_bytes / POWER(1024, 3), 2) AS current_cache_gb
FROM v$db_cache_advice dca
CROSS JOIN current_cache cc
WHERE dca.name = 'DEFAULT'
  AND dca.advice_status = 'ON'
  AND dca.size_for_estimate * POWER(1024, 2) BETWEEN cc.current_cache_bytes * 0.5 AND cc.current_cache_bytes * 2
ORDER BY dca.size_for_estimate
"""

SHARED_POOL_ADVICE_SQL = """
WITH current_shared_pool AS (
    SELECT bytes AS current_pool_bytes FROM v$sgainfo WHERE name = 'Shared Pool Size'
)
SELECT
    ROUND(spa.shared_pool_size_for_estimate / 1024, 2) AS pool_size_gb,
    spa.shared_pool_size_factor AS size_factor,
    spa.estd_lc_time_saved,
    spa.estd_lc_memory_objects,
    ROUND(csp.current_pool_bytes / POWER(1024, 3), 2) AS current_pool_gb
FROM v$shared_pool_advice spa
CROSS JOIN current_shared_pool csp
WHERE spa.shared_pool_size_factor BETWEEN 0.5 AND 2.0
ORDER BY spa.shared_pool_size_factor
"""

NO_SGA_ADVICE = ("SGA Target Advisor: No data available. "
                 "Enable with: ALTER SYSTEM SET STATISTICS_LEVEL=TYPICAL")

NEXT_STEPS = [
    "Next steps:",
    "- RAC: Monitor interconnect performance and global cache statistics",
    "- All: Run during peak hours for optimal insights",
]


def sga_target_advice(row: Dict) -> str:
    factor = row.get("size_factor")
    target = row.get("target_size_gb") or 0
    current = row.get("current_sga_gb") or 0
    baseline = row.get("baseline_db_time")
    db_time = row.get("estd_db_time")

    if factor == 1:
        return "Current configuration (baseline)"
    if factor is not None and factor < 1:
        return f"REDUCE: Potential memory waste of {round(current - target, 2)}GB"
    if baseline and db_time is not None and db_time < baseline:
        gain = round((baseline - db_time) / baseline * 100, 1)
        return f"INCREASE: Add {round(target - current, 2)}GB for {gain}% performance improvement"
    return "Evaluate cost vs benefit for this sizing"


def db_cache_advice(row: Dict) -> str:
    size = row.get("cache_size_gb") or 0
    current = row.get("current_cache_gb") or 0
    factor = row.get("estd_physical_read_factor")

    if row.get("size_ratio") == 1:
        return "CURRENT CONFIGURATION"
    if factor is None:
        return "EVALUATE: Review cost vs performance benefit"
    if factor < 1 and size > current:
        return (f"RECOMMENDED: Increase cache by {round(size - current, 2)}GB for "
                f"{round((1 - factor) * 100, 1)}% fewer physical reads")
    if factor > 1 and size < current:
        return (f"CONSIDER: Reduce cache to save {round(current - size, 2)}GB memory "
                f"(trade-off: {round((factor - 1) * 100, 1)}% more physical reads)")
    if 0.99 < factor < 1.01:
        return "MINIMAL IMPACT: Little performance change"
    return "EVALUATE: Review cost vs performance benefit"


def shared_pool_advice(row: Dict) -> str:
    factor = row.get("size_factor")
    size = row.get("pool_size_gb") or 0
    current = row.get("current_pool_gb") or 0
    saved = row.get("estd_lc_time_saved") or 0

    if factor == 1:
        return "CURRENT CONFIGURATION"
    if factor is not None and factor > 1 and saved > 0:
        return f"BENEFICIAL: Increase by {round(size - current, 2)}GB saves {saved}ms parse time"
    if factor is not None and factor < 1:
        return f"RISKY: Reducing to {size}GB may increase parse time by {abs(saved)}ms"
    if factor is not None and factor > 1 and saved == 0:
        return "MINIMAL BENEFIT: Little performance improvement expected"
    return "EVALUATE: Review impact on library cache efficiency"


def _apply(advise, column: str, drop=()):
    def transform(rows):
        for r in rows:
            r[column] = advise(r)
            for key in drop:
                r.pop(key, None)
        return rows
    return transform


def add_component_status(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["status"] = classify.sga_component_status(
            r.get("component", "").replace(" Size", ""), r.get("pct_of_inst"), r.get("size_gb"))
    return rows


def pivot_cache_fusion(rows: List[Dict]) -> List[Dict]:
    """One row per metric with a value column per instance and a cluster total."""
    instances = sorted({r["inst_id"] for r in rows})
    metrics: Dict[str, Dict] = {}
    for r in rows:
        m = metrics.setdefault(r["metric_name"], {"metric_name": r["metric_name"]})
        m[f"inst{r['inst_id']}_value"] = r.get("value") or 0
    out = []
    for name, m in metrics.items():
        for inst in instances:
            m.setdefault(f"inst{inst}_value", 0)
        m["cluster_total"] = sum(m[f"inst{inst}_value"] for inst in instances)
        m["performance"] = classify.cache_fusion_status(name, m["cluster_total"])
        out.append(m)
    out.sort(key=lambda m: m["cluster_total"], reverse=True)
    return out


def add_gc_ratio(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        total = r.get("total_gc_blocks") or 0
        ratio = round((1 - (r.get("blocks_lost") or 0) / total) * 100, 2) if total else None
        r["gc_hit_ratio_pct"] = ratio if ratio is not None else 0
        r["gc_performance"] = classify.hit_ratio_grade(ratio)
    return rows


def add_cache_grade(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["performance_grade"] = classify.buffer_cache_grade(r.get("hit_ratio"))
        r["business_impact"] = classify.buffer_cache_impact(r.get("hit_ratio"))
    return rows


def add_pool_health(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["health_status"] = classify.shared_pool_health(r.get("free_pct"))
    return rows


def add_interconnect_level(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["status"] = classify.interconnect_level(r.get("rate_mb_sec"))
    return rows


def _apply_sga_advice(rows: List[Dict]) -> List[Dict]:
    for r in rows:
        r["advisor_status"] = classify.sga_advisor_status(r.get("size_factor"))
        r["recommendation"] = sga_target_advice(r)
        r.pop("current_sga_gb", None)
        r.pop("baseline_db_time", None)
    return rows


def executive_summary(env: Environment, hit_ratios: List[Optional[float]],
                      free_pcts: List[Optional[float]]) -> List[str]:
    lines = ["=== CLUSTER HEALTH ASSESSMENT ==="]
    if env.is_rac:
        lines.append(f"CLUSTER: {env.instance_count} instances RAC cluster detected")
    else:
        lines.append("CLUSTER: Standalone instance (non-RAC)")

    ratios = [r for r in hit_ratios if r is not None]
    if not ratios:
        lines.append("PERFORMANCE: UNKNOWN - buffer cache statistics unavailable")
    else:
        avg = round(sum(ratios) / len(ratios), 2)
        if avg < 80:
            lines.append(f"PERFORMANCE: CRITICAL - Cluster-wide buffer cache below 80% ({avg}%)")
        elif avg < 90:
            lines.append(f"PERFORMANCE: WARNING - Cluster average hit ratio {avg}%")
        else:
            lines.append(f"PERFORMANCE: ACCEPTABLE - Cluster performance ({avg}%) within range")

    frees = [f for f in free_pcts if f is not None]
    if not frees:
        lines.append("MEMORY: UNKNOWN - shared pool statistics unavailable")
    else:
        low = min(frees)
        if low < 5:
            lines.append(f"MEMORY: CRITICAL - Instance with {low}% shared pool free (ORA-4031 risk)")
        elif low < 15:
            lines.append(f"MEMORY: WARNING - Minimum shared pool free across cluster: {low}%")
        else:
            lines.append("MEMORY: STABLE - Shared pool memory adequate across all instances")

    if env.is_rac:
        lines.append("RAC SPECIFIC: Cache fusion and interconnect metrics analyzed - review above sections")
        lines.append("RECOMMENDATION: Monitor interconnect latency and global cache efficiency")
    else:
        lines.append("RAC SPECIFIC: N/A - Cache fusion analysis skipped for standalone")
        lines.append("RECOMMENDATION: Focus on single-instance memory optimization")
    return lines


class SgaAdvancedReport(Report):
    name = "sga_advanced"
    title = "Oracle SGA RAC-Aware Health Analysis"
    description = "SGA components, cache fusion, buffer cache, shared pool and memory advisors."
    parameters: List[Parameter] = []
    required_views = [
        "GV$INSTANCE", "GV$SGAINFO", "GV$SYSSTAT", "GV$SGASTAT", "V$SGA_TARGET_ADVICE",
        "V$DB_CACHE_ADVICE", "V$SHARED_POOL_ADVICE", "V$SGAINFO",
    ]

    def build_sections(self, params, env):
        environment = [
            {"env_info": "Cluster Type",
             "env_value": f"RAC Cluster ({env.instance_count} instances)" if env.is_rac else "Standalone Database",
             "env_status": "CLUSTER" if env.is_rac else "STANDALONE"},
            {"env_info": "Oracle Version", "env_value": env.version or "unknown",
             "env_status": classify.version_class(env.major_version)},
            {"env_info": "Analysis Scope",
             "env_value": "Multi-Instance Global Analysis" if env.is_rac else "Single Instance Analysis",
             "env_status": "COMPREHENSIVE"},
        ]
        skip = "SKIPPING: Standalone environment."
        return [
            Section("Environment Configuration", rows=environment),
            Section("1. Cluster Instance Overview", INSTANCES_SQL),
            Section("2. Cluster-Wide SGA Component Analysis", SGA_COMPONENTS_SQL, transform=add_component_status),
            Section("3. Cache Fusion Performance Metrics", CACHE_FUSION_SQL, when=rac_only,
                    skip_message=skip, transform=pivot_cache_fusion),
            Section("3. Global Cache Efficiency", GC_EFFICIENCY_SQL, when=rac_only,
                    skip_message=skip, transform=add_gc_ratio),
            Section("4. Buffer Cache Performance by Instance", BUFFER_CACHE_SQL, transform=add_cache_grade),
            Section("5. Shared Pool Analysis by Instance", SHARED_POOL_SQL, transform=add_pool_health),
            Section("6. Cluster Interconnect Performance", INTERCONNECT_SQL, when=rac_only,
                    skip_message=skip, transform=add_interconnect_level),
            Section("7. SGA Target Advisor", SGA_TARGET_ADVICE_SQL, empty_message=NO_SGA_ADVICE,
                    transform=_apply_sga_advice),
            Section("7. Buffer Cache Advisor", DB_CACHE_ADVICE_SQL,
                    transform=_apply(db_cache_advice, "cache_advice", drop=("current_cache_gb",)),
                    empty_message="Buffer cache advisor has no data (DB_CACHE_ADVICE may be OFF)."),
            Section("7. Shared Pool Advisor", SHARED_POOL_ADVICE_SQL,
                    transform=_apply(shared_pool_advice, "pool_advice", drop=("current_pool_gb",))),
        ]

    def summarize(self, result: ReportResult):
        hit_ratios = [r.get("hit_ratio") for r in result.rows("4. Buffer Cache Performance by Instance")]
        free_pcts = [r.get("free_pct") for r in result.rows("5. Shared Pool Analysis by Instance")]
        return [
            Section("8. Executive Summary",
                    lines=executive_summary(result.environment, hit_ratios, free_pcts) + [""] + NEXT_STEPS),
        ]
