"""
Threshold classifiers shared by the reports.

These take already fetched numbers and return the label printed next to
them. Keeping them out of the SQL makes the thresholds testable without a
database.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


def ora_round(value: float, places: int = 0) -> float:
    """Round half away from zero, as Oracle's ROUND does."""
    q = Decimal(1).scaleb(-places)
    result = Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP)
    return int(result) if places == 0 else float(result)


def growth_trend(total_growth_gb: Optional[float]) -> str:
    g = total_growth_gb or 0
    if g > 1:
        return "HIGH GROWTH"
    if g > 0.1:
        return "MODERATE GROWTH"
    if g > 0:
        return "LOW GROWTH"
    return "NO GROWTH"


def daily_growth_level(growth_mb: Optional[float], first_day: bool = False) -> str:
    if first_day:
        return "BASELINE"
    if growth_mb is None:
        return "NO DATA"
    if growth_mb > 500:
        return "HIGH"
    if growth_mb > 100:
        return "MODERATE"
    if growth_mb > 0:
        return "LOW"
    if growth_mb == 0:
        return "NONE"
    return "REDUCED"


def projection_risk(projected_used_gb: Optional[float], allocated_gb: Optional[float],
                    avg_daily_growth_gb: Optional[float]) -> str:
    if avg_daily_growth_gb is None or avg_daily_growth_gb <= 0:
        return "NO GROWTH TREND"
    if not allocated_gb:
        return "NORMAL"
    ratio = (projected_used_gb or 0) / allocated_gb
    if ratio > 0.90:
        return "CRITICAL - ACTION NEEDED"
    if ratio > 0.80:
        return "WARNING - MONITOR CLOSELY"
    if ratio > 0.70:
        return "CAUTION - PLAN EXPANSION"
    return "NORMAL"


def tablespace_recommendation(used_pct: Optional[float], allocated_gb: Optional[float],
                              avg_daily_growth_gb: Optional[float]) -> dict:
    """Suggested addition in GB, urgency and reason for one tablespace."""
    used_pct = used_pct or 0
    allocated_gb = allocated_gb or 0
    growth = avg_daily_growth_gb or 0
    if used_pct > 85:
        return {"add_gb": round(allocated_gb * 0.5, 2), "urgency": "IMMEDIATE",
                "reason": "High usage detected"}
    if used_pct > 70:
        return {"add_gb": round(allocated_gb * 0.3, 2), "urgency": "WITHIN 30 DAYS",
                "reason": "Moderate usage, plan expansion"}
    if growth > 0.1:
        return {"add_gb": round(growth * 90, 2), "urgency": "WITHIN 60 DAYS",
                "reason": "Consistent growth pattern"}
    return {"add_gb": 0, "urgency": "NO ACTION NEEDED", "reason": "Tablespace stable"}


def ratio_grade(pct: Optional[float]) -> str:
    """Buffer/library/dictionary cache ratio grade."""
    if pct is None:
        return "UNKNOWN"
    if pct > 95:
        return "GOOD"
    if pct > 90:
        return "ACCEPTABLE"
    return "POOR"


def hit_ratio_grade(pct: Optional[float]) -> str:
    """Buffer cache and global cache grades in the SGA report."""
    if pct is None:
        return "UNKNOWN"
    if pct >= 95:
        return "EXCELLENT"
    if pct >= 90:
        return "GOOD"
    if pct >= 80:
        return "NEEDS ATTENTION"
    return "CRITICAL"


def sga_component_status(component: str, pct_of_sga: Optional[float], size_gb: Optional[float]) -> str:
    name = (component or "").lower()
    pct = pct_of_sga or 0
    if "buffer cache" in name and pct < 50:
        return "REVIEW NEEDED"
    if "shared pool" in name and pct > 30:
        return "MONITOR"
    if "large pool" in name and (size_gb or 0) < 0.064:
        return "TOO SMALL"
    return "OPTIMAL"


def cache_fusion_status(metric_name: str, cluster_total: Optional[float]) -> str:
    name = metric_name or ""
    total = cluster_total or 0
    if "blocks lost" in name and total > 1000:
        return "HIGH LOSS RATE"
    if "receive time" in name and total / 1e6 > 10:
        return "SLOW TRANSFERS"
    if "blocks received" in name and total > 100000:
        return "HIGH TRAFFIC"
    return "NORMAL"


def buffer_cache_grade(pct: Optional[float]) -> str:
    if pct is None:
        return "UNKNOWN"
    if pct >= 95:
        return "EXCELLENT"
    if pct >= 90:
        return "GOOD"
    if pct >= 80:
        return "REVIEW NEEDED"
    return "CRITICAL"


def buffer_cache_impact(pct: Optional[float]) -> str:
    if pct is not None and pct < 80:
        return "SEVERE: 30-50% perf degradation"
    if pct is not None and pct < 90:
        return "MODERATE: 10-20% impact"
    return "OPTIMAL: Performance acceptable"


def shared_pool_health(free_pct: Optional[float]) -> str:
    pct = free_pct or 0
    if pct < 5:
        return "CRITICAL: ORA-4031 risk"
    if pct < 15:
        return "WARNING: Low memory"
    if pct > 50:
        return "INFO: Over-allocated"
    return "OPTIMAL: Healthy"


def interconnect_level(mb_per_sec: Optional[float]) -> str:
    rate = mb_per_sec or 0
    if rate > 100:
        return "HIGH TRAFFIC"
    if rate > 50:
        return "MODERATE"
    if rate > 10:
        return "NORMAL"
    return "LOW"


def sga_advisor_status(size_factor: Optional[float]) -> str:
    """Where one SGA target advisor row sits relative to the current size."""
    if size_factor is None:
        return "NO DATA"
    if size_factor == 1:
        return "CURRENT SIZE"
    if size_factor < 1:
        return "UNDERSIZED"
    if size_factor <= 1.5:
        return "RECOMMENDED RANGE"
    if size_factor <= 2:
        return "BENEFICIAL"
    return "DIMINISHING RETURNS"


def lock_mode_name(mode) -> str:
    names = {
        0: "None", 1: "Null", 2: "Row-S (SS)", 3: "Row-X (SX)",
        4: "Share", 5: "S/Row-X (SSX)", 6: "Exclusive",
    }
    try:
        return names.get(int(mode), str(mode))
    except (TypeError, ValueError):
        return str(mode)


def version_class(major: int) -> str:
    return "MODERN" if major >= 19 else "LEGACY"
