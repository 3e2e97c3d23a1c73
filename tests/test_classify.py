import pytest

from diagnostics import classify


@pytest.mark.parametrize("gb, label", [(2, "HIGH GROWTH"), (0.5, "MODERATE GROWTH"),
                                       (0.05, "LOW GROWTH"), (0, "NO GROWTH"), (None, "NO GROWTH")])
def test_growth_trend(gb, label):
    assert classify.growth_trend(gb) == label


def test_daily_growth_level():
    assert classify.daily_growth_level(900, first_day=True) == "BASELINE"
    assert classify.daily_growth_level(None) == "NO DATA"
    assert classify.daily_growth_level(501) == "HIGH"
    assert classify.daily_growth_level(150) == "MODERATE"
    assert classify.daily_growth_level(1) == "LOW"
    assert classify.daily_growth_level(0) == "NONE"
    assert classify.daily_growth_level(-20) == "REDUCED"


def test_projection_risk():
    assert classify.projection_risk(95, 100, 1) == "CRITICAL - ACTION NEEDED"
    assert classify.projection_risk(85, 100, 1) == "WARNING - MONITOR CLOSELY"
    assert classify.projection_risk(75, 100, 1) == "CAUTION - PLAN EXPANSION"
    assert classify.projection_risk(10, 100, 1) == "NORMAL"
    assert classify.projection_risk(95, 100, 0) == "NO GROWTH TREND"


def test_tablespace_recommendation():
    assert classify.tablespace_recommendation(90, 100, 0) == {
        "add_gb": 50.0, "urgency": "IMMEDIATE", "reason": "High usage detected"}
    assert classify.tablespace_recommendation(75, 100, 0)["urgency"] == "WITHIN 30 DAYS"
    assert classify.tablespace_recommendation(10, 100, 0.2)["add_gb"] == 18.0
    assert classify.tablespace_recommendation(10, 100, 0)["urgency"] == "NO ACTION NEEDED"


def test_cache_and_pool_grades():
    assert classify.ratio_grade(96) == "GOOD"
    assert classify.ratio_grade(91) == "ACCEPTABLE"
    assert classify.ratio_grade(50) == "POOR"
    assert classify.hit_ratio_grade(95) == "EXCELLENT"
    assert classify.buffer_cache_grade(85) == "REVIEW NEEDED"
    assert classify.buffer_cache_impact(70).startswith("SEVERE")
    assert classify.shared_pool_health(3) == "CRITICAL: ORA-4031 risk"
    assert classify.shared_pool_health(60) == "INFO: Over-allocated"


def test_component_and_fusion_status():
    assert classify.sga_component_status("Buffer Cache", 40, 4) == "REVIEW NEEDED"
    assert classify.sga_component_status("Shared Pool", 35, 2) == "MONITOR"
    assert classify.sga_component_status("Large Pool", 1, 0.03) == "TOO SMALL"
    assert classify.cache_fusion_status("gc blocks lost", 5000) == "HIGH LOSS RATE"
    assert classify.cache_fusion_status("gc cr block receive time", 2e7) == "SLOW TRANSFERS"
    assert classify.cache_fusion_status("gc current blocks received", 10) == "NORMAL"


def test_lock_modes_and_versions():
    assert classify.lock_mode_name(6) == "Exclusive"
    assert classify.lock_mode_name("3") == "Row-X (SX)"
    assert classify.lock_mode_name(None) == "None"
    assert classify.version_class(19) == "MODERN"
    assert classify.version_class(12) == "LEGACY"
