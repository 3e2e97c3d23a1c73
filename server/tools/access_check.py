"""
Access check - which dictionary and performance views the preset user can read.
"""

import re
import logging
from typing import Dict, List, Optional

import oracledb

from mcp_app import mcp
from db_connector import oracle_connector
from diagnostics import REPORTS

logger = logging.getLogger(__name__)

VIEW_NAME = re.compile(r"^[A-Z][A-Z0-9_$#]*$")


def views_for(report: Optional[str] = None) -> List[str]:
    if report:
        return sorted(set(REPORTS[report].required_views))
    return sorted({v for r in REPORTS.values() for v in r.required_views})


def probe_views(cursor, views: List[str]) -> Dict[str, str]:
    access = {}
    for view in views:
        if not VIEW_NAME.match(view):
            access[view] = "✗ Invalid view name"
            continue
        try:
            cursor.execute(f"SELECT COUNT(*) FROM {view} WHERE ROWNUM <= 1")
            cursor.fetchone()
            access[view] = "✓ Accessible"
        except oracledb.DatabaseError as e:
            access[view] = f"✗ No access: {str(e).splitlines()[0]}"
    return access


def recommendations_for(missing: List[str]) -> List[str]:
    recs = []
    if any(v.startswith("DBA_HIST_") for v in missing):
        recs.append("AWR views (DBA_HIST_*) need the Diagnostics Pack licence plus SELECT_CATALOG_ROLE")
    if any(v.startswith(("V$", "GV$")) for v in missing):
        recs.append("Grant SELECT_CATALOG_ROLE (or SELECT ANY DICTIONARY) for V$/GV$ performance views")
    if any(v.startswith("DBA_") and not v.startswith("DBA_HIST_") for v in missing):
        recs.append("Grant SELECT_CATALOG_ROLE for DBA_* dictionary views")
    return recs or ["No additional permissions needed - full access available"]


def score(access: Dict[str, str]):
    total = len(access) or 1
    ok = sum(1 for v in access.values() if v.startswith("✓"))
    pct = ok * 100 / total
    if pct >= 90:
        level = "HIGH - Reports fully available"
    elif pct >= 60:
        level = "MEDIUM - Some sections will return access errors"
    else:
        level = "LOW - Most sections will be unavailable"
    return round(ok * 10 / total), level


@mcp.tool(
    name="check_diagnostic_access",
    description=(
        "🔍 Checks which Oracle views the configured user can read for the diagnostic reports.\n\n"
        "Probes the V$/GV$, DBA_* and DBA_HIST_* views a report needs (or all reports when "
        "none is given) and returns:\n"
        "- Per-view access status\n"
        "- Reports that will have unavailable sections\n"
        "- Access score (0-10) and impact level\n"
        "- Grant / licensing recommendations\n\n"
        "Use this when report sections come back with ORA-00942 or ORA-01031."
    ),
)
def check_diagnostic_access(db_name: str, report: Optional[str] = None):
    """
    Check view access for one report or for all of them.

    Args:
        db_name: Database preset from settings.yaml
        report: Optional report name; omit to check every report

    Returns:
        Dict with access report and recommendations
    """
    logger.info(f"🔍 Checking diagnostic access for {db_name} (report={report or 'ALL'})")

    if report and report not in REPORTS:
        return {"error": f"Unknown report '{report}'", "database": db_name,
                "available_reports": sorted(REPORTS)}

    try:
        conn = oracle_connector.connect(db_name)
    except (oracledb.Error, KeyError) as e:
        logger.error(f"❌ Error checking access on {db_name}: {e}")
        return {
            "error": f"Failed to check access: {e}",
            "database": db_name,
            "prompt": f"Could not connect to Oracle database '{db_name}' to check access",
        }

    try:
        cur = conn.cursor()
        access = probe_views(cur, views_for(report))
        cur.close()
    finally:
        conn.close()

    missing = [v for v, status in access.items() if not status.startswith("✓")]
    affected = {
        name: sorted(set(r.required_views) & set(missing))
        for name, r in sorted(REPORTS.items())
        if (report is None or name == report) and set(r.required_views) & set(missing)
    }
    points, level = score(access)

    return {
        "access_report": {
            "database": db_name,
            "access_checks": access,
            "impact_score": f"{points}/10",
            "impact_level": level,
            "affected_reports": affected,
            "recommendations": recommendations_for(missing),
        },
        "prompt": f"Diagnostic access check complete. Impact: {level} | Score: {points}/10",
    }
