"""
Diagnostic report tools.

Each tool opens its own connection from a settings.yaml preset, runs one
report read-only and returns a JSON-friendly dict. Failures come back as
``{"error": ..., "database": ...}`` instead of raising.
"""

import logging
from typing import Any, Dict, Optional

import oracledb

from mcp_app import mcp
from config import config, OUTPUT_PRESETS
from db_connector import oracle_connector
from diagnostics import REPORTS, ReportRunner, get_report
from diagnostics.formatting import to_dict
from diagnostics.fra_sizing import collect_fra_inputs, estimate_fra

logger = logging.getLogger(__name__)


def execute_report(db_name: str, report_name: str, parameters: Optional[Dict[str, Any]] = None):
    """Connect, run and close. Raises KeyError or oracledb.Error."""
    report = get_report(report_name)
    conn = oracle_connector.connect(db_name)
    try:
        runner = ReportRunner(conn, max_rows=config.max_rows)
        try:
            return runner.run(
                report,
                parameters or {},
                database=db_name,
                overrides=config.get_report_defaults(report.name),
            )
        finally:
            runner.close()
    finally:
        conn.close()


@mcp.tool(
    name="list_reports",
    description=(
        "📋 Lists the Oracle diagnostic reports this server can run.\n\n"
        "For each report returns its name, title, description, parameters (with defaults, "
        "ranges and choices) and the dictionary views it reads.\n"
        "Use this before run_diagnostic_report to pick a report and its parameters."
    ),
)
def list_reports():
    logger.info("📋 list_reports() called")
    return {
        "reports": [REPORTS[name].describe() for name in sorted(REPORTS)],
        "count": len(REPORTS),
    }


@mcp.tool(
    name="run_diagnostic_report",
    description=(
        "🔎 Runs one read-only Oracle diagnostic report and returns its sections.\n\n"
        "Reports: tablespace_growth, awr_wait_events, fra_sizing, health_check, sga_advanced, "
        "sql_analysis, top_sql, lock_analysis, schema_sizes, sga_usage, tablespace_usage, temp_usage.\n\n"
        "Parameters are passed as a dict of name -> value (see list_reports). Invalid values are "
        "replaced with defaults and reported under 'warnings'. A section that fails (missing "
        "privilege, no Diagnostics Pack, older version) is returned with status 'error' and "
        "advice; the other sections still run.\n\n"
        "⚠ Lock analysis KILL SESSION commands are reference text only and are never executed."
    ),
)
def run_diagnostic_report(
    db_name: str,
    report: str,
    parameters: Optional[Dict[str, Any]] = None,
    output_preset: Optional[str] = None,
):
    """
    Run a diagnostic report.

    Args:
        db_name: Database preset from settings.yaml
        report: Report name (see list_reports)
        parameters: Report parameters, e.g. {"filter_type": 1, "days_back": 3}
        output_preset: standard, compact or minimal (defaults to settings.yaml)

    Returns:
        Dict with environment, resolved parameters, warnings and sections
    """
    logger.info(f"🔎 run_diagnostic_report(db={db_name}, report={report})")
    preset = output_preset if output_preset in OUTPUT_PRESETS else config.output_preset

    if report not in REPORTS:
        return {
            "error": f"Unknown report '{report}'",
            "database": db_name,
            "available_reports": sorted(REPORTS),
        }

    try:
        result = execute_report(db_name, report, parameters)
    except KeyError as e:
        logger.error(f"❌ {e}")
        return {"error": str(e.args[0]) if e.args else str(e), "database": db_name}
    except oracledb.Error as e:
        logger.error(f"❌ Report '{report}' failed on {db_name}: {e}")
        return {"error": f"Database connection failed: {e}", "database": db_name}

    data = to_dict(result, preset)
    failed = [s.title for s in result.errors]
    data["prompt"] = (
        f"{result.title} on {db_name}: {len(result.sections)} sections"
        + (f", {len(failed)} unavailable ({', '.join(failed)})" if failed else "")
        + ". Summarise the findings, highlight WARNING/CRITICAL items and suggest next steps."
    )
    return data


@mcp.tool(
    name="estimate_fra_size",
    description=(
        "💾 Estimates the Fast Recovery Area size for an Oracle database.\n\n"
        "Uses database size, online redo, 30 days of archive generation, flashback logs and "
        "RMAN backup history. RAC uses a 1.3 multiplier and 15% buffer, single instance 1.2 and 10%.\n"
        "Returns component sizes, minimum / recommended / conservative totals and ready-to-use "
        "ALTER SYSTEM commands (as text, never executed)."
    ),
)
def estimate_fra_size(db_name: str):
    logger.info(f"💾 estimate_fra_size(db={db_name})")
    try:
        result = execute_report(db_name, "fra_sizing")
    except KeyError as e:
        logger.error(f"❌ {e}")
        return {"error": str(e.args[0]) if e.args else str(e), "database": db_name}
    except oracledb.Error as e:
        logger.error(f"❌ FRA estimate failed on {db_name}: {e}")
        return {"error": f"Database connection failed: {e}", "database": db_name}

    inputs = collect_fra_inputs(result)
    estimate = estimate_fra(inputs)
    return {
        "database": db_name,
        "environment": result.environment.to_dict(),
        "inputs": {
            "db_size_gb": inputs.db_size_gb,
            "redo_gb": inputs.redo_gb,
            "avg_daily_archive_gb": inputs.avg_daily_archive_gb,
            "flashback_on": inputs.flashback_on,
            "backup_sets": inputs.backup_count,
        },
        "estimate": estimate.to_dict(),
        "unavailable_sections": [s.title for s in result.errors],
    }
