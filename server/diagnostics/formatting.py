"""
Output formatting for report results.

``render_text`` gives console/spool text; ``to_dict`` gives JSON-friendly
data for MCP clients, trimmed by output preset (standard/compact/minimal).
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List

from tabulate import tabulate

from diagnostics.report import ReportResult, SectionResult, OK

RULE = "=" * 78

COMPACT_TEXT_LIMIT = 200
MINIMAL_TEXT_LIMIT = 80
MINIMAL_ROW_LIMIT = 5


def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, timedelta):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def _truncate(value: Any, limit: int) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return value[:limit] + "..."
    return value


def format_table(rows: List[Dict[str, Any]], columns: List[str] = None) -> str:
    if not rows:
        return ""
    columns = columns or list(rows[0].keys())
    body = [[_plain(r.get(c)) for c in columns] for r in rows]
    headers = [c.replace("_", " ").upper() for c in columns]
    return tabulate(body, headers=headers, tablefmt="simple", floatfmt=".2f", missingval="-")


def render_section(section: SectionResult) -> str:
    out = [f"--- {section.title} ---"]
    if section.status == OK and section.rows:
        out.append(format_table(section.rows, section.columns))
    out.extend(section.lines)
    if section.message:
        prefix = "ERROR: " if section.status == "error" else ""
        out.append(f"{prefix}{section.message}")
    return "\n".join(out)


def render_text(result: ReportResult) -> str:
    env = result.environment
    header = [
        RULE,
        result.title.upper(),
        RULE,
        f"Database     : {env.db_name} ({result.database or 'direct'})",
        f"Version      : {env.version or 'unknown'}",
        f"Environment  : {'RAC (' + str(env.instance_count) + ' instances)' if env.is_rac else 'Single instance'}",
        f"Log mode     : {env.log_mode}",
        f"Generated    : {result.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if result.parameters:
        params = ", ".join(f"{k}={_plain(v)}" for k, v in result.parameters.items())
        header.append(f"Parameters   : {params}")
    for w in result.warnings:
        header.append(f"WARNING: {w}")
    header.append(RULE)

    body = [render_section(s) for s in result.sections]
    footer = [RULE, f"End of {result.title}", RULE]
    return "\n".join(header) + "\n\n" + "\n\n".join(body) + "\n\n" + "\n".join(footer) + "\n"


def _section_dict(section: SectionResult, preset: str) -> Dict[str, Any]:
    rows = [{k: _plain(v) for k, v in r.items()} for r in section.rows]

    if preset == "compact":
        rows = [{k: _truncate(v, COMPACT_TEXT_LIMIT) for k, v in r.items()} for r in rows]
    elif preset == "minimal":
        rows = [{k: _truncate(v, MINIMAL_TEXT_LIMIT) for k, v in r.items()} for r in rows[:MINIMAL_ROW_LIMIT]]

    data = {"title": section.title, "status": section.status, "rows": rows}
    if section.message:
        data["message"] = section.message
    if section.lines and preset != "minimal":
        data["notes"] = list(section.lines)
    if preset == "minimal" and len(section.rows) > MINIMAL_ROW_LIMIT:
        data["rows_omitted"] = len(section.rows) - MINIMAL_ROW_LIMIT
    return data


def to_dict(result: ReportResult, preset: str = "standard") -> Dict[str, Any]:
    return {
        "report": result.report,
        "title": result.title,
        "database": result.database,
        "environment": result.environment.to_dict(),
        "parameters": {k: _plain(v) for k, v in result.parameters.items()},
        "warnings": list(result.warnings),
        "generated_at": result.started_at.isoformat(),
        "sections": [_section_dict(s, preset) for s in result.sections],
    }


def spool_filename(report, when: datetime = None) -> str:
    """Default spool file name, ``<prefix>_YYYY-MM-DD_HH-MM-SS.txt``."""
    prefix = report.spool_prefix or report.name
    return f"{prefix}_{(when or datetime.now()).strftime('%Y-%m-%d_%H-%M-%S')}.txt"
