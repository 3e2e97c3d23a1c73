"""
Oracle diagnostic reports.

``REPORTS`` maps a report name to a ready instance; the CLI and the MCP
tools look reports up here.
"""

from typing import Dict, List

from diagnostics.report import Environment, Report, ReportResult, Section, SectionResult
from diagnostics.runner import ReportRunner
from diagnostics.tablespace_growth import TablespaceGrowthReport
from diagnostics.awr_wait_events import AwrWaitEventsReport
from diagnostics.fra_sizing import FraSizingReport
from diagnostics.health_check import HealthCheckReport
from diagnostics.sga_advanced import SgaAdvancedReport
from diagnostics.sql_analysis import SqlAnalysisReport
from diagnostics.top_sql import TopSqlReport
from diagnostics.lock_analysis import LockAnalysisReport
from diagnostics.schema_sizes import SchemaSizesReport
from diagnostics.sga_usage import SgaUsageReport
from diagnostics.tablespace_usage import TablespaceUsageReport
from diagnostics.temp_usage import TempUsageReport

REPORTS: Dict[str, Report] = {
    r.name: r for r in (
        TablespaceGrowthReport(),
        AwrWaitEventsReport(),
        FraSizingReport(),
        HealthCheckReport(),
        SgaAdvancedReport(),
        SqlAnalysisReport(),
        TopSqlReport(),
        LockAnalysisReport(),
        SchemaSizesReport(),
        SgaUsageReport(),
        TablespaceUsageReport(),
        TempUsageReport(),
    )
}


def get_report(name: str) -> Report:
    """Look up a report by name; raises KeyError listing the known names."""
    try:
        return REPORTS[name]
    except KeyError:
        raise KeyError(f"Unknown report '{name}'. Available: {', '.join(sorted(REPORTS))}") from None


def report_names() -> List[str]:
    return sorted(REPORTS)


__all__ = [
    "REPORTS", "get_report", "report_names",
    "Environment", "Report", "ReportResult", "ReportRunner", "Section", "SectionResult",
]
