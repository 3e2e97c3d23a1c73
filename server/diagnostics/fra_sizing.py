"""
Fast Recovery Area sizing.

Collects redo, archive, flashback and RMAN history and estimates how large
the FRA should be. Every component has a fallback so an estimate is always
produced, even when a view is missing or there is no history yet.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from diagnostics.classify import ora_round
from diagnostics.parameters import Parameter
from diagnostics.report import Environment, Report, ReportResult, Section

logger = logging.getLogger(__name__)

DEFAULT_FRA_PATH = "/u01/app/oracle/fra"
CONTROL_FILES_GB = 2

DATABASE_INFO_SQL = """
SELECT name AS database_name, log_mode AS archive_mode, flashback_on, force_logging, platform_name
FROM v$database
"""

DATABASE_SIZE_SQL = """
SELECT
    ROUND(SUM(bytes) / POWER(1024, 3), 2) AS total_datafiles_gb,
    ROUND(SUM(bytes) / POWER(1024, 4), 2) AS total_datafiles_tb
FROM v$datafile
"""

FRA_CONFIG_SQL = """
SELECT
    name AS fra_location,
    ROUND(space_limit / POWER(1024, 3), 2) AS size_limit_gb,
    ROUND(space_used / POWER(1024, 3), 2) AS used_gb,
    ROUND(space_used / NULLIF(space_limit, 0) * 100, 2) AS usage_pct,
    number_of_files
FROM v$recovery_file_dest
WHERE name IS NOT NULL
"""

ARCHIVELOG_SQL = "SELECT log_mode AS archive_mode, force_logging FROM v$database"

REDO_SUMMARY_RAC_SQL = """
SELECT
    COUNT(DISTINCT thread#) AS threads,
    COUNT(*) AS total_groups,
    SUM(members) AS total_members,
    ROUND(SUM(bytes) / POWER(1024, 3), 2) AS total_size_gb,
    ROUND(AVG(bytes) / POWER(1024, 2), 2) AS avg_size_mb
FROM gv$log
"""

REDO_SUMMARY_SQL = """
SELECT
    1 AS threads,
    COUNT(*) AS total_groups,
    SUM(members) AS total_members,
    ROUND(SUM(bytes) / POWER(1024, 3), 2) AS total_size_gb,
    ROUND(AVG(bytes) / POWER(1024, 2), 2) AS avg_size_mb
FROM v$log
"""

REDO_DETAILS_SQL = """
SELECT thread#, group#, status, bytes / POWER(1024, 2) AS mb, members
FROM v$log
ORDER BY thread#, group#
"""

ARCHIVE_GENERATION_SQL = """
WITH daily AS (
    SELECT TRUNC(first_time) AS day, SUM(blocks * block_size) / POWER(1024, 3) AS gb
    FROM v$archived_log
    WHERE first_time >= SYSDATE - 30
      AND first_time < TRUNC(SYSDATE)
      AND standby_dest = 'NO'
    GROUP BY TRUNC(first_time)
)
SELECT
    (SELECT COUNT(*) FROM v$archived_log
      WHERE first_time >= SYSDATE - 30 AND standby_dest = 'NO') AS archives_found,
    COUNT(*) AS days_analyzed,
    ROUND(SUM(gb), 2) AS total_gb,
    ROUND(AVG(gb), 2) AS avg_daily_gb,
    ROUND(MAX(gb), 2) AS max_daily_gb,
    ROUND(AVG(gb) * 7, 2) AS projected_weekly_gb
FROM daily
"""

FLASHBACK_SQL = """
SELECT
    d.flashback_on,
    (SELECT ROUND(SUM(bytes) / POWER(1024, 3), 2) FROM v$flashback_database_logfile) AS current_size_gb,
    (SELECT value FROM v$parameter WHERE name = 'db_flashback_retention_target') AS retention_minutes
FROM v$database d
"""

RMAN_BACKUPS_SQL = """
SELECT
    COUNT(*) AS backup_sets,
    ROUND(AVG(output_bytes) / POWER(1024, 3), 2) AS avg_size_gb,
    MAX(start_time) AS last_backup,
    (SELECT ROUND(AVG(daily_gb), 2) FROM (
        SELECT SUM(output_bytes) / POWER(1024, 3) AS daily_gb
        FROM v$backup_set_details
        WHERE start_time >= SYSDATE - 30
        GROUP BY TRUNC(start_time))) AS avg_daily_backup_gb
FROM v$backup_set_details
WHERE start_time >= SYSDATE - 30
"""

FRA_NOT_CONFIGURED = (
    "FRA is not configured. To configure:\n"
    "ALTER SYSTEM SET db_recovery_file_dest_size = 100G;\n"
    "ALTER SYSTEM SET db_recovery_file_dest = '/path/to/fra';"
)

NOARCHIVELOG_STEPS = [
    "WARNING: Database is in NOARCHIVELOG mode!",
    "Archive logs will not be generated.",
    "To enable:",
    "  SHUTDOWN IMMEDIATE;",
    "  STARTUP MOUNT;",
    "  ALTER DATABASE ARCHIVELOG;",
    "  ALTER DATABASE OPEN;",
]

IMPLEMENTATION_STEPS = [
    "1. Review the recommendations above",
    "2. Execute the ALTER commands provided",
    "3. Monitor FRA usage regularly:",
    "   SELECT * FROM v$recovery_file_dest;",
]


@dataclass
class FraInputs:
    is_rac: bool = False
    archivelog: bool = True
    db_size_gb: float = 0.0
    redo_gb: Optional[float] = None
    avg_daily_archive_gb: Optional[float] = None
    flashback_on: bool = False
    flashback_logs_gb: Optional[float] = None
    backup_count: Optional[int] = None
    avg_daily_backup_gb: Optional[float] = None


@dataclass
class FraEstimate:
    redo_gb: float
    archive_gb: float
    flashback_gb: float
    backup_gb: float
    control_gb: float
    buffer_gb: float
    total_gb: float
    minimum_gb: int
    recommended_gb: int
    conservative_gb: int
    notes: List[str] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)

    def components(self) -> List[Dict]:
        return [
            {"component": "Online Redo Logs", "size_gb": self.redo_gb},
            {"component": "Archived Logs (7d)", "size_gb": self.archive_gb},
            {"component": "Flashback Logs", "size_gb": self.flashback_gb},
            {"component": "RMAN Backups (2 sets)", "size_gb": self.backup_gb},
            {"component": "Control Files", "size_gb": self.control_gb},
            {"component": "Safety Buffer", "size_gb": self.buffer_gb},
            {"component": "Base Calculation", "size_gb": self.minimum_gb},
        ]

    def to_dict(self) -> Dict:
        return {
            "components": {c["component"]: c["size_gb"] for c in self.components()},
            "total_gb": self.total_gb,
            "minimum_gb": self.minimum_gb,
            "recommended_gb": self.recommended_gb,
            "conservative_gb": self.conservative_gb,
            "notes": list(self.notes),
            "commands": list(self.commands),
        }


def estimate_fra(inputs: FraInputs) -> FraEstimate:
    """
    Size the FRA from collected history.

    Components:
        redo       - current online redo size (default 2 GB RAC, 1 GB otherwise)
        archive    - 7 days of average daily archive volume x multiplier;
                     without history 1% of the DB per day, at least 10 GB;
                     zero in NOARCHIVELOG
        flashback  - if enabled, the largest of 1.5x current logs, 5% of DB, 10 GB
        backup     - two days of average daily RMAN output; without history
                     two compressed copies at 30% of DB; at least 20 GB
        control    - 2 GB
        buffer     - 15 GB RAC, 10 GB otherwise
    """
    multiplier, buffer_gb = (1.3, 15) if inputs.is_rac else (1.2, 10)
    db = inputs.db_size_gb or 0

    redo = inputs.redo_gb if inputs.redo_gb is not None else (2 if inputs.is_rac else 1)

    if inputs.archivelog:
        if inputs.avg_daily_archive_gb is not None:
            archive = ora_round(inputs.avg_daily_archive_gb * 7 * multiplier, 2)
        else:
            archive = max(ora_round(db * 0.01 * 7 * multiplier, 2), 10)
    else:
        archive = 0

    if inputs.flashback_on:
        logs = ora_round((inputs.flashback_logs_gb or 0) * 1.5, 2)
        flashback = max(logs, ora_round(db * 0.05, 2), 10)
    else:
        flashback = 0

    if inputs.backup_count and inputs.avg_daily_backup_gb is not None:
        backup = ora_round(inputs.avg_daily_backup_gb * 2, 2)
    else:
        backup = ora_round(db * 0.3 * 2, 2)
    backup = max(backup, 20)

    total = redo + archive + flashback + backup + CONTROL_FILES_GB + buffer_gb

    notes = []
    if inputs.is_rac:
        notes.append("RAC environment: includes multi-instance overhead")
    if not inputs.archivelog:
        notes.append("NOARCHIVELOG mode: archive space not included")
    if not inputs.backup_count:
        notes.append("Backup size ESTIMATED (no RMAN history found)")
    notes.append(f"Database Size: {db} GB (for reference)")

    recommended = ora_round(total * 1.3)
    commands = [
        f"ALTER SYSTEM SET db_recovery_file_dest_size = {recommended}G SCOPE=BOTH;",
        f"ALTER SYSTEM SET db_recovery_file_dest = '{DEFAULT_FRA_PATH}' SCOPE=BOTH;",
    ]

    return FraEstimate(
        redo_gb=redo,
        archive_gb=archive,
        flashback_gb=flashback,
        backup_gb=backup,
        control_gb=CONTROL_FILES_GB,
        buffer_gb=buffer_gb,
        total_gb=round(total, 2),
        minimum_gb=ora_round(total),
        recommended_gb=recommended,
        conservative_gb=ora_round(total * 1.5),
        notes=notes,
        commands=commands,
    )


def _first(rows: List[Dict]) -> Dict:
    return rows[0] if rows else {}


def collect_fra_inputs(result: ReportResult) -> FraInputs:
    env = result.environment
    db = _first(result.rows("Database Size"))
    redo = _first(result.rows("Online Redo Logs"))
    archive = _first(result.rows("Archived Log Generation (30 Days)"))
    flashback = _first(result.rows("Flashback Database Status"))
    backups = _first(result.rows("RMAN Backup History (30 Days)"))

    backup_section = result.section("RMAN Backup History (30 Days)")
    backup_count = backups.get("backup_sets")
    if backup_count is None and backup_section is not None and backup_section.status == "empty":
        backup_count = 0

    return FraInputs(
        is_rac=env.is_rac,
        archivelog=env.archivelog,
        db_size_gb=db.get("total_datafiles_gb") or 0,
        redo_gb=redo.get("total_size_gb"),
        avg_daily_archive_gb=archive.get("avg_daily_gb"),
        flashback_on=(flashback.get("flashback_on") or "NO") == "YES",
        flashback_logs_gb=flashback.get("current_size_gb"),
        backup_count=backup_count,
        avg_daily_backup_gb=backups.get("avg_daily_backup_gb"),
    )


def _drop_when(key: str):
    """Treat a single aggregate row whose ``key`` is zero as no data."""
    def transform(rows):
        return [r for r in rows if r.get(key)]
    return transform


def _archive_reasons(env: Environment) -> str:
    if env.log_mode == "NOARCHIVELOG":
        return "No archived logs found in the last 30 days.\nReason: Database is in NOARCHIVELOG mode"
    return (
        "No archived logs found in the last 30 days.\n"
        "Possible reasons:\n"
        "- Database recently created/cloned\n"
        "- Archives deleted or moved\n"
        "- FRA not configured for archiving"
    )


class FraSizingReport(Report):
    name = "fra_sizing"
    title = "Oracle FRA Sizing Analysis"
    description = "Estimates Fast Recovery Area size from redo, archive, flashback and RMAN history."
    parameters: List[Parameter] = []
    required_views = [
        "V$DATABASE", "V$DATAFILE", "V$RECOVERY_FILE_DEST", "V$LOG", "GV$LOG", "V$ARCHIVED_LOG",
        "V$FLASHBACK_DATABASE_LOGFILE", "V$BACKUP_SET_DETAILS",
    ]

    def build_sections(self, params, env):
        env_label = f"RAC ({env.instance_count} nodes)" if env.is_rac else "Single Instance"
        return [
            Section("Database Information", DATABASE_INFO_SQL, lines=[f"Environment: {env_label}"]),
            Section("Database Size", DATABASE_SIZE_SQL),
            Section("Current FRA Configuration", FRA_CONFIG_SQL, empty_message=FRA_NOT_CONFIGURED),
            Section("Archivelog Mode Check", ARCHIVELOG_SQL,
                    lines=NOARCHIVELOG_STEPS if env.log_mode == "NOARCHIVELOG" else []),
            Section("Online Redo Logs", REDO_SUMMARY_RAC_SQL if env.is_rac else REDO_SUMMARY_SQL),
            Section("Redo Log Details", REDO_DETAILS_SQL),
            Section("Archived Log Generation (30 Days)", ARCHIVE_GENERATION_SQL,
                    transform=_drop_when("archives_found"), empty_message=_archive_reasons(env)),
            Section("Flashback Database Status", FLASHBACK_SQL),
            Section("RMAN Backup History (30 Days)", RMAN_BACKUPS_SQL,
                    transform=_drop_when("backup_sets"),
                    empty_message="No RMAN backups found in the last 30 days."),
        ]

    def summarize(self, result):
        estimate = estimate_fra(collect_fra_inputs(result))
        logger.info(f"📐 FRA estimate: {estimate.recommended_gb} GB recommended")
        return [
            Section("FRA Sizing Components", rows=estimate.components()),
            Section(
                "FRA Sizing Recommendations",
                rows=[
                    {"level": "Minimum Size", "size_gb": estimate.minimum_gb},
                    {"level": "Recommended Size", "size_gb": estimate.recommended_gb},
                    {"level": "Conservative Size", "size_gb": estimate.conservative_gb},
                ],
                lines=["Notes:"] + [f"- {n}" for n in estimate.notes]
                + ["", "Ready-to-use commands:"] + estimate.commands
                + ["", "Implementation steps:"] + IMPLEMENTATION_STEPS,
            ),
        ]
