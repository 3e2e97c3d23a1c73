"""
Report runner.

Runs a report's sections one at a time on a single read-only session. A
failing section is recorded with an advisory and the run moves on to the
next one; nothing a section does can abort the whole report.
"""

import re
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import oracledb

from diagnostics.parameters import resolve_parameters
from diagnostics.report import (
    Environment, Report, ReportResult, Section, SectionResult,
    OK, EMPTY, SKIPPED, ERROR,
)

logger = logging.getLogger(__name__)

READ_ONLY_SQL = re.compile(r"^\s*(SELECT|WITH)\b", re.IGNORECASE)
BIND_NAME = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")
ORA_CODE = re.compile(r"(ORA-\d{5}|DPY-\d{4})")

ERROR_ADVICE = {
    "ORA-00942": "View not visible to this user. Grant SELECT_CATALOG_ROLE or SELECT ANY DICTIONARY.",
    "ORA-01031": "Insufficient privileges for this section.",
    "ORA-00904": "Column not available in this Oracle version.",
    "ORA-13516": "AWR operation failed. Check that AWR snapshots are being taken.",
    "ORA-01008": "Missing bind value for this section.",
}


def advice_for_error(error: Exception, sql: str = "") -> str:
    """Turn a database error into a one-line hint for the operator."""
    m = ORA_CODE.search(str(error))
    code = m.group(1) if m else None
    if code in ERROR_ADVICE:
        hint = ERROR_ADVICE[code]
    else:
        hint = "Section could not be produced; continuing with the next one."
    if "dba_hist" in (sql or "").lower():
        hint += " AWR/ASH views require the Diagnostics Pack licence."
    return hint


def used_binds(sql: str, binds: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the bind values whose placeholder appears in the statement."""
    names = {n.lower() for n in BIND_NAME.findall(sql)}
    return {k: v for k, v in (binds or {}).items() if k.lower() in names}


class ReportRunner:
    """Executes reports against an open oracledb connection."""

    def __init__(self, connection, max_rows: Optional[int] = None):
        self.conn = connection
        self.cursor = self.conn.cursor()
        self.max_rows = max_rows

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------
    def _probe(self, sql: str):
        try:
            self.cursor.execute(sql)
            return self.cursor.fetchone()
        except oracledb.DatabaseError as e:
            logger.warning(f"⚠ Environment probe failed for '{sql}': {e}")
            return None

    def detect_environment(self) -> Environment:
        env = Environment()

        row = self._probe("SELECT name, log_mode FROM v$database")
        if row:
            env.db_name, env.log_mode = row[0], row[1]

        row = self._probe("SELECT version FROM v$instance")
        if row:
            env.version = row[0] or ""

        row = self._probe("SELECT COUNT(*) FROM gv$instance")
        if row and row[0]:
            env.instance_count = int(row[0])

        row = self._probe("SELECT value FROM v$parameter WHERE name = 'cluster_database'")
        if row:
            env.cluster_database = str(row[0]).upper() == "TRUE"

        logger.info(
            f"🔎 Environment: {env.db_name} {env.version} "
            f"{'RAC x' + str(env.instance_count) if env.is_rac else 'single instance'}, {env.log_mode}"
        )
        return env

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def run(
        self,
        report: Report,
        raw_params: Optional[Dict[str, Any]] = None,
        database: str = "",
        overrides: Optional[Dict[str, Any]] = None,
        environment: Optional[Environment] = None,
    ) -> ReportResult:
        logger.info(f"📋 Running report '{report.name}' on {database or 'current connection'}")

        values, warnings = resolve_parameters(report.parameters, raw_params, overrides)
        for msg in report.validate(values):
            logger.warning(f"⚠ {msg}")
            warnings.append(msg)
        result = ReportResult(
            report=report.name,
            title=report.title,
            database=database,
            parameters=values,
            warnings=warnings,
        )
        result.environment = environment or self.detect_environment()

        for section in report.build_sections(values, result.environment):
            result.sections.append(self.run_section(section, values, result.environment))

        for section in report.summarize(result):
            result.sections.append(self.run_section(section, values, result.environment))

        result.finished_at = datetime.now()
        logger.info(
            f"✅ Report '{report.name}' finished: {len(result.sections)} sections, "
            f"{len(result.errors)} with errors"
        )
        return result

    def run_section(self, section: Section, params: Dict[str, Any], env: Environment) -> SectionResult:
        if section.when is not None and not section.when(params, env):
            logger.info(f"   ⏭ Skipping section '{section.title}'")
            return SectionResult(section.title, SKIPPED, message=section.skip_message, lines=list(section.lines))

        if section.error:
            logger.warning(f"⚠ Section '{section.title}': {section.error}")
            return SectionResult(section.title, ERROR, message=section.error, lines=list(section.lines))

        if section.sql is None:
            rows = list(section.rows or [])
            status = OK if rows or section.lines else EMPTY
            return SectionResult(
                section.title,
                status,
                columns=list(rows[0].keys()) if rows else [],
                rows=rows,
                message="" if status == OK else section.empty_message,
                lines=list(section.lines),
            )

        if not READ_ONLY_SQL.match(section.sql):
            logger.error(f"❌ Refusing non-query statement in section '{section.title}'")
            return SectionResult(section.title, ERROR, message="Only SELECT statements are executed.")

        try:
            self.cursor.execute(section.sql, used_binds(section.sql, section.binds))
            columns = [d[0].lower() for d in self.cursor.description]
            rows = [dict(zip(columns, r)) for r in self.cursor.fetchall()]
        except oracledb.DatabaseError as e:
            logger.warning(f"⚠ Section '{section.title}' failed: {e}")
            return SectionResult(
                section.title,
                ERROR,
                message=f"{str(e).splitlines()[0]} - {advice_for_error(e, section.sql)}",
                lines=list(section.lines),
            )

        if section.transform is not None:
            rows = section.transform(rows)
            if rows:
                columns = list(rows[0].keys())

        if not rows:
            return SectionResult(section.title, EMPTY, columns=columns, message=section.empty_message,
                                 lines=list(section.lines))

        message = ""
        limit = section.max_rows or self.max_rows
        if limit and len(rows) > limit:
            message = f"Showing first {limit} of {len(rows)} rows."
            rows = rows[:limit]

        return SectionResult(section.title, OK, columns=columns, rows=rows, message=message,
                             lines=list(section.lines))

    def close(self):
        try:
            self.cursor.close()
        except oracledb.Error as e:
            logger.debug(f"Cursor close failed: {e}")
