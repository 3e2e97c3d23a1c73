"""
Report building blocks: environment, sections, results and the Report base.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from diagnostics.parameters import Parameter


@dataclass
class Environment:
    """Facts about the connected database, detected once per run."""

    db_name: str = "UNKNOWN"
    version: str = ""
    instance_count: int = 1
    log_mode: str = "UNKNOWN"
    cluster_database: bool = False

    @property
    def is_rac(self) -> bool:
        return self.cluster_database or self.instance_count > 1

    @property
    def major_version(self) -> int:
        try:
            return int(self.version.split(".")[0])
        except (ValueError, IndexError):
            return 0

    @property
    def archivelog(self) -> bool:
        return self.log_mode == "ARCHIVELOG"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "db_name": self.db_name,
            "version": self.version,
            "instance_count": self.instance_count,
            "log_mode": self.log_mode,
            "rac": self.is_rac,
        }


def rac_only(params, env: Environment) -> bool:
    return env.is_rac


@dataclass
class Section:
    """
    One block of report output.

    A section either runs ``sql`` with ``binds`` or carries precomputed
    ``rows``/``lines``. ``when`` gates it on the resolved parameters and
    environment; ``transform`` post-processes fetched rows (derived columns). A section
    built with ``error`` is reported as failed without touching the database.
    """

    title: str
    sql: Optional[str] = None
    binds: Dict[str, Any] = field(default_factory=dict)
    when: Optional[Callable[[Dict[str, Any], Environment], bool]] = None
    skip_message: str = "Not applicable for this environment."
    empty_message: str = "No rows selected."
    transform: Optional[Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]]] = None
    rows: Optional[List[Dict[str, Any]]] = None
    lines: List[str] = field(default_factory=list)
    max_rows: Optional[int] = None
    error: Optional[str] = None


OK = "ok"
EMPTY = "empty"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class SectionResult:
    title: str
    status: str = OK
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    message: str = ""
    lines: List[str] = field(default_factory=list)


@dataclass
class ReportResult:
    report: str
    title: str
    database: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    environment: Environment = field(default_factory=Environment)
    sections: List[SectionResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def section(self, title: str) -> Optional[SectionResult]:
        for s in self.sections:
            if s.title == title:
                return s
        return None

    def rows(self, title: str) -> List[Dict[str, Any]]:
        s = self.section(title)
        return s.rows if s and s.status == OK else []

    @property
    def errors(self) -> List[SectionResult]:
        return [s for s in self.sections if s.status == ERROR]


class Report:
    """Base class for a diagnostic report."""

    name: str = ""
    title: str = ""
    description: str = ""
    parameters: List[Parameter] = []
    required_views: List[str] = []
    spool_prefix: Optional[str] = None

    def validate(self, params: Dict[str, Any]) -> List[str]:
        """Warnings about resolved values that the report corrects itself."""
        return []

    def build_sections(self, params: Dict[str, Any], env: Environment) -> List[Section]:
        raise NotImplementedError

    def summarize(self, result: ReportResult) -> List[Section]:
        """Sections derived in Python from already fetched sections."""
        return []

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "parameters": [p.describe() for p in self.parameters],
            "required_views": list(self.required_views),
        }
