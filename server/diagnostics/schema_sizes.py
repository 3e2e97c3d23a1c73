"""
Table and LOB segment sizes by schema.
"""

from typing import Dict, List, Tuple

from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

ALL_SCHEMAS = "ALL"

SYSTEM_SCHEMAS = (
    "SYS", "SYSTEM", "SYSAUX", "DBSNMP", "OUTLN", "PERFSTAT", "WMSYS", "XDB",
    "CTXSYS", "ANONYMOUS", "SYSMAN", "MGMT_VIEW", "OLAPSYS",
)

_SEGMENTS = """
    SELECT s.owner, s.segment_name,
           ROUND(SUM(s.bytes) / 1024 / 1024, 2) AS table_mb, 0 AS lob_mb
    FROM dba_segments s
    JOIN dba_tables t ON s.segment_name = t.table_name AND s.owner = t.owner
    WHERE s.segment_type LIKE 'TABLE%'
      AND {table_owner}
    GROUP BY s.owner, s.segment_name
    UNION ALL
    SELECT l.owner, l.table_name AS segment_name,
           0 AS table_mb, ROUND(SUM(s.bytes) / 1024 / 1024, 2) AS lob_mb
    FROM dba_segments s
    JOIN dba_lobs l ON s.segment_name = l.segment_name AND s.owner = l.owner
    WHERE s.segment_type LIKE 'LOB%'
      AND {lob_owner}
    GROUP BY l.owner, l.table_name
"""

TABLE_SIZES_SQL = """
SELECT
    z.owner,
    z.segment_name,
    y.partitioned,
    TO_CHAR(y.last_analyzed, 'MM/DD/YYYY') AS last_analyzed,
    y.num_rows,
    SUM(z.table_mb) AS table_mb,
    SUM(z.lob_mb) AS lob_mb,
    SUM(z.table_mb) + SUM(z.lob_mb) AS total_mb,
    ROUND((SUM(z.table_mb) + SUM(z.lob_mb)) / 1024, 2) AS total_gb
FROM ({segments}) z
JOIN dba_tables y ON z.owner = y.owner AND z.segment_name = y.table_name
GROUP BY z.owner, z.segment_name, y.partitioned, y.last_analyzed, y.num_rows
HAVING SUM(z.table_mb) + SUM(z.lob_mb) > 0
ORDER BY lob_mb DESC, total_mb, z.owner, z.segment_name
"""

SCHEMA_SUMMARY_SQL = """
SELECT
    owner,
    COUNT(*) AS total_tables,
    ROUND(SUM(table_mb), 2) AS total_table_mb,
    ROUND(SUM(lob_mb), 2) AS total_lob_mb,
    ROUND(SUM(table_mb) + SUM(lob_mb), 2) AS total_mb,
    ROUND((SUM(table_mb) + SUM(lob_mb)) / 1024, 2) AS total_gb
FROM ({segments})
GROUP BY owner
ORDER BY total_mb DESC
"""


def owner_filter(schema: str) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Owner predicates for the table and LOB halves, plus their binds."""
    if schema.upper() == ALL_SCHEMAS:
        excluded = ", ".join(f"'{s}'" for s in SYSTEM_SCHEMAS)
        return ({"table_owner": f"s.owner NOT IN ({excluded})",
                 "lob_owner": f"l.owner NOT IN ({excluded})"}, {})
    return ({"table_owner": "UPPER(s.owner) = UPPER(:schema)",
             "lob_owner": "UPPER(l.owner) = UPPER(:schema)"}, {"schema": schema})


def add_grand_total(rows: List[Dict]) -> List[Dict]:
    if not rows:
        return rows
    total = {key: None for key in rows[0]}
    total["owner"] = "GRAND TOTAL:"
    for key in ("table_mb", "lob_mb", "total_mb"):
        total[key] = round(sum(float(r.get(key) or 0) for r in rows), 2)
    return rows + [total]


def _all_schemas(params, env) -> bool:
    return params["schema"].upper() == ALL_SCHEMAS


class SchemaSizesReport(Report):
    name = "schema_sizes"
    title = "Object Size Analysis Report by Schema"
    description = "Table plus LOB segment sizes per table, with a per-schema summary for ALL."
    parameters = [
        Parameter("schema", "Schema (or ALL for all non-SYS schemas)", ALL_SCHEMAS, upper=True),
    ]
    required_views = ["DBA_SEGMENTS", "DBA_TABLES", "DBA_LOBS"]

    def build_sections(self, params, env):
        predicates, binds = owner_filter(params["schema"])
        segments = _SEGMENTS.format(**predicates)
        return [
            Section(f"Table and LOB Sizes ({params['schema']})", TABLE_SIZES_SQL.format(segments=segments),
                    binds, transform=add_grand_total,
                    empty_message=f"No table or LOB segments found for {params['schema']}."),
            Section("Summary by Schema", SCHEMA_SUMMARY_SQL.format(segments=segments), binds,
                    when=_all_schemas, skip_message="Summary by schema is shown only for ALL."),
        ]
