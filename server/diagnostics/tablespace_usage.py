"""
Used, free and total space for permanent and temporary tablespaces.
"""

from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

ALL = 1
REGULAR = 2
SPECIFIC = 3
TEMP = 4

USAGE_SQL = """
SELECT * FROM (
    SELECT df.tablespace_name,
           'REGULAR' AS type,
           NVL(tu.used_mb, 0) AS used_mb,
           df.total_mb - NVL(tu.used_mb, 0) AS free_mb,
           df.total_mb,
           ROUND(100 * ((df.total_mb - NVL(tu.used_mb, 0)) / NULLIF(df.total_mb, 0))) AS pct_free
    FROM (SELECT tablespace_name, ROUND(SUM(bytes) / 1048576) AS total_mb
          FROM dba_data_files GROUP BY tablespace_name) df
    LEFT JOIN (SELECT tablespace_name, ROUND(SUM(bytes) / 1048576) AS used_mb
               FROM dba_segments GROUP BY tablespace_name) tu
      ON df.tablespace_name = tu.tablespace_name
    UNION ALL
    SELECT tf.tablespace_name,
           'TEMP' AS type,
           NVL(ts.used_mb, 0) AS used_mb,
           tf.total_mb - NVL(ts.used_mb, 0) AS free_mb,
           tf.total_mb,
           ROUND(100 * ((tf.total_mb - NVL(ts.used_mb, 0)) / NULLIF(tf.total_mb, 0))) AS pct_free
    FROM (SELECT tablespace_name, ROUND(SUM(bytes) / 1048576) AS total_mb
          FROM dba_temp_files GROUP BY tablespace_name) tf
    LEFT JOIN (SELECT tablespace_name, ROUND(SUM(bytes_used) / 1048576) AS used_mb
               FROM v$temp_space_header GROUP BY tablespace_name) ts
      ON tf.tablespace_name = ts.tablespace_name
)
{where}
ORDER BY type, tablespace_name
"""

FILTERS = {
    ALL: "",
    REGULAR: "WHERE type = 'REGULAR'",
    SPECIFIC: "WHERE UPPER(tablespace_name) = UPPER(:ts_name)",
    TEMP: "WHERE type = 'TEMP'",
}


def usage_sql(choice: int) -> str:
    return USAGE_SQL.format(where=FILTERS[choice])


def summary_line(choice: int, tablespace_name: str) -> str:
    if choice == REGULAR:
        return "SUMMARY: Regular tablespaces only"
    if choice == SPECIFIC:
        return f"SUMMARY: Specific tablespace - {tablespace_name.upper()}"
    if choice == TEMP:
        return "SUMMARY: TEMP tablespaces only"
    return "SUMMARY: All tablespaces displayed"


class TablespaceUsageReport(Report):
    name = "tablespace_usage"
    title = "Tablespace Usage Report"
    description = "Used, free and total MB with percent free, for all, regular, one or temp tablespaces."
    parameters = [
        Parameter("choice", "Tablespaces to show", ALL, kind="choice", choices={
            ALL: "All tablespaces (including TEMP)",
            REGULAR: "Regular tablespaces only (excluding TEMP)",
            SPECIFIC: "Specific tablespace",
            TEMP: "TEMP tablespaces only",
        }),
        Parameter("tablespace_name", "Tablespace name (if choice 3)", "DUMMY", upper=True),
    ]
    required_views = ["DBA_DATA_FILES", "DBA_SEGMENTS", "DBA_TEMP_FILES", "V$TEMP_SPACE_HEADER"]

    def build_sections(self, params, env):
        choice = params["choice"]
        binds = {"ts_name": params["tablespace_name"]} if choice == SPECIFIC else {}
        return [
            Section("Tablespace Usage", usage_sql(choice), binds,
                    lines=[summary_line(choice, params["tablespace_name"])],
                    empty_message="No tablespaces matched the selection."),
        ]
