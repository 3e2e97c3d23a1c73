"""
Free memory per SGA pool.

Only the 'free memory' entry of each pool counts as free.
"""

from typing import List

from diagnostics.parameters import Parameter
from diagnostics.report import Report, Section

SGA_FREE_SQL = """
SELECT
    f.pool,
    f.name,
    s.sgasize,
    ROUND(f.bytes / s.sgasize * 100, 2) AS pct_free
FROM (SELECT SUM(bytes) AS sgasize, pool FROM v$sgastat GROUP BY pool) s
JOIN v$sgastat f ON f.pool = s.pool
WHERE f.name = 'free memory'
ORDER BY f.pool
"""


class SgaUsageReport(Report):
    name = "sga_usage"
    title = "Oracle Database SGA Usage"
    description = "Free memory percentage for each SGA pool."
    parameters: List[Parameter] = []
    required_views = ["V$SGASTAT"]

    def build_sections(self, params, env):
        return [Section("SGA Free Memory by Pool", SGA_FREE_SQL)]
