import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SERVER_DIR = PROJECT_ROOT / "server"
if str(SERVER_DIR) not in sys.path:
    sys.path.insert(0, str(SERVER_DIR))


class FakeCursor:
    """
    Cursor stand-in driven by a script of (sql fragment, outcome) pairs.

    The first fragment found in the executed statement (case-insensitive)
    decides the outcome: an exception instance is raised, a
    (columns, rows) tuple is returned. Unmatched statements return no rows.
    """

    def __init__(self, script=None):
        self.script = list(script or [])
        self.executed = []
        self.description = None
        self._rows = []
        self.closed = False

    def execute(self, sql, binds=None):
        self.executed.append((sql, dict(binds or {})))
        outcome = (["dummy"], [])
        for fragment, result in self.script:
            if fragment.lower() in sql.lower():
                outcome = result
                break
        if isinstance(outcome, Exception):
            raise outcome
        columns, rows = outcome
        self.description = [(c.upper(), None, None, None, None, None, None) for c in columns]
        self._rows = [tuple(r) for r in rows]

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, script=None):
        self.cursor_obj = FakeCursor(script)
        self.closed = False

    def cursor(self):
        return self.cursor_obj

    def close(self):
        self.closed = True


SINGLE_INSTANCE = [
    ("FROM v$database", (["name", "log_mode"], [("ORCL", "ARCHIVELOG")])),
    ("FROM v$instance", (["version"], [("19.0.0.0.0",)])),
    ("FROM gv$instance", (["count"], [(1,)])),
    ("cluster_database", (["value"], [("FALSE",)])),
]


@pytest.fixture
def fake_connection():
    def build(script=None, environment=SINGLE_INSTANCE):
        return FakeConnection(list(script or []) + list(environment))
    return build
