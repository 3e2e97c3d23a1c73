import argparse
import io
import json
from unittest import mock

import oracledb
import pytest

from conftest import FakeConnection, SINGLE_INSTANCE
import cli
from diagnostics import get_report


def test_pair_parsing():
    assert cli._pair("days_back=3") == ("days_back", "3")
    assert cli._pair("event_filter=db file=x") == ("event_filter", "db file=x")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._pair("novalue")


def test_parser_collects_params():
    args = cli.build_arg_parser().parse_args(
        ["run", "awr_wait_events", "--db", "prod_rac", "-p", "filter_type=1", "-p", "days_back=3"])
    assert args.report == "awr_wait_events"
    assert dict(args.params) == {"filter_type": "1", "days_back": "3"}
    assert args.spool is None


def test_unknown_report_returns_error_code():
    args = cli.build_arg_parser().parse_args(["run", "nope", "--db", "local_xe"])
    assert cli.cmd_run(args, out=io.StringIO()) == 1


def test_connection_failure_returns_error_code():
    args = cli.build_arg_parser().parse_args(["run", "sga_usage", "--db", "local_xe"])
    with mock.patch.object(cli.oracle_connector, "connect",
                           side_effect=oracledb.DatabaseError("ORA-12541: no listener")):
        assert cli.cmd_run(args, out=io.StringIO()) == 1


class BrokenCursorConnection(FakeConnection):
    def cursor(self):
        raise oracledb.DatabaseError("ORA-01012: not logged on")


def test_connection_closed_when_cursor_cannot_open():
    conn = BrokenCursorConnection()
    args = cli.build_arg_parser().parse_args(["run", "sga_usage", "--db", "local_xe"])
    with mock.patch.object(cli.oracle_connector, "connect", return_value=conn):
        assert cli.cmd_run(args, out=io.StringIO()) == 1
    assert conn.closed


def test_run_writes_report_and_spool(tmp_path):
    conn = FakeConnection([
        ("v$sgastat", (["pool", "free_mb"], [("shared pool", 120.5), ("large pool", 30)])),
    ] + SINGLE_INSTANCE)
    spool = tmp_path / "out" / "sga.txt"
    args = cli.build_arg_parser().parse_args(
        ["run", "sga_usage", "--db", "local_xe", "--spool", str(spool)])
    out = io.StringIO()

    with mock.patch.object(cli.oracle_connector, "connect", return_value=conn):
        assert cli.cmd_run(args, out=out) == 0

    text = out.getvalue()
    assert "SGA Free Memory by Pool" in text
    assert "shared pool" in text
    assert spool.read_text(encoding="utf-8") == text
    assert conn.closed


def test_run_json_output():
    conn = FakeConnection(list(SINGLE_INSTANCE))
    args = cli.build_arg_parser().parse_args(["run", "temp_usage", "--db", "local_xe", "--format", "json"])
    out = io.StringIO()
    with mock.patch.object(cli.oracle_connector, "connect", return_value=conn):
        assert cli.cmd_run(args, out=out) == 0
    data = json.loads(out.getvalue())
    assert data["report"] == "temp_usage"
    assert data["environment"]["db_name"] == "ORCL"


def test_prompt_parameters_keeps_given_and_blank_defaults():
    answers = iter(["3", ""])
    values = cli.prompt_parameters(get_report("top_sql"), {"top_count": "5"}, ask=lambda _: next(answers))
    assert values == {"top_count": "5", "hours_back": "3"}


def test_list_command_names_every_report():
    out = io.StringIO()
    assert cli.cmd_list(out=out) == 0
    assert "health_check" in out.getvalue()
    assert "long_txn_minutes" in out.getvalue()
