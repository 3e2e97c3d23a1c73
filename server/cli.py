"""Run Oracle diagnostic reports from the command line.

Examples:
  oradiag list
  oradiag databases
  oradiag run awr_wait_events --db prod_rac -p filter_type=1 -p days_back=3
  oradiag run health_check --db local_xe --spool
"""

import argparse
import datetime as _dt
import json
import logging
import os
import sys
from typing import Callable, Dict, Iterable, Optional, Tuple

import oracledb

from config import config
from db_connector import oracle_connector
from diagnostics import REPORTS, ReportRunner, get_report
from diagnostics.formatting import render_text, spool_filename, to_dict
from diagnostics.report import Report

LOG = logging.getLogger(__name__)


def _pair(text: str) -> Tuple[str, str]:
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"expected name=value, got '{text}'")
    name, value = text.split("=", 1)
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"missing parameter name in '{text}'")
    return name, value


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oradiag", description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase logging verbosity (use -vv for debug).",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log errors.",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="json" if config.log_json else "text",
        help="Logging output format (default from settings.yaml).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List available reports and their parameters.")
    sub.add_parser("databases", help="Test connectivity of every configured database preset.")

    run = sub.add_parser("run", help="Run one report against a database preset.")
    run.add_argument("report", help=f"Report name ({', '.join(sorted(REPORTS))}).")
    run.add_argument("--db", required=True, help="Database preset from settings.yaml.")
    run.add_argument(
        "-p", "--param",
        dest="params",
        action="append",
        type=_pair,
        default=[],
        metavar="NAME=VALUE",
        help="Report parameter; repeat for several.",
    )
    run.add_argument(
        "--interactive", "-i",
        action="store_true",
        help="Prompt for every parameter not given with -p (blank keeps the default).",
    )
    run.add_argument(
        "--spool",
        nargs="?",
        const="",
        default=None,
        metavar="FILE",
        help="Also write the text report to FILE (default: <report>_<timestamp>.txt in spool_dir).",
    )
    run.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Console output format (default: text).",
    )
    return parser


class _JSONLogFormatter(logging.Formatter):
    """Format log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _dt.datetime.fromtimestamp(record.created, _dt.timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(verbosity: int, quiet: bool, log_format: str) -> None:
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO
    if quiet:
        level = logging.ERROR
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if log_format == "json":
        formatter: logging.Formatter = _JSONLogFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    # stdout carries the report itself
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def prompt_parameters(report: Report, given: Dict[str, str],
                      ask: Callable[[str], str] = input) -> Dict[str, str]:
    """Ask for each parameter not already given, showing its default."""
    values = dict(given)
    for param in report.parameters:
        if param.name in values:
            continue
        hint = ""
        if param.choices:
            hint = " [" + ", ".join(f"{k}={v}" for k, v in param.choices.items()) + "]"
        answer = ask(f"{param.label}{hint} (default {param.default}): ")
        if answer.strip():
            values[param.name] = answer
    return values


def cmd_list(out=None) -> int:
    out = out or sys.stdout
    for name in sorted(REPORTS):
        report = REPORTS[name]
        out.write(f"{name:<20} {report.title}\n")
        out.write(f"{'':<20} {report.description}\n")
        for p in report.parameters:
            out.write(f"{'':<22}- {p.name} (default {p.default!r}): {p.label}\n")
    return 0


def cmd_databases(out=None) -> int:
    out = out or sys.stdout
    if not config.database_presets:
        LOG.warning("⚠ No database presets configured in settings.yaml")
    for name, preset in config.database_presets.items():
        status = "accessible" if oracle_connector.test_connection(name) else "unreachable"
        out.write(f"{name:<20} {preset.get('dsn', ''):<45} {status}\n")
    return 0


def cmd_run(args, out=None, ask: Callable[[str], str] = input) -> int:
    out = out or sys.stdout
    try:
        report = get_report(args.report)
    except KeyError as e:
        LOG.error(f"❌ {e.args[0]}")
        return 1

    raw = dict(args.params)
    if args.interactive:
        raw = prompt_parameters(report, raw, ask)

    try:
        conn = oracle_connector.connect(args.db)
    except (oracledb.Error, KeyError) as e:
        LOG.error(f"❌ Cannot connect to '{args.db}': {e}")
        return 1

    try:
        runner = ReportRunner(conn, max_rows=config.max_rows)
        try:
            result = runner.run(report, raw, database=args.db, overrides=config.get_report_defaults(report.name))
        finally:
            runner.close()
    except oracledb.Error as e:
        LOG.error(f"❌ Report '{report.name}' failed on '{args.db}': {e}")
        return 1
    finally:
        conn.close()

    text = render_text(result)
    if args.format == "json":
        out.write(json.dumps(to_dict(result, "standard"), indent=2, default=str) + "\n")
    else:
        out.write(text)

    if args.spool is not None:
        path = args.spool or os.path.join(config.spool_dir, spool_filename(report))
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        LOG.info(f"📋 Report spooled to {path}")

    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.verbose, args.quiet, args.log_format)

    if args.command == "list":
        return cmd_list()
    if args.command == "databases":
        return cmd_databases()
    return cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())
