from datetime import datetime

from conftest import FakeConnection, SINGLE_INSTANCE
from diagnostics.awr_wait_events import (
    AwrWaitEventsReport, FILTER_DATE_RANGE, FILTER_LAST_DAYS, FILTER_SNAP_RANGE,
    GROUP_BY_EVENT, GROUP_BY_HOUR, GROUP_BY_SNAPSHOT, event_filter, snapshot_filter,
)
from diagnostics.formatting import to_dict
from diagnostics.parameters import resolve_parameters
from diagnostics.report import Environment
from diagnostics.runner import ReportRunner


def params(**raw):
    values, _ = resolve_parameters(AwrWaitEventsReport.parameters, raw)
    return values


def test_last_days_filter():
    clause, binds, warnings = snapshot_filter(params(filter_type=FILTER_LAST_DAYS, days_back=3))
    assert "SYSDATE - :days_back" in clause
    assert binds == {"days_back": 3}
    assert warnings == []


def test_snapshot_range_is_swapped_when_reversed():
    clause, binds, warnings = snapshot_filter(params(filter_type=FILTER_SNAP_RANGE, start_snap=200, end_snap=100))
    assert "BETWEEN :start_snap AND :end_snap" in clause
    assert binds == {"start_snap": 100, "end_snap": 200}
    assert warnings == ["Start snapshot 200 is after end snapshot 100; swapping them"]


def test_date_range_end_date_covers_whole_day():
    _, binds, warnings = snapshot_filter(params(filter_type=FILTER_DATE_RANGE,
                                                start_date="01-MAR-2024", end_date="02-MAR-2024"))
    assert binds == {"start_time": datetime(2024, 3, 1), "end_time": datetime(2024, 3, 2, 23, 59, 59)}
    assert warnings == []


def test_date_range_swapped():
    _, binds, warnings = snapshot_filter(params(filter_type=FILTER_DATE_RANGE,
                                                start_date="10-MAR-2024", end_date="01-MAR-2024"))
    assert binds["start_time"] == datetime(2024, 3, 1)
    assert binds["end_time"] == datetime(2024, 3, 10, 23, 59, 59)
    assert len(warnings) == 1


def test_instance_filter_appended():
    clause, binds, _ = snapshot_filter(params(filter_type=FILTER_LAST_DAYS, instance_filter=2))
    assert clause.endswith("AND s.instance_number = :instance_filter")
    assert binds["instance_filter"] == 2


def test_event_filter_modes():
    assert event_filter("ALL") == ("", {})
    assert event_filter("  ") == ("", {})

    clause, binds = event_filter("db file")
    assert "LIKE :event_pattern" in clause
    assert binds == {"event_exact": "DB FILE", "event_pattern": "%DB FILE%"}

    clause, binds = event_filter("io")
    assert "LIKE" not in clause
    assert binds == {"event_exact": "IO"}


def test_grouping_option_selects_one_branch():
    report = AwrWaitEventsReport()
    env = Environment()
    titles = {
        GROUP_BY_SNAPSHOT: "Wait Events by Snapshot",
        GROUP_BY_EVENT: "Wait Events Summary by Event",
        GROUP_BY_HOUR: "Wait Events Summary by Hour",
    }
    for option, title in titles.items():
        sections = report.build_sections(params(filter_type=FILTER_LAST_DAYS, group_option=option), env)
        assert [s.title for s in sections] == [title, "Analysis Summary", "Top 10 Events by Wait Time"]
        assert sections[0].sql.lstrip().startswith("WITH")


def test_invalid_group_option_defaults_to_event_summary():
    values, warnings = resolve_parameters(AwrWaitEventsReport.parameters, {"group_option": "7"})
    assert values["group_option"] == GROUP_BY_EVENT
    assert warnings


def test_swap_warning_shown_in_section_notes():
    sections = AwrWaitEventsReport().build_sections(
        params(filter_type=FILTER_SNAP_RANGE, start_snap=9, end_snap=3), Environment())
    assert "WARNING: Start snapshot 9 is after end snapshot 3; swapping them" in sections[0].lines


def test_swap_warning_reaches_report_warnings():
    conn = FakeConnection(SINGLE_INSTANCE)
    result = ReportRunner(conn).run(
        AwrWaitEventsReport(), {"filter_type": "3", "start_snap": "9", "end_snap": "3"})
    assert "Start snapshot 9 is after end snapshot 3; swapping them" in result.warnings
    assert "Start snapshot 9 is after end snapshot 3; swapping them" in to_dict(result)["warnings"]
