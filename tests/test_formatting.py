from datetime import datetime
from decimal import Decimal

from diagnostics import get_report
from diagnostics.formatting import format_table, render_text, spool_filename, to_dict
from diagnostics.report import Environment, ReportResult, SectionResult, ERROR, OK


def sample_result():
    result = ReportResult(
        report="top_sql", title="Top SQL Performance Analysis", database="local_xe",
        parameters={"hours_back": 24}, warnings=["Hours to analyze '999' is above the maximum of 168; using 24"],
        environment=Environment(db_name="XE", version="21.3.0.0.0", log_mode="NOARCHIVELOG"),
        started_at=datetime(2024, 5, 1, 12, 0, 0),
    )
    result.sections = [
        SectionResult("Rows", OK, columns=["sql_id", "elapsed"],
                      rows=[{"sql_id": f"id{i}", "elapsed": Decimal("1.5")} for i in range(8)]),
        SectionResult("Broken", ERROR, message="ORA-00942: table or view does not exist - grant it"),
    ]
    return result


def test_render_text_header_and_sections():
    text = render_text(sample_result())
    assert "TOP SQL PERFORMANCE ANALYSIS" in text
    assert "Database     : XE (local_xe)" in text
    assert "Environment  : Single instance" in text
    assert "Generated    : 2024-05-01 12:00:00" in text
    assert "WARNING: Hours to analyze '999'" in text
    assert "--- Rows ---" in text
    assert "SQL ID" in text
    assert "ERROR: ORA-00942" in text
    assert text.rstrip().splitlines()[-2] == "End of Top SQL Performance Analysis"


def test_to_dict_presets():
    data = to_dict(sample_result(), "standard")
    assert data["environment"]["rac"] is False
    assert len(data["sections"][0]["rows"]) == 8
    assert data["sections"][0]["rows"][0]["elapsed"] == 1.5
    assert data["sections"][1]["status"] == "error"

    minimal = to_dict(sample_result(), "minimal")
    assert len(minimal["sections"][0]["rows"]) == 5
    assert minimal["sections"][0]["rows_omitted"] == 3


def test_compact_truncates_long_text():
    result = sample_result()
    result.sections = [SectionResult("Text", OK, columns=["sql_text"], rows=[{"sql_text": "x" * 500}])]
    row = to_dict(result, "compact")["sections"][0]["rows"][0]
    assert row["sql_text"] == "x" * 200 + "..."


def test_format_table_handles_missing_values():
    table = format_table([{"a": 1, "b": None}])
    assert "A" in table and "-" in table
    assert format_table([]) == ""


def test_spool_filename():
    when = datetime(2024, 1, 2, 3, 4, 5)
    assert spool_filename(get_report("health_check"), when) == "healthcheck_2024-01-02_03-04-05.txt"
    assert spool_filename(get_report("top_sql"), when) == "top_sql_2024-01-02_03-04-05.txt"
