from diagnostics.fra_sizing import (
    FraInputs, FraSizingReport, collect_fra_inputs, estimate_fra, ora_round,
)
from diagnostics.report import Environment, ReportResult, SectionResult, EMPTY, OK


def test_ora_round_is_half_up():
    assert ora_round(394.5) == 395
    assert ora_round(2.5) == 3
    assert ora_round(1.005, 2) == 1.01


def test_single_instance_with_history():
    est = estimate_fra(FraInputs(
        is_rac=False, archivelog=True, db_size_gb=100, redo_gb=1.5,
        avg_daily_archive_gb=2.0, backup_count=10, avg_daily_backup_gb=5,
    ))
    assert est.archive_gb == 16.8
    assert est.backup_gb == 20
    assert est.buffer_gb == 10
    assert est.total_gb == 50.3
    assert (est.minimum_gb, est.recommended_gb, est.conservative_gb) == (50, 65, 75)
    assert "Backup size ESTIMATED (no RMAN history found)" not in est.notes
    assert est.commands[0] == "ALTER SYSTEM SET db_recovery_file_dest_size = 65G SCOPE=BOTH;"


def test_rac_without_history_uses_fallbacks():
    est = estimate_fra(FraInputs(
        is_rac=True, archivelog=True, db_size_gb=500,
        flashback_on=True, flashback_logs_gb=20, backup_count=0,
    ))
    assert est.redo_gb == 2
    assert est.archive_gb == 45.5
    assert est.flashback_gb == 30
    assert est.backup_gb == 300
    assert est.buffer_gb == 15
    assert est.total_gb == 394.5
    assert (est.minimum_gb, est.recommended_gb, est.conservative_gb) == (395, 513, 592)
    assert "RAC environment: includes multi-instance overhead" in est.notes
    assert "Backup size ESTIMATED (no RMAN history found)" in est.notes


def test_noarchivelog_excludes_archive_space():
    est = estimate_fra(FraInputs(archivelog=False, db_size_gb=10, backup_count=0))
    assert est.archive_gb == 0
    assert est.backup_gb == 20
    assert "NOARCHIVELOG mode: archive space not included" in est.notes


def test_small_database_archive_floor():
    est = estimate_fra(FraInputs(db_size_gb=50))
    assert est.archive_gb == 10


def test_collect_inputs_from_sections():
    result = ReportResult(report="fra_sizing", title="FRA",
                          environment=Environment(log_mode="ARCHIVELOG", instance_count=2))
    result.sections = [
        SectionResult("Database Size", OK, rows=[{"total_datafiles_gb": 200}]),
        SectionResult("Online Redo Logs", OK, rows=[{"total_size_gb": 4}]),
        SectionResult("Archived Log Generation (30 Days)", OK, rows=[{"avg_daily_gb": 3.5}]),
        SectionResult("Flashback Database Status", OK, rows=[{"flashback_on": "NO"}]),
        SectionResult("RMAN Backup History (30 Days)", EMPTY),
    ]
    inputs = collect_fra_inputs(result)
    assert inputs.is_rac
    assert inputs.db_size_gb == 200
    assert inputs.redo_gb == 4
    assert inputs.avg_daily_archive_gb == 3.5
    assert not inputs.flashback_on
    assert inputs.backup_count == 0


def test_unknown_log_mode_is_not_archivelog():
    result = ReportResult(report="fra_sizing", title="FRA", environment=Environment(log_mode="UNKNOWN"))
    inputs = collect_fra_inputs(result)
    assert not inputs.archivelog
    est = estimate_fra(inputs)
    assert est.archive_gb == 0
    assert "NOARCHIVELOG mode: archive space not included" in est.notes


def test_summary_sections_appended():
    result = ReportResult(report="fra_sizing", title="FRA", environment=Environment(log_mode="ARCHIVELOG"))
    titles = [s.title for s in FraSizingReport().summarize(result)]
    assert titles == ["FRA Sizing Components", "FRA Sizing Recommendations"]
