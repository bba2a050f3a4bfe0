"""Tests for run report bookkeeping."""

from datetime import datetime, timedelta

import pytest

from subsetflow.core.models import (
    ConnectionProfile,
    ConsistencyToken,
    CopyResult,
    RestoreFailure,
    RunReport,
    RunState,
    TableRef,
)
from subsetflow.exceptions import ConstraintRestoreError, HookError, TableCopyError


def copied(table, rows):
    return CopyResult(TableRef("JADE", table), "SUCCESS", "insert", rows=rows)


def failed(table):
    return CopyResult(
        TableRef("JADE", table),
        "FAILURE",
        f'insert into "JADE"."{table}"',
        error_code="ORA-00001",
        error_message="unique constraint violated",
    )


class TestConnectionProfile:
    def test_dsn_or_host_and_service_required(self):
        with pytest.raises(ValueError):
            ConnectionProfile(user="jade", host="db1")

    def test_display_dsn(self):
        assert ConnectionProfile(user="u", dsn="db/ORCL").display_dsn == "db/ORCL"
        assert ConnectionProfile(user="u", host="db1", service_name="ORCL").display_dsn == "db1:1521/ORCL"


class TestTableRef:
    def test_of_normalizes_case(self):
        ref = TableRef.of(" jade ", "event")
        assert ref == TableRef("JADE", "EVENT")
        assert str(ref) == "JADE.EVENT"
        assert ref.qualified == '"JADE"."EVENT"'

    def test_qualified_doubles_embedded_quotes(self):
        assert TableRef('JA"DE', "EVENT").qualified == '"JA""DE"."EVENT"'


def test_token_compares_by_scn():
    assert ConsistencyToken(10) == ConsistencyToken(10, captured_at=datetime(2020, 1, 1))
    assert ConsistencyToken(10).qualifier == "as of scn 10"


class TestRunReport:
    def test_advance_tracks_last_completed(self):
        report = RunReport()
        report.advance(RunState.SNAPSHOT_CAPTURED)
        report.state = RunState.FAILED

        assert report.last_completed == RunState.SNAPSHOT_CAPTURED
        assert not report.succeeded

    def test_totals_and_failures(self):
        report = RunReport(copy_results=[copied("EVENT", 2), failed("BLOCK"), copied("CLIENT", 0)])
        report.advance(RunState.DONE)

        assert report.succeeded
        assert report.total_rows == 2
        assert [str(r.ref) for r in report.failed_tables] == ["JADE.BLOCK"]
        assert report.has_recoverable_failures

    def test_diagnostics_lists_tables_then_restores(self):
        report = RunReport(
            copy_results=[failed("BLOCK")],
            restore_failures=[RestoreFailure("constraint", "JADE.BLOCK.FK_BLOCK_EVENT", "ORA-02298", "parent keys not found")],
        )

        table_error, restore_error = report.diagnostics()

        assert isinstance(table_error, TableCopyError)
        assert table_error.table == "JADE.BLOCK"
        assert table_error.recoverable
        assert isinstance(restore_error, ConstraintRestoreError)
        assert restore_error.db_code == "ORA-02298"

    def test_to_dict(self):
        started = datetime(2024, 5, 1, 12, 0, 0)
        report = RunReport(
            token=ConsistencyToken(4711),
            copy_results=[copied("EVENT", 2)],
            started_at=started,
            finished_at=started + timedelta(seconds=90),
        )
        report.advance(RunState.DONE)

        assert report.to_dict() == {
            "state": "DONE",
            "last_completed": "DONE",
            "scn": 4711,
            "tables": [
                {"table": "JADE.EVENT", "status": "SUCCESS", "rows": 2, "error_code": None, "error_message": None}
            ],
            "suspended_constraints": 0,
            "suspended_triggers": 0,
            "restore_failures": [],
            "error": None,
            "duration_seconds": 90.0,
        }

    def test_to_dict_includes_fatal_error(self):
        report = RunReport()
        report.state = RunState.FAILED
        report.error = HookError("post-run", 1, "update x")

        data = report.to_dict()

        assert data["error"]["error_type"] == "HookError"
        assert data["error"]["message"] == "post-run hook #2 failed"
        assert data["scn"] is None
