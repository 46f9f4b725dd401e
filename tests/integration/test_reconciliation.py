"""Integration tests for the daily reconciliation job"""

import pytest
from datetime import date, timedelta
from unittest.mock import MagicMock, patch
from collections_desk.domain.models import (
    ActionOutcome,
    ActionType,
    AssignmentGroup,
    CaseStage,
    CaseStatus,
    ReconciliationReport,
)
from collections_desk.infrastructure.database.repositories import CaseRepository, RuleDecisionRepository
from collections_desk.jobs.reconciliation import ReconciliationJob, main
from collections_desk.services.case_service import CaseService
from conftest import TODAY, TestingSessionLocal


@pytest.fixture
def job(db, catalog) -> ReconciliationJob:
    return ReconciliationJob(session_factory=TestingSessionLocal, catalog=catalog)


def test_escalates_cases_as_time_passes(job, service, make_loan, db):
    loan = make_loan(days_past_due=12, risk_score=45)
    case_id = service.create_case(loan.customer_id, loan.id).case.id

    db.commit()  # end the test session's read transaction so the job can write
    report = job.run(today=TODAY + timedelta(days=20))

    assert report == ReconciliationReport(examined=1, updated=1, skipped=0, failed=0)
    db.expire_all()
    case = CaseRepository(db).get(case_id)
    assert case.dpd == 32
    assert case.stage == CaseStage.LEGAL
    assert case.assignment_group == AssignmentGroup.LEGAL
    assert case.assigned_to == "LegalDesk"
    assert case.version == 2
    assert case.status == CaseStatus.OPEN
    # Drift updates leave the decision audit trail untouched
    assert RuleDecisionRepository(db).count_for_case(case_id) == 1


def test_dpd_only_drift_is_persisted(job, service, make_loan, db):
    loan = make_loan(days_past_due=10)
    case_id = service.create_case(loan.customer_id, loan.id).case.id

    db.commit()  # end the test session's read transaction so the job can write
    report = job.run(today=TODAY + timedelta(days=1))

    assert report.updated == 1
    db.expire_all()
    case = CaseRepository(db).get(case_id)
    assert case.dpd == 11
    assert case.stage == CaseStage.HARD
    assert case.assigned_to == "Tier2Queue"


def test_second_run_same_day_changes_nothing(job, service, make_loan, db):
    loan = make_loan(days_past_due=5)
    case_id = service.create_case(loan.customer_id, loan.id).case.id
    run_day = TODAY + timedelta(days=30)

    db.commit()  # end the test session's read transaction so the job can write
    job.run(today=run_day)
    second = job.run(today=run_day)

    assert second == ReconciliationReport(examined=1, updated=0, skipped=0, failed=0)
    db.expire_all()
    assert CaseRepository(db).get(case_id).version == 2


def test_terminal_cases_are_not_visited(job, service, make_loan):
    loan = make_loan()
    case_id = service.create_case(loan.customer_id, loan.id).case.id
    service.add_action(case_id, ActionType.CALL, ActionOutcome.PAID)

    report = job.run(today=TODAY + timedelta(days=60))

    assert report.examined == 0


def test_case_changed_after_snapshot_is_skipped(job, service, make_loan, db):
    """An interactive assignment wins over the job's stale snapshot"""
    loan = make_loan(days_past_due=12, risk_score=45)
    case_id = service.create_case(loan.customer_id, loan.id).case.id
    stale = job._load_snapshots()

    case = CaseRepository(db).get(case_id)
    case.customer.risk_score = 92
    db.commit()
    service.assign(case_id)

    with patch.object(ReconciliationJob, "_load_snapshots", return_value=stale):
        report = job.run(today=TODAY + timedelta(days=20))

    assert report == ReconciliationReport(examined=1, updated=0, skipped=1, failed=0)
    db.expire_all()
    case = CaseRepository(db).get(case_id)
    assert case.version == 2
    assert case.dpd == 12
    assert case.assigned_to == "SeniorAgent"


def test_failure_on_one_case_does_not_stop_the_run(job, service, make_loan):
    for _ in range(2):
        loan = make_loan()
        service.create_case(loan.customer_id, loan.id)

    with patch.object(CaseService, "reconcile_case", side_effect=[RuntimeError("deadlock detected"), "updated"]):
        report = job.run(today=TODAY)

    assert report == ReconciliationReport(examined=2, updated=1, skipped=0, failed=1)


def test_listing_failure_fails_the_run(job):
    with patch.object(CaseRepository, "list_active", side_effect=RuntimeError("database unavailable")):
        with pytest.raises(RuntimeError):
            job.run(today=TODAY)


@patch("collections_desk.jobs.reconciliation.ReconciliationJob")
@patch("collections_desk.jobs.reconciliation.get_rule_catalog")
def test_cli_runs_one_pass(mock_get_catalog: MagicMock, mock_job_cls: MagicMock):
    mock_job_cls.return_value.run.return_value = ReconciliationReport(examined=3, updated=1)

    exit_code = main(["--today", "2026-03-15"])

    assert exit_code == 0
    mock_get_catalog.return_value.load.assert_called_once()
    mock_job_cls.return_value.run.assert_called_once_with(today=date(2026, 3, 15))


@patch("collections_desk.jobs.reconciliation.ReconciliationJob")
@patch("collections_desk.jobs.reconciliation.get_rule_catalog")
def test_cli_exit_code_reports_failed_cases(mock_get_catalog: MagicMock, mock_job_cls: MagicMock):
    mock_job_cls.return_value.run.return_value = ReconciliationReport(examined=3, failed=1)

    assert main([]) == 1
