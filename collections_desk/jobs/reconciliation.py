"""Daily DPD recalculation and escalation job"""

import argparse
import logging
import time
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from collections_desk.config import settings
from collections_desk.domain.models import CaseSnapshot, ReconciliationReport
from collections_desk.infrastructure.database.models import CollectionCase
from collections_desk.infrastructure.database.repositories import CaseRepository
from collections_desk.infrastructure.database.session import SessionLocal
from collections_desk.infrastructure.observability.logging import log_reconciliation, setup_logging
from collections_desk.infrastructure.observability.metrics import (
    reconciliation_case_counter,
    reconciliation_duration_histogram,
)
from collections_desk.infrastructure.rules.catalog import RuleCatalog, get_rule_catalog
from collections_desk.services.case_service import CaseService


def snapshot_case(case: CollectionCase) -> CaseSnapshot:
    return CaseSnapshot(
        case_id=case.id,
        version=case.version,
        dpd=case.dpd,
        stage=case.stage,
        assignment_group=case.assignment_group,
        assigned_to=case.assigned_to,
        due_date=case.loan.due_date,
        risk_score=case.customer.risk_score,
    )


class ReconciliationJob:
    """
    Sweep every non-terminal case: recompute DPD, re-run the rules, persist drift.

    Each case is handled in its own session and transaction. A failure on one
    case is logged and counted, never raised; only a failure to list the
    cases fails the run.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        catalog: Optional[RuleCatalog] = None,
    ):
        self.session_factory = session_factory
        self.catalog = catalog or get_rule_catalog()

    def run(self, today: Optional[date] = None) -> ReconciliationReport:
        start_time = time.time()
        today = today or date.today()
        logging.info("Starting daily DPD recalculation and escalation job", extra={"step": "reconciliation_start"})

        snapshots = self._load_snapshots()
        logging.info(f"Found {len(snapshots)} active cases to process.", extra={"active_cases": len(snapshots)})

        report = ReconciliationReport()
        for snapshot in snapshots:
            report.examined += 1
            try:
                with self.session_factory() as db:
                    result = CaseService(db, self.catalog).reconcile_case(snapshot, today)
            except Exception as e:
                report.failed += 1
                reconciliation_case_counter.labels(result="failed").inc()
                logging.exception(
                    f"Failed to process case {snapshot.case_id}: {e}",
                    extra={"case_id": snapshot.case_id, "step": "reconciliation_case_failed"},
                )
                continue

            reconciliation_case_counter.labels(result=result).inc()
            if result == "updated":
                report.updated += 1
            elif result == "skipped":
                report.skipped += 1
                logging.warning(
                    f"Case {snapshot.case_id} changed during reconciliation; left for the next run",
                    extra={"case_id": snapshot.case_id, "step": "reconciliation_case_skipped"},
                )

        duration = time.time() - start_time
        reconciliation_duration_histogram.observe(duration)
        log_reconciliation(report.examined, report.updated, report.skipped, report.failed, duration * 1000)
        return report

    def _load_snapshots(self) -> List[CaseSnapshot]:
        with self.session_factory() as db:
            return [snapshot_case(case) for case in CaseRepository(db).list_active()]


def main(argv: Optional[List[str]] = None) -> int:
    """Run one reconciliation pass; the daily trigger is external (cron, CronJob)"""
    parser = argparse.ArgumentParser(description="Recompute DPD and reassign active collection cases")
    parser.add_argument("--today", type=date.fromisoformat, default=None, help="Evaluation date (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    setup_logging(settings.log_level)
    catalog = get_rule_catalog()
    catalog.load()

    report = ReconciliationJob(catalog=catalog).run(today=args.today)
    return 0 if report.failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
