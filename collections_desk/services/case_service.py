"""Case workflow: creation, action logging, assignment runs and reconciliation"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from collections_desk.config import settings
from collections_desk.domain.exceptions import (
    ConcurrentModificationError,
    DuplicateActiveCaseError,
    DuplicateCustomerError,
    NotFoundError,
    TerminalCaseError,
    ValidationError,
    VersionMismatchError,
)
from collections_desk.domain.idempotency import build_decision_key
from collections_desk.domain.models import (
    ActionOutcome,
    ActionType,
    AssignmentResult,
    CaseFilters,
    CaseSnapshot,
    CaseStage,
    CaseStatus,
    DashboardMetrics,
    Decision,
    NewCustomer,
    NewLoan,
    Page,
)
from collections_desk.infrastructure.database.models import ActionLog, CollectionCase, Customer, Loan, RuleDecision
from collections_desk.infrastructure.database.repositories import (
    ActionLogRepository,
    CaseRepository,
    CustomerRepository,
    InsertOutcome,
    LoanRepository,
    RuleDecisionRepository,
)
from collections_desk.infrastructure.database.session import transaction
from collections_desk.infrastructure.observability.logging import log_assignment
from collections_desk.infrastructure.observability.metrics import (
    case_created_counter,
    record_assignment,
    record_decision_audit,
)
from collections_desk.infrastructure.rules.catalog import RuleCatalog
from collections_desk.utils.date_utils import calculate_dpd, day_bounds, utcnow

# Initial stage every new case is evaluated from
INITIAL_STAGE = CaseStage.SOFT


@dataclass
class CaseDetails:
    """Case with relations plus its most recent audit entries"""

    case: CollectionCase
    rule_decisions: List[RuleDecision]


class CaseService:
    """
    Orchestrates case state against the store.

    Every public operation runs in its own transaction and raises typed
    domain errors; the rule engine is taken from the catalog per call so a
    reload is picked up by the next operation.
    """

    def __init__(self, db: Session, catalog: RuleCatalog, today: Callable[[], date] = date.today):
        self.db = db
        self.catalog = catalog
        self.today = today
        self.customers = CustomerRepository(db)
        self.loans = LoanRepository(db)
        self.cases = CaseRepository(db)
        self.actions = ActionLogRepository(db)
        self.decisions = RuleDecisionRepository(db)

    # Creation

    def create_case(self, customer_id: int, loan_id: int) -> CaseDetails:
        """Open a case for an existing customer/loan pair and record the initial decision"""
        _require_id(customer_id, "customer")
        _require_id(loan_id, "loan")

        with transaction(self.db):
            customer = self.customers.get(customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} does not exist.")

            loan = self.loans.get(loan_id)
            if loan is None:
                raise NotFoundError(f"Loan {loan_id} does not exist.")

            if loan.customer_id != customer.id:
                raise ValidationError("The selected loan does not belong to the selected customer.")

            case_id = self._open_case(customer, loan)

        return self.get_case(case_id)

    def create_full_case(self, new_customer: NewCustomer, new_loan: NewLoan) -> CaseDetails:
        """Create customer, loan and case in one transaction"""
        with transaction(self.db):
            try:
                customer = self.customers.create(
                    name=new_customer.name,
                    phone=new_customer.phone,
                    email=new_customer.email,
                    country=new_customer.country,
                    risk_score=new_customer.risk_score,
                )
            except IntegrityError as e:
                raise DuplicateCustomerError(f"Customer with email {new_customer.email} already exists.") from e

            loan = self.loans.create(
                customer_id=customer.id,
                principal=new_loan.principal,
                outstanding=new_loan.outstanding,
                due_date=new_loan.due_date,
            )
            case_id = self._open_case(customer, loan)

        return self.get_case(case_id)

    def _open_case(self, customer: Customer, loan: Loan) -> int:
        if self.cases.find_active_for_loan(loan.id) is not None:
            raise DuplicateActiveCaseError(f"An active case already exists for loan {loan.id}.")

        dpd = calculate_dpd(loan.due_date, self.today())
        decision = self.catalog.engine.evaluate(dpd, customer.risk_score, INITIAL_STAGE)

        case = self.cases.create(customer_id=customer.id, loan_id=loan.id, dpd=dpd, decision=decision)
        decision_key = build_decision_key(case.id, dpd, customer.risk_score, decision)
        self._record_decision(case.id, decision, decision_key)

        case_created_counter.labels(stage=decision.stage.value).inc()
        logging.info(
            "Case created",
            extra={
                "case_id": case.id,
                "loan_id": loan.id,
                "step": "case_created",
                "dpd": dpd,
                "stage": decision.stage.value,
                "assigned_to": decision.assigned_to,
            },
        )
        return case.id

    # Queries

    def get_case(self, case_id: int) -> CaseDetails:
        _require_id(case_id, "case")

        case = self.cases.get_with_history(case_id)
        if case is None:
            raise NotFoundError(f"Case {case_id} not found.")

        decisions = self.decisions.recent_for_case(case_id, limit=settings.recent_decisions_limit)
        return CaseDetails(case=case, rule_decisions=decisions)

    def list_cases(
        self,
        filters: Optional[CaseFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[CollectionCase]:
        """
        Filtered case listing with stable pagination.

        Ordered by creation time then id, both descending, so walking every
        page of a fixed filter returns each case exactly once.
        """
        filters = filters or CaseFilters()
        if page_size is None:
            page_size = settings.default_page_size

        if page < 1:
            raise ValidationError("page must be at least 1.")
        if page_size < 1 or page_size > settings.max_page_size:
            raise ValidationError(f"pageSize must be between 1 and {settings.max_page_size}.")
        for name, bound in (("dpdMin", filters.dpd_min), ("dpdMax", filters.dpd_max)):
            if bound is not None and bound < 0:
                raise ValidationError(f"{name} cannot be negative.")
        if filters.dpd_min is not None and filters.dpd_max is not None and filters.dpd_min > filters.dpd_max:
            raise ValidationError("dpdMin cannot be greater than dpdMax.")

        total, rows = self.cases.list(filters, offset=(page - 1) * page_size, limit=page_size)
        return Page(
            items=rows,
            page=page,
            page_size=page_size,
            total=total,
            total_pages=max(1, math.ceil(total / page_size)),
        )

    def dashboard(self) -> DashboardMetrics:
        start, end = day_bounds(self.today())
        return DashboardMetrics(
            open_cases_count=self.cases.count_active(),
            resolved_today_count=self.cases.count_resolved_between(start, end),
            avg_open_dpd=round(self.cases.average_active_dpd(), 2),
        )

    # Mutations

    def add_action(
        self,
        case_id: int,
        action_type: ActionType,
        outcome: ActionOutcome,
        notes: Optional[str] = None,
    ) -> ActionLog:
        """
        Append a contact attempt to a non-terminal case.

        A PAID outcome resolves the case in the same transaction; this is the
        only path that resolves a case.
        """
        _require_id(case_id, "case")

        with transaction(self.db):
            case = self.cases.get(case_id)
            if case is None:
                raise NotFoundError(f"Case {case_id} not found.")

            if case.status.is_terminal:
                raise TerminalCaseError("Cannot add actions to a resolved or closed case.")

            cleaned = notes.strip() if notes else None
            action = self.actions.create(case_id, action_type, outcome, cleaned or None)

            if outcome == ActionOutcome.PAID:
                affected = self.cases.compare_and_swap(
                    case_id,
                    case.version,
                    status=CaseStatus.RESOLVED,
                    resolved_at=utcnow(),
                )
                if affected == 0:
                    raise ConcurrentModificationError("Case was updated concurrently. Please refresh and retry.")
                logging.info("Case resolved", extra={"case_id": case_id, "step": "case_resolved"})

        return action

    def assign(self, case_id: int, expected_version: Optional[int] = None) -> AssignmentResult:
        """
        Run the rule engine for a case and apply the result.

        Flow:
        1. Load case + customer, reject missing or terminal cases
        2. Reject a stale expected_version before doing any work
        3. Evaluate rules and record the decision once per decision key
        4. Skip the write when stage/group/assignee are unchanged
        5. Otherwise compare-and-swap on the version read in step 1;
           OPEN cases move to IN_PROGRESS
        """
        start_time = time.time()
        _require_id(case_id, "case")
        if expected_version is not None and expected_version < 1:
            raise ValidationError("expectedVersion must be at least 1.")

        with transaction(self.db):
            case = self.cases.get(case_id)
            if case is None:
                raise NotFoundError(f"Case {case_id} not found.")

            if case.status.is_terminal:
                raise TerminalCaseError("Cannot assign a resolved or closed case.")

            read_version = case.version
            if expected_version is not None and expected_version != read_version:
                record_assignment("conflict")
                raise VersionMismatchError(expected_version, read_version)

            risk_score = case.customer.risk_score
            decision = self.catalog.engine.evaluate(case.dpd, risk_score, case.stage)
            decision_key = build_decision_key(case.id, case.dpd, risk_score, decision)

            if self.decisions.get_by_key(decision_key) is None:
                self._record_decision(case.id, decision, decision_key)

            changed = _assignment_differs(case.stage, case.assignment_group, case.assigned_to, decision)
            version = read_version

            if changed:
                values = {
                    "stage": decision.stage,
                    "assignment_group": decision.assignment_group,
                    "assigned_to": decision.assigned_to,
                }
                # First assignment activity marks the case as being worked
                if case.status == CaseStatus.OPEN:
                    values["status"] = CaseStatus.IN_PROGRESS

                affected = self.cases.compare_and_swap(case.id, read_version, **values)
                if affected == 0:
                    record_assignment("conflict")
                    raise ConcurrentModificationError("Case was updated concurrently. Please refresh and retry.")
                version = read_version + 1

        record_assignment("updated" if changed else "unchanged")
        log_assignment(case_id, version, changed, list(decision.matched_rules), (time.time() - start_time) * 1000)

        return AssignmentResult(
            case_id=case_id,
            stage=decision.stage,
            assigned_to=decision.assigned_to,
            version=version,
            matched_rules=list(decision.matched_rules),
            reason=decision.reason,
            decision_key=decision_key,
            changed=changed,
        )

    def reconcile_case(self, snapshot: CaseSnapshot, today: date) -> str:
        """
        Recompute DPD and the decision for one case read by the reconciliation job.

        Returns:
            "updated", "unchanged", or "skipped" when another writer changed
            the case after the snapshot was taken
        """
        with transaction(self.db):
            dpd = calculate_dpd(snapshot.due_date, today)
            decision = self.catalog.engine.evaluate(dpd, snapshot.risk_score, snapshot.stage)

            if dpd == snapshot.dpd and not _assignment_differs(
                snapshot.stage, snapshot.assignment_group, snapshot.assigned_to, decision
            ):
                return "unchanged"

            affected = self.cases.compare_and_swap(
                snapshot.case_id,
                snapshot.version,
                dpd=dpd,
                stage=decision.stage,
                assignment_group=decision.assignment_group,
                assigned_to=decision.assigned_to,
            )
            return "updated" if affected else "skipped"

    def _record_decision(self, case_id: int, decision: Decision, decision_key: str) -> None:
        outcome = self.decisions.insert(case_id, decision, decision_key)
        record_decision_audit(outcome is InsertOutcome.CREATED)
        if outcome is InsertOutcome.ALREADY_EXISTS:
            logging.info(
                "Decision already recorded",
                extra={"case_id": case_id, "step": "decision_duplicate", "decision_key": decision_key},
            )


def _assignment_differs(stage, assignment_group, assigned_to, decision: Decision) -> bool:
    return (
        stage != decision.stage
        or assignment_group != decision.assignment_group
        or assigned_to != decision.assigned_to
    )


def _require_id(value: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"Invalid {name} id: {value!r}")
