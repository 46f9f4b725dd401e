"""Data access layer for collection cases"""

import enum
from datetime import datetime
from typing import Any, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from collections_desk.infrastructure.database.models import (
    ActionLog,
    CollectionCase,
    Customer,
    Loan,
    RuleDecision,
)
from collections_desk.domain.models import (
    ACTIVE_STATUSES,
    ActionOutcome,
    ActionType,
    CaseFilters,
    CaseStatus,
    Decision,
)
from collections_desk.utils.date_utils import utcnow


class InsertOutcome(enum.Enum):
    """Result of an insert guarded by a unique constraint"""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class CustomerRepository:
    """Repository for customers"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, customer_id: int) -> Optional[Customer]:
        return self.db.get(Customer, customer_id)

    def create(self, name: str, phone: str, email: str, country: str, risk_score: float) -> Customer:
        """
        Persist a customer and flush to surface uniqueness violations.

        Raises:
            IntegrityError: When the email is already registered
        """
        customer = Customer(name=name, phone=phone, email=email, country=country, risk_score=risk_score)
        self.db.add(customer)
        self.db.flush()
        return customer


class LoanRepository:
    """Repository for loans"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, loan_id: int) -> Optional[Loan]:
        return self.db.get(Loan, loan_id)

    def create(self, customer_id: int, principal, outstanding, due_date) -> Loan:
        loan = Loan(
            customer_id=customer_id,
            principal=principal,
            outstanding=outstanding,
            due_date=due_date,
        )
        self.db.add(loan)
        self.db.flush()
        return loan


class CaseRepository:
    """Repository for collection cases"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, case_id: int) -> Optional[CollectionCase]:
        """Fetch case with customer and loan loaded"""
        return (
            self.db.query(CollectionCase)
            .options(selectinload(CollectionCase.customer), selectinload(CollectionCase.loan))
            .filter(CollectionCase.id == case_id)
            .first()
        )

    def get_with_history(self, case_id: int) -> Optional[CollectionCase]:
        """Fetch case with customer, loan and its action logs"""
        return (
            self.db.query(CollectionCase)
            .options(
                selectinload(CollectionCase.customer),
                selectinload(CollectionCase.loan),
                selectinload(CollectionCase.action_logs),
            )
            .filter(CollectionCase.id == case_id)
            .first()
        )

    def find_active_for_loan(self, loan_id: int) -> Optional[CollectionCase]:
        return (
            self.db.query(CollectionCase)
            .filter(CollectionCase.loan_id == loan_id, CollectionCase.status.in_(ACTIVE_STATUSES))
            .first()
        )

    def create(self, customer_id: int, loan_id: int, dpd: int, decision: Decision) -> CollectionCase:
        """Insert an OPEN case carrying the initial decision"""
        case = CollectionCase(
            customer_id=customer_id,
            loan_id=loan_id,
            dpd=dpd,
            stage=decision.stage,
            assignment_group=decision.assignment_group,
            assigned_to=decision.assigned_to,
            status=CaseStatus.OPEN,
            version=1,
        )
        self.db.add(case)
        self.db.flush()  # Get ID without committing
        return case

    def compare_and_swap(self, case_id: int, expected_version: int, **values: Any) -> int:
        """
        Conditionally update a non-terminal case and bump its version by one.

        A single UPDATE ... WHERE id = :id AND version = :expected_version,
        so two writers holding the same version cannot both succeed.

        Returns:
            Number of affected rows (0 means another writer got there first)
        """
        values["version"] = CollectionCase.version + 1
        values["updated_at"] = utcnow()
        return (
            self.db.query(CollectionCase)
            .filter(
                CollectionCase.id == case_id,
                CollectionCase.version == expected_version,
                CollectionCase.status.in_(ACTIVE_STATUSES),
            )
            .update(values, synchronize_session="fetch")
        )

    def list_active(self) -> List[CollectionCase]:
        """All non-terminal cases with customer and loan, oldest first"""
        return (
            self.db.query(CollectionCase)
            .options(selectinload(CollectionCase.customer), selectinload(CollectionCase.loan))
            .filter(CollectionCase.status.in_(ACTIVE_STATUSES))
            .order_by(CollectionCase.id.asc())
            .all()
        )

    def list(self, filters: CaseFilters, offset: int, limit: int) -> Tuple[int, List[CollectionCase]]:
        """Filtered listing ordered by creation time then id, newest first"""
        query = self.db.query(CollectionCase)

        if filters.status is not None:
            query = query.filter(CollectionCase.status == filters.status)
        if filters.stage is not None:
            query = query.filter(CollectionCase.stage == filters.stage)
        if filters.dpd_min is not None:
            query = query.filter(CollectionCase.dpd >= filters.dpd_min)
        if filters.dpd_max is not None:
            query = query.filter(CollectionCase.dpd <= filters.dpd_max)
        if filters.assigned_to:
            pattern = "%" + _escape_like(filters.assigned_to) + "%"
            query = query.filter(CollectionCase.assigned_to.ilike(pattern, escape="\\"))

        total = query.count()
        rows = (
            query.options(selectinload(CollectionCase.customer), selectinload(CollectionCase.loan))
            .order_by(CollectionCase.created_at.desc(), CollectionCase.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return total, rows

    def count_active(self) -> int:
        return (
            self.db.query(func.count(CollectionCase.id))
            .filter(CollectionCase.status.in_(ACTIVE_STATUSES))
            .scalar()
        )

    def count_resolved_between(self, start: datetime, end: datetime) -> int:
        return (
            self.db.query(func.count(CollectionCase.id))
            .filter(
                CollectionCase.status == CaseStatus.RESOLVED,
                CollectionCase.resolved_at >= start,
                CollectionCase.resolved_at <= end,
            )
            .scalar()
        )

    def average_active_dpd(self) -> float:
        value = (
            self.db.query(func.avg(CollectionCase.dpd))
            .filter(CollectionCase.status.in_(ACTIVE_STATUSES))
            .scalar()
        )
        return float(value or 0)


class ActionLogRepository:
    """Repository for contact attempts"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        case_id: int,
        action_type: ActionType,
        outcome: ActionOutcome,
        notes: Optional[str],
    ) -> ActionLog:
        action = ActionLog(case_id=case_id, type=action_type, outcome=outcome, notes=notes)
        self.db.add(action)
        self.db.flush()
        return action


class RuleDecisionRepository:
    """Repository for the decision audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_key(self, decision_key: str) -> Optional[RuleDecision]:
        return self.db.query(RuleDecision).filter(RuleDecision.decision_key == decision_key).first()

    def insert(self, case_id: int, decision: Decision, decision_key: str) -> InsertOutcome:
        """
        Record a decision unless its key already exists.

        The insert runs inside a SAVEPOINT so a unique violation from a
        concurrent identical insert only rolls back this row, not the
        caller's transaction.
        """
        try:
            with self.db.begin_nested():
                self.db.add(
                    RuleDecision(
                        case_id=case_id,
                        matched_rules=list(decision.matched_rules),
                        reason=decision.reason,
                        decision_key=decision_key,
                    )
                )
                self.db.flush()
        except IntegrityError:
            return InsertOutcome.ALREADY_EXISTS
        return InsertOutcome.CREATED

    def recent_for_case(self, case_id: int, limit: int = 10) -> List[RuleDecision]:
        return (
            self.db.query(RuleDecision)
            .filter(RuleDecision.case_id == case_id)
            .order_by(RuleDecision.created_at.desc(), RuleDecision.id.desc())
            .limit(limit)
            .all()
        )

    def count_for_case(self, case_id: int) -> int:
        return self.db.query(func.count(RuleDecision.id)).filter(RuleDecision.case_id == case_id).scalar()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
