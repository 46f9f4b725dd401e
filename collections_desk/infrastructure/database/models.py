"""SQLAlchemy ORM models for the collections schema"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Text,
    JSON,
    Enum,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from collections_desk.domain.models import (
    ActionOutcome,
    ActionType,
    AssignmentGroup,
    CaseStage,
    CaseStatus,
    LoanStatus,
)
from collections_desk.utils.date_utils import utcnow

Base = declarative_base()


def _enum(enum_cls, name: str) -> Enum:
    # Persist enum values ("Tier1"), not member names ("TIER1")
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class Customer(Base):
    """Debtor; risk score is a read-only input to assignment decisions"""

    __tablename__ = "customer"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    phone = Column(String(32), nullable=False)
    email = Column(String(320), nullable=False, unique=True)
    country = Column(String(2), nullable=False)
    risk_score = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    loans = relationship("Loan", back_populates="customer")


class Loan(Base):
    """Loan whose due date drives days-past-due"""

    __tablename__ = "loan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customer.id", ondelete="CASCADE"), nullable=False, index=True)
    principal = Column(Numeric(14, 2), nullable=False)
    outstanding = Column(Numeric(14, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(_enum(LoanStatus, "loan_status"), nullable=False, default=LoanStatus.ACTIVE)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    customer = relationship("Customer", back_populates="loans")


class CollectionCase(Base):
    """Delinquency case; version guards every stage/assignment/status change"""

    __tablename__ = "collection_case"
    __table_args__ = (
        Index("ix_collection_case_loan_status", "loan_id", "status"),
        Index("ix_collection_case_created_id", "created_at", "id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customer.id", ondelete="CASCADE"), nullable=False, index=True)
    loan_id = Column(Integer, ForeignKey("loan.id", ondelete="CASCADE"), nullable=False)
    dpd = Column(Integer, nullable=False, default=0)
    stage = Column(_enum(CaseStage, "case_stage"), nullable=False, default=CaseStage.SOFT)
    status = Column(_enum(CaseStatus, "case_status"), nullable=False, default=CaseStatus.OPEN)
    assignment_group = Column(_enum(AssignmentGroup, "assignment_group"), nullable=True)
    assigned_to = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    customer = relationship("Customer")
    loan = relationship("Loan")
    action_logs = relationship(
        "ActionLog",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by=lambda: (ActionLog.created_at.desc(), ActionLog.id.desc()),
    )
    rule_decisions = relationship(
        "RuleDecision",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by=lambda: (RuleDecision.created_at.desc(), RuleDecision.id.desc()),
    )


class ActionLog(Base):
    """Append-only record of a contact attempt"""

    __tablename__ = "action_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("collection_case.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(_enum(ActionType, "action_type"), nullable=False)
    outcome = Column(_enum(ActionOutcome, "action_outcome"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    case = relationship("CollectionCase", back_populates="action_logs")


class RuleDecision(Base):
    """Append-only audit of an applied assignment decision"""

    __tablename__ = "rule_decision"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("collection_case.id", ondelete="CASCADE"), nullable=False, index=True)
    matched_rules = Column(JSON, nullable=False)
    reason = Column(Text, nullable=False)
    decision_key = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    case = relationship("CollectionCase", back_populates="rule_decisions")
