"""Pytest fixtures for testing"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from collections_desk.api.dependencies import get_case_service
from collections_desk.api.main import create_app
from collections_desk.domain.models import (
    AssignmentGroup,
    AssignmentRule,
    CaseStage,
    RuleActions,
    RuleConditions,
)
from collections_desk.infrastructure.database.models import Base, Customer, Loan
from collections_desk.infrastructure.database.session import create_db_engine, get_db
from collections_desk.infrastructure.rules.catalog import RuleCatalog, get_rule_catalog
from collections_desk.services.case_service import CaseService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_db_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TODAY = date(2026, 3, 15)


def standard_rules() -> list[AssignmentRule]:
    """Same rule set as rules/default-rules.json"""
    return [
        AssignmentRule(
            code="DPD_1_7",
            priority=10,
            conditions=RuleConditions(dpd_min=1, dpd_max=7),
            actions=RuleActions(stage=CaseStage.SOFT, assign_group=AssignmentGroup.TIER1),
        ),
        AssignmentRule(
            code="DPD_8_30",
            priority=20,
            conditions=RuleConditions(dpd_min=8, dpd_max=30),
            actions=RuleActions(stage=CaseStage.HARD, assign_group=AssignmentGroup.TIER2),
        ),
        AssignmentRule(
            code="DPD_GT_30",
            priority=30,
            conditions=RuleConditions(dpd_gt=30),
            actions=RuleActions(stage=CaseStage.LEGAL, assign_group=AssignmentGroup.LEGAL),
        ),
        AssignmentRule(
            code="RISK_GT_80_OVERRIDE",
            priority=100,
            conditions=RuleConditions(risk_score_gt=80),
            actions=RuleActions(assigned_to="SeniorAgent"),
        ),
    ]


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def catalog() -> RuleCatalog:
    return RuleCatalog.from_rules(standard_rules())


@pytest.fixture
def service(db: Session, catalog: RuleCatalog) -> CaseService:
    """Case workflow evaluated on a fixed calendar day"""
    return CaseService(db, catalog, today=lambda: TODAY)


@pytest.fixture
def client(db: Session, catalog: RuleCatalog, service: CaseService) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rule_catalog] = lambda: catalog
    app.dependency_overrides[get_case_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def make_loan(db: Session) -> Callable[..., Loan]:
    """Persist a customer + loan pair that is `days_past_due` days overdue on TODAY"""
    counter = {"n": 0}

    def _make(days_past_due: int = 12, risk_score: float = 45, customer: Customer | None = None) -> Loan:
        counter["n"] += 1
        if customer is None:
            customer = Customer(
                name=f"Customer {counter['n']}",
                phone="+1-415-555-0123",
                email=f"customer{counter['n']}@example.com",
                country="US",
                risk_score=risk_score,
            )
            db.add(customer)
            db.flush()

        loan = Loan(
            customer_id=customer.id,
            principal=Decimal("100000.00"),
            outstanding=Decimal("42000.00"),
            due_date=TODAY - timedelta(days=days_past_due),
        )
        db.add(loan)
        db.commit()
        return loan

    return _make
