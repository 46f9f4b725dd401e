"""Load a small demo book of delinquent customers for local runs"""

import argparse
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from collections_desk.config import settings
from collections_desk.domain.exceptions import DuplicateCustomerError
from collections_desk.domain.models import ActionOutcome, ActionType, NewCustomer, NewLoan
from collections_desk.infrastructure.database.session import SessionLocal
from collections_desk.infrastructure.observability.logging import setup_logging
from collections_desk.infrastructure.rules.catalog import RuleCatalog, get_rule_catalog
from collections_desk.services.case_service import CaseService


@dataclass(frozen=True)
class DemoAccount:
    customer: NewCustomer
    principal: Decimal
    outstanding: Decimal
    days_past_due: int
    actions: List[Tuple[ActionType, ActionOutcome, str]] = field(default_factory=list)


DEMO_ACCOUNTS = [
    DemoAccount(
        customer=NewCustomer(
            name="Anita Verma",
            phone="+91-9898989898",
            email="anita.verma@example.com",
            country="IN",
            risk_score=45,
        ),
        principal=Decimal("100000.00"),
        outstanding=Decimal("42000.00"),
        days_past_due=5,
        actions=[(ActionType.CALL, ActionOutcome.NO_ANSWER, "No answer on first call")],
    ),
    DemoAccount(
        customer=NewCustomer(
            name="Rahul Singh",
            phone="+91-9876543210",
            email="rahul.singh@example.com",
            country="IN",
            risk_score=92,
        ),
        principal=Decimal("250000.00"),
        outstanding=Decimal("198500.00"),
        days_past_due=12,
        actions=[
            (ActionType.CALL, ActionOutcome.PROMISE_TO_PAY, "Customer promised payment by Friday"),
            (ActionType.SMS, ActionOutcome.PROMISE_TO_PAY, "Sent payment reminder SMS"),
        ],
    ),
    DemoAccount(
        customer=NewCustomer(
            name="Maya Johnson",
            phone="+1-415-555-0123",
            email="maya.johnson@example.com",
            country="US",
            risk_score=78,
        ),
        principal=Decimal("80000.00"),
        outstanding=Decimal("8050.00"),
        days_past_due=35,
        actions=[(ActionType.EMAIL, ActionOutcome.NO_ANSWER, "Escalation email sent")],
    ),
]


def seed(
    session_factory: Callable[[], Session] = SessionLocal,
    catalog: Optional[RuleCatalog] = None,
    today: Optional[date] = None,
    accounts: List[DemoAccount] = DEMO_ACCOUNTS,
) -> List[int]:
    """
    Create a case per demo account through the normal workflow.

    Accounts whose customer email already exists are skipped, so running
    the seed twice leaves the data as it was. Returns the new case ids.
    """
    catalog = catalog or get_rule_catalog()
    today = today or date.today()
    created = []

    with session_factory() as db:
        service = CaseService(db, catalog, today=lambda: today)
        for account in accounts:
            try:
                details = service.create_full_case(
                    account.customer,
                    NewLoan(
                        principal=account.principal,
                        outstanding=account.outstanding,
                        due_date=today - timedelta(days=account.days_past_due),
                    ),
                )
            except DuplicateCustomerError:
                logging.info(
                    f"Skipping {account.customer.email}: already seeded",
                    extra={"step": "seed_skipped"},
                )
                continue

            case_id = details.case.id
            for action_type, outcome, notes in account.actions:
                service.add_action(case_id, action_type, outcome, notes)
            created.append(case_id)
            logging.info(f"Seeded case {case_id} for {account.customer.email}", extra={"case_id": case_id})

    return created


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Load demo customers, loans and cases")
    parser.add_argument("--today", type=date.fromisoformat, default=None, help="Reference date (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    setup_logging(settings.log_level)
    catalog = get_rule_catalog()
    catalog.load()

    created = seed(catalog=catalog, today=args.today)
    logging.info(f"Seed complete: {len(created)} cases created", extra={"step": "seed_complete"})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
