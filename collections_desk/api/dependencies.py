"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from collections_desk.infrastructure.database.session import get_db
from collections_desk.infrastructure.rules.catalog import RuleCatalog, get_rule_catalog
from collections_desk.services.case_service import CaseService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_case_service(
    db: Session = Depends(get_db),
    catalog: RuleCatalog = Depends(get_rule_catalog),
) -> CaseService:
    """Provide a case workflow bound to the request's session"""
    return CaseService(db, catalog)
