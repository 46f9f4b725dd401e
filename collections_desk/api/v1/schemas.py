"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from collections_desk.domain.models import (
    ActionOutcome,
    ActionType,
    AssignmentGroup,
    CaseStage,
    CaseStatus,
    LoanStatus,
)


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CreateCaseRequest(ApiModel):
    """Request body for POST /v1/cases"""

    customer_id: int = Field(..., ge=1)
    loan_id: int = Field(..., ge=1)


class CreateCustomerRequest(ApiModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1, max_length=32)
    email: str = Field(..., min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    country: str = Field(..., min_length=2, max_length=2)
    risk_score: float = Field(..., ge=300, le=1000, description="Credit risk score")


class CreateLoanRequest(ApiModel):
    principal: Decimal = Field(..., ge=0)
    outstanding: Decimal = Field(..., ge=0)
    due_date: date


class CreateFullCaseRequest(ApiModel):
    """Request body for POST /v1/cases/full"""

    customer: CreateCustomerRequest
    loan: CreateLoanRequest


class AddActionRequest(ApiModel):
    """Request body for POST /v1/cases/{case_id}/actions"""

    type: ActionType
    outcome: ActionOutcome
    notes: Optional[str] = Field(None, max_length=1000)


class AssignCaseRequest(ApiModel):
    """Request body for POST /v1/cases/{case_id}/assign"""

    expected_version: Optional[int] = Field(
        None, ge=1, description="Optimistic locking version. Assignment fails with 409 if stale."
    )


class CustomerSchema(ApiModel):
    id: int
    name: str
    phone: str
    email: str
    country: str
    risk_score: float


class LoanSchema(ApiModel):
    id: int
    customer_id: int
    principal: Decimal
    outstanding: Decimal
    due_date: date
    status: LoanStatus


class ActionLogSchema(ApiModel):
    id: int
    case_id: int
    type: ActionType
    outcome: ActionOutcome
    notes: Optional[str] = None
    created_at: datetime


class RuleDecisionSchema(ApiModel):
    id: int
    case_id: int
    matched_rules: List[str]
    reason: str
    created_at: datetime


class CaseSummary(ApiModel):
    """Case row as returned by listings"""

    id: int
    customer_id: int
    loan_id: int
    dpd: int
    stage: CaseStage
    status: CaseStatus
    assignment_group: Optional[AssignmentGroup] = None
    assigned_to: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    customer: CustomerSchema
    loan: LoanSchema


class CaseResponse(CaseSummary):
    """Case with its contact history and recent assignment decisions"""

    action_logs: List[ActionLogSchema]
    rule_decisions: List[RuleDecisionSchema]


class PaginationSchema(ApiModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class CaseListResponse(ApiModel):
    """Response for GET /v1/cases"""

    data: List[CaseSummary]
    pagination: PaginationSchema


class AssignmentDecisionSchema(ApiModel):
    matched_rules: List[str]
    reason: str


class AssignCaseResponse(ApiModel):
    """Response for POST /v1/cases/{case_id}/assign"""

    case_id: int
    stage: CaseStage
    assigned_to: str
    version: int
    decision: AssignmentDecisionSchema


class DashboardResponse(ApiModel):
    """Response for GET /v1/dashboard"""

    open_cases_count: int
    resolved_today_count: int
    avg_open_dpd: float
