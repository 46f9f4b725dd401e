"""/v1/cases - case creation, listing, action logging and assignment runs"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from collections_desk.api.dependencies import get_case_service
from collections_desk.api.v1.schemas import (
    ActionLogSchema,
    AddActionRequest,
    AssignCaseRequest,
    AssignCaseResponse,
    AssignmentDecisionSchema,
    CaseListResponse,
    CaseResponse,
    CaseSummary,
    CreateCaseRequest,
    CreateFullCaseRequest,
    PaginationSchema,
    RuleDecisionSchema,
)
from collections_desk.domain.models import CaseFilters, CaseStage, CaseStatus, NewCustomer, NewLoan
from collections_desk.services.case_service import CaseDetails, CaseService

router = APIRouter()


def to_case_response(details: CaseDetails) -> CaseResponse:
    summary = CaseSummary.model_validate(details.case)
    return CaseResponse(
        **summary.model_dump(),
        action_logs=[ActionLogSchema.model_validate(a) for a in details.case.action_logs],
        rule_decisions=[RuleDecisionSchema.model_validate(d) for d in details.rule_decisions],
    )


@router.post("/cases", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
def create_case(request_body: CreateCaseRequest, service: CaseService = Depends(get_case_service)):
    """Create a delinquency case and perform the initial assignment decision"""
    details = service.create_case(request_body.customer_id, request_body.loan_id)
    return to_case_response(details)


@router.post("/cases/full", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
def create_full_case(request_body: CreateFullCaseRequest, service: CaseService = Depends(get_case_service)):
    """Create customer, loan and case in a single transaction"""
    customer = request_body.customer
    loan = request_body.loan
    details = service.create_full_case(
        NewCustomer(
            name=customer.name,
            phone=customer.phone,
            email=customer.email,
            country=customer.country,
            risk_score=customer.risk_score,
        ),
        NewLoan(principal=loan.principal, outstanding=loan.outstanding, due_date=loan.due_date),
    )
    return to_case_response(details)


@router.get("/cases", response_model=CaseListResponse)
def list_cases(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize"),
    case_status: Optional[CaseStatus] = Query(None, alias="status"),
    stage: Optional[CaseStage] = Query(None),
    dpd_min: Optional[int] = Query(None, ge=0, alias="dpdMin"),
    dpd_max: Optional[int] = Query(None, ge=0, alias="dpdMax"),
    assigned_to: Optional[str] = Query(None, max_length=100, alias="assignedTo"),
    service: CaseService = Depends(get_case_service),
):
    """
    List cases with filters, stable sorting and pagination.

    Sorted by creation time then id, newest first.
    """
    filters = CaseFilters(
        status=case_status,
        stage=stage,
        dpd_min=dpd_min,
        dpd_max=dpd_max,
        assigned_to=assigned_to,
    )
    result = service.list_cases(filters, page=page, page_size=page_size)

    return CaseListResponse(
        data=[CaseSummary.model_validate(c) for c in result.items],
        pagination=PaginationSchema(
            page=result.page,
            page_size=result.page_size,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )


@router.get("/cases/{case_id}", response_model=CaseResponse)
def get_case(case_id: int, service: CaseService = Depends(get_case_service)):
    """Fetch a case with customer/loan details, actions and assignment history"""
    return to_case_response(service.get_case(case_id))


@router.post("/cases/{case_id}/actions", response_model=ActionLogSchema, status_code=status.HTTP_201_CREATED)
def add_action(case_id: int, request_body: AddActionRequest, service: CaseService = Depends(get_case_service)):
    """Add an action log to a case; a PAID outcome resolves it"""
    action = service.add_action(case_id, request_body.type, request_body.outcome, request_body.notes)
    return ActionLogSchema.model_validate(action)


@router.post("/cases/{case_id}/assign", response_model=AssignCaseResponse)
def assign_case(
    case_id: int,
    request_body: Optional[AssignCaseRequest] = None,
    service: CaseService = Depends(get_case_service),
):
    """
    Run rule-based assignment, store the decision idempotently and update the case.

    Safe to repeat: an unchanged decision neither adds an audit row nor bumps
    the version. A stale expectedVersion or a lost concurrent update returns 409.
    """
    expected_version = request_body.expected_version if request_body else None
    result = service.assign(case_id, expected_version=expected_version)

    return AssignCaseResponse(
        case_id=result.case_id,
        stage=result.stage,
        assigned_to=result.assigned_to,
        version=result.version,
        decision=AssignmentDecisionSchema(matched_rules=result.matched_rules, reason=result.reason),
    )
