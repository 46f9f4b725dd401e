"""GET /v1/dashboard - headline collection metrics"""

from fastapi import APIRouter, Depends

from collections_desk.api.dependencies import get_case_service
from collections_desk.api.v1.schemas import DashboardResponse
from collections_desk.services.case_service import CaseService

router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(service: CaseService = Depends(get_case_service)):
    """Open case count, cases resolved today and average DPD of open cases"""
    metrics = service.dashboard()
    return DashboardResponse(
        open_cases_count=metrics.open_cases_count,
        resolved_today_count=metrics.resolved_today_count,
        avg_open_dpd=metrics.avg_open_dpd,
    )
