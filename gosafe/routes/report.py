from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from gosafe.errors import ValidationError
from gosafe.models.report import Report, ReportIn, ReportPage
from gosafe.models.user import Principal
from gosafe.services.auth import bearer_token
from gosafe.services.reports import MAX_PAGE_SIZE, ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


def get_service(request: Request) -> ReportService:
    return request.app.state.report_service


def current_user(request: Request, authorization: Optional[str] = Header(None)) -> Principal:
    return request.app.state.identity.authenticate(bearer_token(authorization))


@router.post("", response_model=Report, status_code=201)
def create_report(
    body: ReportIn,
    user: Principal = Depends(current_user),
    service: ReportService = Depends(get_service),
):
    """
    Accept the mobile payload (type, location.coordinates [lng, lat],
    description, severity, photos) and store it as a pending report.
    """
    return service.create_report(
        author_id=user.user_id,
        category=body.type,
        location=body.location.coordinates,
        description=body.description,
        severity=body.severity,
        photos=body.photos,
    )


@router.get("", response_model=ReportPage)
def list_reports(
    lat: Optional[float] = Query(None, description="Latitude of the search centre"),
    lng: Optional[float] = Query(None, description="Longitude of the search centre"),
    radius: float = Query(5000, gt=0, description="Search radius in metres, at most MAX_SEARCH_RADIUS_M"),
    status: Optional[str] = Query(None, description="pending | verified | rejected | expired"),
    type: Optional[str] = Query(None, description="Hazard category"),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    page: int = Query(1, ge=1),
    service: ReportService = Depends(get_service),
):
    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be given together")
    near = [lng, lat] if lat is not None else None
    return service.list_reports(near=near, radius_m=radius, status=status, category=type, limit=limit, page=page)


@router.get("/{report_id}", response_model=Report)
def get_report(report_id: str, service: ReportService = Depends(get_service)):
    return service.get_report(report_id)


@router.post("/{report_id}/confirm", response_model=Report)
def confirm_report(
    report_id: str,
    user: Principal = Depends(current_user),
    service: ReportService = Depends(get_service),
):
    return service.confirm(report_id, user.user_id)


@router.post("/{report_id}/deny", response_model=Report)
def deny_report(
    report_id: str,
    user: Principal = Depends(current_user),
    service: ReportService = Depends(get_service),
):
    return service.deny(report_id, user.user_id)


@router.delete("/{report_id}", status_code=204)
def delete_report(
    report_id: str,
    user: Principal = Depends(current_user),
    service: ReportService = Depends(get_service),
):
    service.delete_report(report_id, user.user_id, user.role)
    return Response(status_code=204)
