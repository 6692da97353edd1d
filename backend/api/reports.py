from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ..api.correspondences import correspondence_filters
from ..api.dependencies import get_db
from ..auth.jwt import CurrentUser, require_permission
from ..services.audit import audit_request
from ..services.correspondence import CorrespondenceFilters, compute_dashboard_stats, correspondence_query
from ..utils.csv_utils import correspondences_to_csv, stats_to_csv

router = APIRouter()


def _csv_response(filename: str, content: str) -> Response:
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-store",
    }
    return Response(content=content, media_type="text/csv; charset=utf-8", headers=headers)


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d")


@router.get("/correspondences.csv")
def export_correspondences(
    request: Request,
    filters: CorrespondenceFilters = Depends(correspondence_filters),
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_permission("report:read")),
) -> Response:
    rows = correspondence_query(db, filters).all()
    content = correspondences_to_csv(rows)
    audit_request(db, request, actor.id, action="export", resource="report", details={"report": "correspondences", "rows": len(rows)})
    return _csv_response(f"correspondences-{_stamp()}.csv", content)


@router.get("/summary.csv")
def export_summary(
    request: Request,
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_permission("report:read")),
) -> Response:
    stats = compute_dashboard_stats(db)
    content = stats_to_csv(stats.model_dump())
    audit_request(db, request, actor.id, action="export", resource="report", details={"report": "summary"})
    return _csv_response(f"summary-{_stamp()}.csv", content)
