from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import CurrentUser, get_current_user
from ..schemas.schemas import DashboardStats
from ..services.correspondence import compute_dashboard_stats

router = APIRouter()


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
) -> DashboardStats:
    return compute_dashboard_stats(db)
