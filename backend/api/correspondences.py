from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from ..api.dependencies import PageParams, get_db, page_params
from ..auth.jwt import CurrentUser, require_permission
from ..schemas.schemas import (
    CorrespondenceCreate,
    CorrespondenceDetail,
    CorrespondencePage,
    CorrespondenceStatus,
    CorrespondenceType,
    CorrespondenceUpdate,
    ReplyCreate,
    ReplyRead,
    ReviewStatus,
    StatusUpdate,
)
from ..services import correspondence as workflow
from ..services.audit import audit_request
from ..utils.pagination import build_pagination

router = APIRouter()

RESOURCE = "correspondence"


def correspondence_filters(
    type: Optional[CorrespondenceType] = Query(None),
    status: Optional[CorrespondenceStatus] = Query(None),
    review_status: Optional[ReviewStatus] = Query(None),
    sender_entity_id: Optional[int] = Query(None, ge=1),
    receiver_entity_id: Optional[int] = Query(None, ge=1),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
) -> workflow.CorrespondenceFilters:
    return workflow.CorrespondenceFilters(
        type=type,
        status=status,
        review_status=review_status,
        sender_entity_id=sender_entity_id,
        receiver_entity_id=receiver_entity_id,
        date_range=workflow.DateRange(start=start_date, end=end_date),
        search=search,
    )


@router.get("", response_model=CorrespondencePage)
def list_correspondences(
    filters: workflow.CorrespondenceFilters = Depends(correspondence_filters),
    paging: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_permission("correspondence:read")),
) -> CorrespondencePage:
    rows, total = workflow.list_correspondences(db, filters, paging.page, paging.limit)
    return CorrespondencePage(data=rows, pagination=build_pagination(total, paging.page, paging.limit))


@router.get("/{correspondence_id}", response_model=CorrespondenceDetail)
def get_correspondence(
    correspondence_id: int,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_permission("correspondence:read")),
):
    return workflow.get_correspondence(db, correspondence_id)


@router.post("", response_model=CorrespondenceDetail, status_code=status.HTTP_201_CREATED)
def create_correspondence(
    payload: CorrespondenceCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("correspondence:create")),
):
    correspondence = workflow.create_correspondence(db, payload, user.id)
    audit_request(
        db,
        request,
        user.id,
        action="create",
        resource=RESOURCE,
        resource_id=correspondence.id,
        details={"reference_number": correspondence.reference_number, "type": correspondence.type},
    )
    return correspondence


@router.put("/{correspondence_id}", response_model=CorrespondenceDetail)
def update_correspondence(
    correspondence_id: int,
    payload: CorrespondenceUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("correspondence:update")),
):
    correspondence = workflow.update_correspondence(db, correspondence_id, payload, user.id)
    audit_request(
        db,
        request,
        user.id,
        action="update",
        resource=RESOURCE,
        resource_id=correspondence_id,
        details=payload.model_dump(exclude_unset=True, mode="json"),
    )
    return correspondence


@router.delete("/{correspondence_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_correspondence(
    correspondence_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("correspondence:delete")),
) -> Response:
    correspondence = workflow.delete_correspondence(db, correspondence_id)
    audit_request(
        db,
        request,
        user.id,
        action="delete",
        resource=RESOURCE,
        resource_id=correspondence_id,
        details={"reference_number": correspondence.reference_number},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{correspondence_id}/reply", response_model=ReplyRead, status_code=status.HTTP_201_CREATED)
def add_reply(
    correspondence_id: int,
    payload: ReplyCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("correspondence:update")),
):
    reply = workflow.add_reply(db, correspondence_id, payload, user.id)
    audit_request(
        db,
        request,
        user.id,
        action="reply",
        resource=RESOURCE,
        resource_id=correspondence_id,
        details={"reply_id": reply.id},
    )
    return reply


@router.patch("/{correspondence_id}/status", response_model=CorrespondenceDetail)
def update_status(
    correspondence_id: int,
    payload: StatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("correspondence:update")),
):
    correspondence = workflow.set_status(db, correspondence_id, payload.status, payload.notes, user.id)
    audit_request(
        db,
        request,
        user.id,
        action="status_change",
        resource=RESOURCE,
        resource_id=correspondence_id,
        details={"status": payload.status, "notes": payload.notes},
    )
    return correspondence


@router.post("/{correspondence_id}/review", response_model=CorrespondenceDetail)
def review_correspondence(
    correspondence_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("correspondence:review")),
):
    correspondence = workflow.mark_reviewed(db, correspondence_id, user.id)
    audit_request(db, request, user.id, action="review", resource=RESOURCE, resource_id=correspondence_id)
    return correspondence
