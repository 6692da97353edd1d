import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import CurrentUser, require_permission
from ..models.models import Attachment
from ..schemas.schemas import AttachmentRead
from ..services import correspondence as workflow
from ..services.audit import audit_request
from ..services.storage import AttachmentStorage, content_disposition, get_attachment_storage

logger = logging.getLogger(__name__)

router = APIRouter()

RESOURCE = "attachment"


@router.post("/{correspondence_id}", response_model=AttachmentRead, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    correspondence_id: int,
    request: Request,
    file: UploadFile = File(...),
    type: Optional[str] = Form(None),
    type_query: Optional[str] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_attachment_storage),
    user: CurrentUser = Depends(require_permission("correspondence:update")),
) -> Attachment:
    direction = storage.validate_direction(type or type_query)
    mime_type = storage.validate_mime_type(file.content_type)
    correspondence = workflow.get_correspondence(db, correspondence_id)

    # One byte past the cap is enough to reject without buffering a huge upload.
    content = await file.read(storage.max_size + 1)
    original_name = file.filename or "upload"
    stored = storage.save(direction, original_name, content)

    attachment = Attachment(
        correspondence_id=correspondence.id,
        file_name=stored.file_name,
        original_name=original_name,
        file_path=stored.relative_path,
        file_size=stored.size,
        mime_type=mime_type,
        uploaded_by=user.id,
    )
    try:
        db.add(attachment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        storage.remove(stored.relative_path)
        raise
    db.refresh(attachment)

    audit_request(
        db,
        request,
        user.id,
        action="upload",
        resource=RESOURCE,
        resource_id=attachment.id,
        details={"correspondence_id": correspondence.id, "original_name": original_name, "size": stored.size},
    )
    return attachment


@router.get("/{attachment_id}/download")
def download_attachment(
    attachment_id: int,
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_attachment_storage),
    _: CurrentUser = Depends(require_permission("correspondence:read")),
) -> FileResponse:
    attachment = workflow.get_attachment(db, attachment_id)
    path = storage.resolve(attachment.file_path)
    headers = {"Content-Disposition": content_disposition(attachment.original_name)}
    return FileResponse(path, media_type=attachment.mime_type, headers=headers)


@router.delete("/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_attachment(
    attachment_id: int,
    request: Request,
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_attachment_storage),
    user: CurrentUser = Depends(require_permission("correspondence:delete")),
) -> Response:
    attachment = workflow.get_attachment(db, attachment_id)
    relative_path = attachment.file_path
    details = {"correspondence_id": attachment.correspondence_id, "original_name": attachment.original_name}

    db.delete(attachment)
    db.commit()
    storage.remove(relative_path)

    audit_request(db, request, user.id, action="delete", resource=RESOURCE, resource_id=attachment_id, details=details)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
