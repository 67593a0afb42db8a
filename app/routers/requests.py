# app/routers/requests.py

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response

from app.core.config import Settings
from app.models.request import RequestCreate, RequestRecord, RequestStatus, StatusUpdate
from app.routers.deps import get_lifecycle, get_settings
from app.services.lifecycle import RequestLifecycle
from app.utils.errors import InvalidStateError, NotFoundError, ValidationError
from app.utils.responses import format_response

router = APIRouter(prefix="/api/requests", tags=["requests"])


# -----------------------------
# Helpers
# -----------------------------

def record_to_dict(record: RequestRecord) -> dict:
    return record.model_dump(by_alias=True, mode="json")


def transition_to_dict(record: RequestRecord) -> dict:
    return {
        "id": record.id,
        "status": record.status.value,
        "updatedAt": record.updated_at.isoformat(),
    }


# -----------------------------
# Routes
# -----------------------------

@router.post("", status_code=status.HTTP_201_CREATED, summary="Submit an enrollment or referral request")
async def create_request(
    payload: RequestCreate,
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
):
    record = await lifecycle.create(payload)
    return format_response(
        success=True,
        data={
            "id": record.id,
            "type": record.type.value,
            "status": record.status.value,
            "createdAt": record.created_at.isoformat(),
        },
        message="Request submitted",
    )


@router.get("", summary="List requests for a patient, or the most recent requests")
async def list_requests(
    cnp: Optional[str] = None,
    limit: Optional[int] = Query(default=None, gt=0),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
):
    if cnp:
        records = await lifecycle.list_by_patient(cnp)
    else:
        if limit is not None and limit > settings.REQUESTS_LIST_MAX_LIMIT:
            raise ValidationError(f"limit must not exceed {settings.REQUESTS_LIST_MAX_LIMIT}")
        records = await lifecycle.list_all(limit)
    return format_response(success=True, data={"requests": [record_to_dict(r) for r in records]})


@router.get("/pending", summary="List pending requests, newest first")
async def list_pending_requests(lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    count, records = await lifecycle.list_pending()
    return format_response(
        success=True,
        data={"count": count, "pendingRequests": [record_to_dict(r) for r in records]},
    )


@router.delete("/delete-all", summary="Delete every request")
async def delete_all_requests(lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    deleted = await lifecycle.delete_all()
    return format_response(
        success=True,
        data={"deletedCount": deleted},
        message="All requests deleted successfully",
    )


@router.get("/{request_id}", summary="Get a request by id")
async def get_request(request_id: int, lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    record = await lifecycle.get(request_id)
    return format_response(success=True, data={"request": record_to_dict(record)})


@router.patch("/{request_id}", summary="Approve or reject a request by status")
async def update_request_status(
    request_id: int,
    body: StatusUpdate,
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
):
    if body.status == RequestStatus.APPROVED:
        record = await lifecycle.approve(request_id)
    elif body.status == RequestStatus.REJECTED:
        record = await lifecycle.reject(request_id)
    else:
        raise InvalidStateError("Requests cannot be moved back to pending")
    return format_response(success=True, data={"request": transition_to_dict(record)})


@router.post("/{request_id}/approve", summary="Approve a pending request and generate its PDF")
async def approve_request(request_id: int, lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    record = await lifecycle.approve(request_id)
    return format_response(success=True, data={"request": transition_to_dict(record)}, message="Request approved")


@router.post("/{request_id}/reject", summary="Reject a pending request")
async def reject_request(request_id: int, lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    record = await lifecycle.reject(request_id)
    return format_response(success=True, data={"request": transition_to_dict(record)}, message="Request rejected")


@router.get("/{request_id}/pdf", summary="Download the PDF attached to a request")
async def get_request_pdf(request_id: int, lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    pdf = await lifecycle.get_pdf(request_id)
    if not pdf:
        raise NotFoundError(f"No PDF available for request {request_id}")
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="request-{request_id}.pdf"'},
    )


@router.delete("/{request_id}", summary="Delete a request")
async def delete_request(request_id: int, lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    await lifecycle.delete(request_id)
    return format_response(success=True, data={"id": request_id}, message="Request deleted successfully")
