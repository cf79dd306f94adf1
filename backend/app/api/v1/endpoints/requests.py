"""
Parcel Request API Endpoints.

Senders create and edit requests; the trip's traveller accepts, rejects and
verifies pickup and delivery with one-time codes. Either party may cancel.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from backend.app.core.dependencies import get_current_user, get_lifecycle_service
from backend.app.models.request_enums import RequestStatus
from backend.app.schemas.parcel_request import (
    ParcelRequestCreate, ParcelRequestUpdate, ReceiverDetailsUpdate,
    AcceptRequestBody, RejectRequestBody, CancelRequestBody, OtpSubmission,
    ParcelRequestResponse, ParcelRequestListResponse,
    AcceptRequestResponse, PickupVerifiedResponse, DeliveryVerifiedResponse, OtpResponse
)
from backend.app.services.request_lifecycle import RequestLifecycleService

router = APIRouter(prefix="/requests", tags=["Parcel Requests"])


def _as_list(requests) -> ParcelRequestListResponse:
    return ParcelRequestListResponse(
        requests=[ParcelRequestResponse.model_validate(r) for r in requests],
        total=len(requests)
    )


@router.post("", response_model=ParcelRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    request_data: ParcelRequestCreate,
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    """
    Ask to ship a parcel on a trip.

    Validates:
    - Trip exists, is open, has not departed and has a free slot
    - Category is accepted by the trip
    - Exactly the required number of photos
    - Receiver phone is 10 digits
    """
    request = await service.create_request(current_user["user_id"], request_data)
    return ParcelRequestResponse.model_validate(request)


@router.get("/mine", response_model=ParcelRequestListResponse)
async def list_my_requests(
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return _as_list(await service.list_sender_requests(current_user["user_id"]))


@router.get("/incoming", response_model=ParcelRequestListResponse)
async def list_incoming_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    """Requests on the caller's trips."""
    return _as_list(await service.list_incoming_requests(current_user["user_id"], status=status_filter))


@router.get("/deliveries", response_model=ParcelRequestListResponse)
async def list_deliveries(
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return _as_list(await service.list_deliveries(current_user["user_id"]))


@router.get("/{request_id}", response_model=ParcelRequestResponse)
async def get_request(
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    request = await service.get_request(request_id, current_user["user_id"])
    return ParcelRequestResponse.model_validate(request)


@router.post("/{request_id}/accept", response_model=AcceptRequestResponse)
async def accept_request(
    request_id: int = Path(..., description="Request ID"),
    body: Optional[AcceptRequestBody] = None,
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    """
    Accept a pending request (trip traveller only).

    Reserves one slot and returns the pickup OTP.
    """
    result = await service.accept_request(
        request_id,
        current_user["user_id"],
        traveller_notes=body.traveller_notes if body else None
    )
    return AcceptRequestResponse(**result)


@router.post("/{request_id}/reject", response_model=ParcelRequestResponse)
async def reject_request(
    request_id: int = Path(..., description="Request ID"),
    body: Optional[RejectRequestBody] = None,
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    request = await service.reject_request(
        request_id, current_user["user_id"], reason=body.reason if body else None
    )
    return ParcelRequestResponse.model_validate(request)


@router.post("/{request_id}/cancel", response_model=ParcelRequestResponse)
async def cancel_request(
    request_id: int = Path(..., description="Request ID"),
    body: Optional[CancelRequestBody] = None,
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    """
    Cancel a request.

    Accepted requests cannot be cancelled within the window before departure.
    """
    body = body or CancelRequestBody()
    request = await service.cancel_request(
        request_id, current_user["user_id"], actor_role=body.actor_role, reason=body.reason
    )
    return ParcelRequestResponse.model_validate(request)


@router.post("/{request_id}/pickup/verify", response_model=PickupVerifiedResponse)
async def verify_pickup(
    submission: OtpSubmission,
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    """Confirm pickup with the sender's code; returns the delivery OTP."""
    result = await service.verify_pickup_otp(request_id, current_user["user_id"], submission.code)
    return PickupVerifiedResponse(**result)


@router.post("/{request_id}/delivery/verify", response_model=DeliveryVerifiedResponse)
async def verify_delivery(
    submission: OtpSubmission,
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    result = await service.verify_delivery_otp(request_id, current_user["user_id"], submission.code)
    return DeliveryVerifiedResponse(**result)


@router.post("/{request_id}/pickup/otp/regenerate", response_model=OtpResponse)
async def regenerate_pickup_otp(
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    result = await service.regenerate_pickup_otp(request_id, current_user["user_id"])
    return OtpResponse(**result)


@router.post("/{request_id}/delivery/otp/regenerate", response_model=OtpResponse)
async def regenerate_delivery_otp(
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    result = await service.regenerate_delivery_otp(request_id, current_user["user_id"])
    return OtpResponse(**result)


@router.get("/{request_id}/pickup/otp", response_model=OtpResponse)
async def get_pickup_otp(
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    """The sender's current pickup code."""
    return OtpResponse(**await service.get_pickup_otp(request_id, current_user["user_id"]))


@router.get("/{request_id}/delivery/otp", response_model=OtpResponse)
async def get_delivery_otp(
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return OtpResponse(**await service.get_delivery_otp(request_id, current_user["user_id"]))


@router.patch("/{request_id}/receiver", response_model=ParcelRequestResponse)
async def update_receiver_details(
    body: ReceiverDetailsUpdate,
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    """Change the receiver's contact until the parcel is delivered."""
    request = await service.update_receiver_details(
        request_id, current_user["user_id"], body.delivery_contact_name, body.delivery_contact_phone
    )
    return ParcelRequestResponse.model_validate(request)


@router.patch("/{request_id}", response_model=ParcelRequestResponse)
async def update_request_details(
    changes: ParcelRequestUpdate,
    request_id: int = Path(..., description="Request ID"),
    current_user: dict = Depends(get_current_user),
    service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    request = await service.update_request_details(request_id, current_user["user_id"], changes)
    return ParcelRequestResponse.model_validate(request)
