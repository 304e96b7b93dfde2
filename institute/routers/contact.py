from fastapi import APIRouter, Depends, Request, status

from institute.schemas.submission_schemas import (
    ContactSubmissionCreate,
    ContactUpdateRequest,
    DeleteRequest,
)
from institute.services.contact_service import ContactService, get_contact_service
from institute.utils.responses import ResponseBuilder

contact_router = APIRouter()


def _client_ip(request: Request):
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


@contact_router.post(
    "/contact-submissions",
    status_code=status.HTTP_200_OK,
    summary="Submit the contact form",
)
async def submit_contact(
    request: Request,
    payload: ContactSubmissionCreate,
    contact_service: ContactService = Depends(get_contact_service),
):
    submission, stored_in = await contact_service.submit(payload, ip=_client_ip(request))
    return ResponseBuilder.item(
        request=request, item=submission.to_json_dict(), meta={"storedIn": stored_in}
    )


@contact_router.get(
    "/contact-submissions",
    status_code=status.HTTP_200_OK,
    summary="List contact submissions, oldest first",
)
async def list_contacts(
    request: Request,
    contact_service: ContactService = Depends(get_contact_service),
):
    items = await contact_service.list()
    return ResponseBuilder.items(request=request, items=[i.to_json_dict() for i in items])


@contact_router.get(
    "/contact-submissions.csv",
    status_code=status.HTTP_200_OK,
    summary="Export contact submissions as CSV",
)
async def list_contacts_csv(
    request: Request,
    contact_service: ContactService = Depends(get_contact_service),
):
    body = await contact_service.export_csv()
    return ResponseBuilder.csv(request=request, body=body, filename="contact-submissions.csv")


@contact_router.post(
    "/contact-submissions/update",
    status_code=status.HTTP_200_OK,
    summary="Update a contact submission",
)
async def update_contact(
    request: Request,
    payload: ContactUpdateRequest,
    contact_service: ContactService = Depends(get_contact_service),
):
    item = await contact_service.update(payload)
    return ResponseBuilder.item(request=request, item=item.to_json_dict())


@contact_router.post(
    "/contact-submissions/delete",
    status_code=status.HTTP_200_OK,
    summary="Delete a contact submission (owner only)",
)
async def delete_contact(
    request: Request,
    payload: DeleteRequest,
    contact_service: ContactService = Depends(get_contact_service),
):
    removed = await contact_service.delete(str(payload.id))
    return ResponseBuilder.success(request=request, data={"removed": removed})
