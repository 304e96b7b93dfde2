from fastapi import APIRouter, Depends, Request, status

from institute.schemas.submission_schemas import (
    DeleteRequest,
    PublicApplicationCreate,
    PublicEnquiryCreate,
)
from institute.services.submission_service import SubmissionService, get_submission_service
from institute.utils.responses import ResponseBuilder

public_router = APIRouter()


@public_router.post(
    "/enquiries",
    status_code=status.HTTP_200_OK,
    summary="Submit a public enquiry",
)
async def post_public_enquiry(
    request: Request,
    payload: PublicEnquiryCreate,
    submission_service: SubmissionService = Depends(get_submission_service),
):
    enquiry = await submission_service.create_enquiry(payload)
    return ResponseBuilder.item(request=request, item=enquiry.to_json_dict())


@public_router.get(
    "/enquiries",
    status_code=status.HTTP_200_OK,
    summary="List public enquiries, newest first",
)
async def list_public_enquiries(
    request: Request,
    submission_service: SubmissionService = Depends(get_submission_service),
):
    enquiries = await submission_service.list_enquiries()
    return ResponseBuilder.items(request=request, items=[e.to_json_dict() for e in enquiries])


@public_router.post(
    "/applications",
    status_code=status.HTTP_200_OK,
    summary="Submit a public application",
)
async def post_public_application(
    request: Request,
    payload: PublicApplicationCreate,
    submission_service: SubmissionService = Depends(get_submission_service),
):
    application = await submission_service.create_application(payload)
    return ResponseBuilder.item(request=request, item=application.to_json_dict())


@public_router.get(
    "/applications",
    status_code=status.HTTP_200_OK,
    summary="List public applications, newest first",
)
async def list_public_applications(
    request: Request,
    submission_service: SubmissionService = Depends(get_submission_service),
):
    applications = await submission_service.list_applications()
    return ResponseBuilder.items(
        request=request, items=[a.to_json_dict() for a in applications]
    )


@public_router.post(
    "/applications/delete",
    status_code=status.HTTP_200_OK,
    summary="Delete an application (owner only)",
    description="Tries the applications and public_applications tables, keyed on app_id then id",
)
async def delete_public_application(
    request: Request,
    payload: DeleteRequest,
    submission_service: SubmissionService = Depends(get_submission_service),
):
    removed = await submission_service.delete_application(str(payload.id))
    return ResponseBuilder.success(request=request, data=removed)
