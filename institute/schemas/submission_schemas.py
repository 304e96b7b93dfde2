from typing import Optional, Union

from pydantic import Field, field_validator

from .camel_base_model import CamelCaseBaseModel as BaseModel


class PublicEnquiryCreate(BaseModel):
    """Enquiry posted by the public site"""

    name: str = Field(..., min_length=1, description="Full name")
    course: str = Field(..., min_length=1, description="Course of interest")
    contact: str = Field(..., min_length=1, description="Phone number")
    email: Optional[str] = Field(None, description="Email address")
    preferred_start: Optional[str] = Field(None, description="Preferred start date (ISO)")


class PublicEnquiry(BaseModel):
    id: str = Field(..., description="Enquiry ID, ENQ-<ms>")
    name: str
    course: str
    contact: str
    email: Optional[str] = None
    preferred_start: Optional[str] = None
    created_at: str = Field(..., description="Creation timestamp in ISO format")


class PublicApplicationCreate(BaseModel):
    """Application posted by the public admission form"""

    name: str = Field(..., min_length=1, description="Full name")
    email: str = Field(..., min_length=1, description="Email address")
    phone: str = Field(..., min_length=1, description="Phone number")
    course: str = Field(..., min_length=1, description="Course applied for")
    preferred_start: Optional[str] = Field(None, description="Preferred start date (ISO)")


class PublicApplication(BaseModel):
    id: str = Field(..., description="Application ID, APP-<ms>")
    name: str
    email: str
    phone: str
    course: str
    preferred_start: Optional[str] = None
    created_at: str = Field(..., description="Creation timestamp in ISO format")


class DeleteRequest(BaseModel):
    id: Union[str, int] = Field(..., description="ID of the record to delete")

    @field_validator("id")
    def id_not_blank(cls, v: Union[str, int]) -> str:
        value = str(v).strip()
        if not value:
            raise ValueError("id is required")
        return value


class ContactSubmissionCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Sender name")
    email: str = Field(..., min_length=1, description="Sender email")
    message: str = Field(..., min_length=1, description="Message body")


class ContactSubmission(BaseModel):
    id: str = Field(..., description="Submission ID, <ms>-<random>")
    name: str
    email: str
    message: str
    created_at: str = Field(..., description="Creation timestamp in ISO format")
    ip: Optional[str] = None


class ContactUpdateRequest(BaseModel):
    id: str = Field(..., min_length=1, description="Submission ID")
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
