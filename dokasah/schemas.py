"""
Pydantic schemas for the dokasah HTTP API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SubmissionStatus = Literal["draft", "submitted", "proses", "review"]


class MessageResponse(BaseModel):
    message: str


class AuthRequest(BaseModel):
    name: str = Field(..., max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    profile_picture: Optional[str] = None


class AuthResponse(BaseModel):
    message: str
    token: str


class ProtectedResponse(BaseModel):
    message: str
    user: dict


class CreateFormRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=3, max_length=255)
    form_type: str = Field(..., alias="formType", min_length=1, max_length=128)


class CreateFormResponse(BaseModel):
    message: str
    slug: str
    link: str


class FormDataRequest(BaseModel):
    data: dict


class StatusRequest(BaseModel):
    status: SubmissionStatus


class FormDetail(BaseModel):
    id: int
    form_type: str
    assigned_email: str
    slug: str
    created_at: float
    form_structure: Optional[dict] = None


class Submission(BaseModel):
    id: int
    form_config_id: int
    user_id: int
    data: dict
    status: Optional[str] = None
    updated_at: float


class FormResponse(BaseModel):
    form: FormDetail
    submission: Optional[Submission] = None


class FormOverview(BaseModel):
    id: int
    form_type: str
    assigned_email: str
    slug: str
    created_at: float
    status: Optional[str] = None
    updated_at: Optional[float] = None


class DashboardFormsResponse(BaseModel):
    forms: list[FormOverview]


class StatusCounts(BaseModel):
    pending: int
    submitted: int
    proses: int
    review: int


class StatusCountResponse(BaseModel):
    counts: StatusCounts


class UploadResponse(BaseModel):
    message: str
    key: str
    fileUrl: str


class FileItem(BaseModel):
    key: str
    lastModified: Optional[datetime] = None
    size: int
    storageClass: Optional[str] = None
    url: str


class FolderItem(BaseModel):
    slug: str
    name: str


class FolderListingResponse(BaseModel):
    files: list[FileItem]
    folders: list[FolderItem]


class RenameRequest(BaseModel):
    slug: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=255)
