"""
HTTP routes for the dokasah API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from dokasah.access import Principal
from dokasah.auth import issue_token
from dokasah.config import Settings
from dokasah.db import DbClient
from dokasah.dependencies import (
    get_app_settings,
    get_current_principal,
    get_db_client,
    get_folder_names,
    get_form_service,
    get_reconciler,
)
from dokasah.errors import BadRequest, store_errors
from dokasah.folders import FolderNames
from dokasah.forms import FormService, public_url
from dokasah.reconciler import StorageReconciler
from dokasah.schemas import (
    AuthRequest,
    AuthResponse,
    CreateFormRequest,
    CreateFormResponse,
    DashboardFormsResponse,
    FolderListingResponse,
    FormDataRequest,
    FormResponse,
    MessageResponse,
    ProtectedResponse,
    RenameRequest,
    StatusCountResponse,
    StatusRequest,
    UploadResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/auth", response_model=AuthResponse)
def login(
    payload: AuthRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Register or refresh the user by email and hand back an access token.
    """
    with store_errors("save user"):
        user = db.upsert_user(payload.email, payload.name, payload.profile_picture)
    return AuthResponse(message="Login successful.", token=issue_token(user, settings))


@router.get("/protected", response_model=ProtectedResponse)
def protected(principal: Principal = Depends(get_current_principal)):
    return ProtectedResponse(
        message="This is protected data.",
        user={
            "id": principal.id,
            "email": principal.email,
            "role": principal.role,
            "name": principal.name,
            "profile_pictures": principal.avatar,
        },
    )


@router.post("/forms", response_model=CreateFormResponse, status_code=201)
def create_form(
    payload: CreateFormRequest,
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    created = forms.create_instance(payload.form_type, payload.email, principal)
    return CreateFormResponse(
        message="Form created successfully",
        slug=created.instance.slug,
        link=created.link,
    )


@router.get("/forms/{slug}", response_model=FormResponse)
def get_form(
    slug: str,
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    view = forms.get_instance(slug, principal)
    form = view.instance.as_dict()
    form["form_structure"] = view.form_structure
    return FormResponse(
        form=form,
        submission=view.submission.as_dict() if view.submission else None,
    )


@router.put("/forms/{slug}/draft", response_model=MessageResponse)
def save_draft(
    slug: str,
    payload: FormDataRequest,
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    forms.save_draft(slug, principal, payload.data)
    return MessageResponse(message="Draft saved successfully")


@router.post("/forms/{slug}/submit", response_model=MessageResponse)
def submit_form(
    slug: str,
    payload: FormDataRequest,
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    forms.submit(slug, principal, payload.data)
    return MessageResponse(message="Form submitted successfully")


@router.put("/forms/{slug}/status", response_model=MessageResponse)
def update_status(
    slug: str,
    payload: StatusRequest,
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    forms.set_status(slug, principal, payload.status)
    return MessageResponse(message="Status updated")


@router.delete("/forms/{slug}", response_model=MessageResponse)
def delete_form(
    slug: str,
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    forms.delete_instance(slug, principal)
    return MessageResponse(message="Form deleted")


@router.get("/dashboard/forms", response_model=DashboardFormsResponse)
def dashboard_forms(
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    rows = forms.list_instances(principal)
    return DashboardFormsResponse(forms=[row.as_dict() for row in rows])


@router.get("/dashboard/status-count", response_model=StatusCountResponse)
def dashboard_status_count(
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
):
    return StatusCountResponse(counts=forms.status_counts(principal))


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: UploadFile | None = File(None),
    slug: str | None = Form(None),
    fieldName: str | None = Form(None),
    principal: Principal = Depends(get_current_principal),
    forms: FormService = Depends(get_form_service),
    settings: Settings = Depends(get_app_settings),
):
    if file is None:
        raise BadRequest("No file uploaded")
    if not slug or not fieldName:
        raise BadRequest("slug and fieldName are required")

    data = await file.read()
    key = forms.upload_attachment(
        slug,
        fieldName,
        file.filename or "",
        data,
        file.content_type,
        principal,
    )
    return UploadResponse(
        message="File uploaded", key=key, fileUrl=public_url(settings, key)
    )


@router.get("/files/{path:path}", response_model=FolderListingResponse)
def list_files(
    path: str,
    principal: Principal = Depends(get_current_principal),
    reconciler: StorageReconciler = Depends(get_reconciler),
):
    listing = reconciler.list_folder(path, principal)
    return FolderListingResponse(
        files=[entry.as_dict() for entry in listing.files],
        folders=[entry.as_dict() for entry in listing.folders],
    )


@router.post("/rename", response_model=MessageResponse)
def rename_folder(
    payload: RenameRequest,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    folder_names: FolderNames = Depends(get_folder_names),
):
    slug = (payload.slug or "").strip()
    name = (payload.name or "").strip()
    if not slug or not name:
        raise BadRequest("slug and name are required")
    created = folder_names.rename(slug, name, principal)
    response.status_code = 201 if created else 200
    return MessageResponse(
        message="Folder name created" if created else "Folder name updated"
    )
