"""
Dependency wiring for the FastAPI app.

Clients are built once per process by `create_app` and kept on
`app.state`; request handlers reach them through these dependencies.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from dokasah.access import Principal
from dokasah.auth import decode_token, get_bearer_token
from dokasah.config import Settings
from dokasah.db import DbClient, InMemoryDbClient, SqlDbClient
from dokasah.errors import Unauthenticated
from dokasah.folders import FolderNames
from dokasah.forms import FormService
from dokasah.reconciler import StorageReconciler
from dokasah.storage import B2StorageClient, InMemoryStorageClient, StorageClient


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends or not settings.b2_bucket:
        return InMemoryStorageClient()
    return B2StorageClient(
        bucket=settings.b2_bucket,
        region=settings.b2_region,
        endpoint=settings.b2_endpoint,
        access_key_id=settings.b2_access_key or "",
        secret_access_key=settings.b2_secret_key or "",
    )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_storage_client(request: Request) -> StorageClient:
    return request.app.state.storage


def get_form_service(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
) -> FormService:
    return FormService(db, storage, settings)


def get_folder_names(db: DbClient = Depends(get_db_client)) -> FolderNames:
    return FolderNames(db)


def get_reconciler(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
    folder_names: FolderNames = Depends(get_folder_names),
) -> StorageReconciler:
    return StorageReconciler(db, storage, settings, folder_names)


def get_current_principal(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> Principal:
    token = get_bearer_token(authorization)
    if not token:
        raise Unauthenticated("Access denied. Token not found.")
    return decode_token(token, settings)
