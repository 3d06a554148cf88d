"""
Form instance lifecycle: creation, drafts, submission, status changes and
deletion, each gated by the access policy.
"""

from __future__ import annotations

import logging
import os
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from dokasah.access import Principal, require_access, require_admin
from dokasah.config import Settings
from dokasah.db import (
    DbClient,
    FormConfigRecord,
    FormOverviewRecord,
    SubmissionRecord,
)
from dokasah.errors import (
    BadRequest,
    InvalidTemplate,
    NotFound,
    SlugConflict,
    StoreFailure,
    store_errors,
)
from dokasah.storage import StorageClient

logger = logging.getLogger(__name__)

SLUG_ALPHABET = string.digits + string.ascii_lowercase
SLUG_LENGTH = 26

SUBMITTED = "submitted"
STATUS_BUCKETS = ("pending", "submitted", "proses", "review")


def generate_slug(length: int = SLUG_LENGTH) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def folder_prefix(settings: Settings, slug: str) -> str:
    return f"{settings.storage_base_prefix.strip('/')}/{slug}/"


def public_url(settings: Settings, key: str) -> str:
    return f"{settings.cdn_base_url.rstrip('/')}/{key}"


@dataclass
class CreatedInstance:
    instance: FormConfigRecord
    link: str


@dataclass
class InstanceView:
    instance: FormConfigRecord
    form_structure: Optional[dict]
    submission: Optional[SubmissionRecord]


class FormService:
    def __init__(self, db: DbClient, storage: StorageClient, settings: Settings):
        self.db = db
        self.storage = storage
        self.settings = settings

    def _load_instance(self, slug: str) -> FormConfigRecord:
        with store_errors("load form"):
            config = self.db.get_form_config(slug)
        if config is None:
            raise NotFound("Form not found")
        return config

    def _resolve_target_user_id(
        self, config: FormConfigRecord, principal: Principal
    ) -> Optional[int]:
        """
        Regular users always act on their own submission. Admins act on the
        assigned owner's, or on nothing when the owner has no account yet.
        """
        if not principal.is_admin or principal.email == config.assigned_email:
            return principal.id
        with store_errors("resolve form owner"):
            owner = self.db.get_user_by_email(config.assigned_email)
        return owner.id if owner else None

    def create_instance(
        self, form_type: str, owner_email: str, principal: Principal
    ) -> CreatedInstance:
        require_admin(principal)
        with store_errors("create form"):
            if self.db.get_form_structure(form_type) is None:
                raise InvalidTemplate(f"Unknown form type: {form_type}")
            instance = None
            for _ in range(self.settings.slug_max_attempts):
                try:
                    instance = self.db.create_form_config(
                        form_type, owner_email, generate_slug()
                    )
                    break
                except SlugConflict as exc:
                    logger.warning("Slug collision on %s, retrying", exc)
        if instance is None:
            raise StoreFailure("Could not allocate a unique slug")
        logger.info(
            "Created form %s (%s) for %s", instance.slug, form_type, owner_email
        )
        link = f"https://{self.settings.domain}/form/{instance.slug}"
        return CreatedInstance(instance=instance, link=link)

    def get_instance(self, slug: str, principal: Principal) -> InstanceView:
        config = self._load_instance(slug)
        require_access(principal, config.assigned_email, "read")
        target_id = self._resolve_target_user_id(config, principal)
        with store_errors("load form"):
            structure = self.db.get_form_structure(config.form_type)
            submission = (
                self.db.get_submission(config.id, target_id)
                if target_id is not None
                else None
            )
        return InstanceView(
            instance=config,
            form_structure=structure.form_structure if structure else None,
            submission=submission,
        )

    def save_draft(
        self, slug: str, principal: Principal, data: dict
    ) -> SubmissionRecord:
        config = self._load_instance(slug)
        require_access(principal, config.assigned_email, "write")
        target_id = self._resolve_target_user_id(config, principal)
        if target_id is None:
            raise NotFound("Form owner has no account")
        with store_errors("save draft"):
            return self.db.upsert_submission(config.id, target_id, data)

    def submit(self, slug: str, principal: Principal, data: dict) -> SubmissionRecord:
        config = self._load_instance(slug)
        require_access(principal, config.assigned_email, "submit")
        with store_errors("submit form"):
            submission = self.db.upsert_submission(
                config.id, principal.id, data, status=SUBMITTED
            )
        logger.info("Form %s submitted by %s", slug, principal.email)
        return submission

    def set_status(self, slug: str, principal: Principal, new_status: str) -> int:
        config = self._load_instance(slug)
        require_access(principal, config.assigned_email, "status")
        with store_errors("update status"):
            if principal.is_admin:
                updated = self.db.update_submission_status(config.id, new_status)
            else:
                updated = self.db.update_submission_status(
                    config.id, new_status, user_id=principal.id
                )
        if updated == 0:
            raise NotFound("Submission not found")
        logger.info(
            "Form %s status set to %s on %d submission(s) by %s",
            slug,
            new_status,
            updated,
            principal.email,
        )
        return updated

    def delete_instance(self, slug: str, principal: Principal) -> None:
        require_admin(principal)
        config = self._load_instance(slug)
        with store_errors("delete form"):
            self.db.delete_form_config(config.id)
        logger.info("Deleted form %s", slug)
        self._remove_folder(slug)

    def _remove_folder(self, slug: str) -> None:
        prefix = folder_prefix(self.settings, slug)
        try:
            keys = [
                obj.key for obj in self.storage.list_objects(prefix) if obj.key != prefix
            ]
            if keys:
                self.storage.delete_objects(keys)
            self.storage.delete_object(prefix)
        except Exception:
            # The database rows are already gone; the folder is left orphaned.
            logger.exception("Failed to remove storage folder %s", prefix)

    def list_instances(self, principal: Principal) -> list[FormOverviewRecord]:
        with store_errors("list forms"):
            if principal.is_admin:
                return self.db.list_form_overview()
            return self.db.list_form_overview(assigned_email=principal.email)

    def status_counts(self, principal: Principal) -> dict[str, int]:
        require_admin(principal)
        with store_errors("count statuses"):
            rows = self.db.list_form_overview()
        counts = {bucket: 0 for bucket in STATUS_BUCKETS}
        for row in rows:
            bucket = "pending" if row.status in (None, "draft") else row.status
            if bucket in counts:
                counts[bucket] += 1
        return counts

    def upload_attachment(
        self,
        slug: str,
        field_name: str,
        filename: str,
        data: bytes,
        content_type: Optional[str],
        principal: Principal,
    ) -> str:
        """Store an attachment under the instance folder and return its key."""
        if not field_name or "/" in field_name or field_name in (".", ".."):
            raise BadRequest("Invalid fieldName")
        config = self._load_instance(slug)
        require_access(principal, config.assigned_email, "write")
        extension = os.path.splitext(filename or "")[1]
        key = f"{folder_prefix(self.settings, config.slug)}{field_name}{extension}"
        with store_errors("upload file"):
            self.storage.put_bytes(
                key, data, content_type or "application/octet-stream"
            )
        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return key
