"""
Folder listings that merge live object storage with folder names and
ownership from the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from dokasah.access import Principal
from dokasah.config import Settings
from dokasah.db import DbClient
from dokasah.errors import Forbidden, store_errors
from dokasah.folders import FolderNames
from dokasah.forms import public_url
from dokasah.storage import StorageClient


@dataclass
class FileEntry:
    key: str
    size: int
    last_modified: Optional[datetime]
    storage_class: Optional[str]
    url: str

    def as_dict(self) -> dict:
        return {
            "key": self.key,
            "lastModified": self.last_modified,
            "size": self.size,
            "storageClass": self.storage_class,
            "url": self.url,
        }


@dataclass
class FolderEntry:
    slug: str
    name: str

    def as_dict(self) -> dict:
        return {"slug": self.slug, "name": self.name}


@dataclass
class FolderListing:
    files: list[FileEntry] = field(default_factory=list)
    folders: list[FolderEntry] = field(default_factory=list)


def normalize_prefix(path: str) -> str:
    prefix = (path or "").lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


class StorageReconciler:
    def __init__(
        self,
        db: DbClient,
        storage: StorageClient,
        settings: Settings,
        folder_names: FolderNames,
    ):
        self.db = db
        self.storage = storage
        self.settings = settings
        self.folder_names = folder_names

    def _check_prefix(self, prefix: str, owned: set[str]) -> None:
        """Non-admins may not list inside another owner's instance folder."""
        base = self.settings.storage_base_prefix.strip("/") + "/"
        if not prefix.startswith(base):
            return
        slug = prefix[len(base) :].split("/", 1)[0]
        if slug and slug not in owned:
            raise Forbidden("Access denied")

    def list_folder(self, path: str, principal: Principal) -> FolderListing:
        prefix = normalize_prefix(path)

        owned: Optional[set[str]] = None
        if not principal.is_admin:
            with store_errors("load owned forms"):
                owned = self.db.list_slugs_for_email(principal.email)
            self._check_prefix(prefix, owned)

        with store_errors("list storage folder"):
            objects = self.storage.list_objects(prefix)

        files: list[FileEntry] = []
        seen: dict[str, None] = {}
        for obj in objects:
            relative = obj.key[len(prefix) :]
            if not relative:
                continue
            parts = relative.split("/")
            if len(parts) > 1:
                if parts[0]:
                    seen.setdefault(parts[0], None)
                continue
            files.append(
                FileEntry(
                    key=relative,
                    size=obj.size,
                    last_modified=obj.last_modified,
                    storage_class=obj.storage_class,
                    url=public_url(self.settings, obj.key),
                )
            )

        slugs = list(seen)
        if owned is not None:
            slugs = [slug for slug in slugs if slug in owned]

        names = self.folder_names.resolve_names(slugs) if slugs else {}
        folders = [FolderEntry(slug=slug, name=names.get(slug, slug)) for slug in slugs]
        return FolderListing(files=files, folders=folders)
