"""
Display names for instance folders in object storage.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable

from dokasah.access import Principal, require_admin
from dokasah.db import DbClient
from dokasah.errors import NotFound, store_errors

logger = logging.getLogger(__name__)


class FolderNames:
    def __init__(self, db: DbClient):
        self.db = db

    def rename(self, slug: str, display_name: str, principal: Principal) -> bool:
        """Upsert the display name for `slug`. Returns True when a row was created."""
        require_admin(principal)
        with store_errors("rename folder"):
            existing = self.db.get_folder_name(slug)
            if existing is not None:
                form_config_id = existing.form_config_id
            else:
                config = self.db.get_form_config(slug)
                if config is None:
                    raise NotFound("Form not found for this slug")
                form_config_id = config.id
            created = self.db.upsert_folder_name(form_config_id, slug, display_name)
        logger.info(
            "%s folder name for %s: %s",
            "Created" if created else "Updated",
            slug,
            display_name,
        )
        return created

    def resolve_names(self, slugs: Iterable[str]) -> Dict[str, str]:
        """Names for the slugs that have one; callers fall back to the slug."""
        with store_errors("resolve folder names"):
            return self.db.get_folder_names(slugs)
