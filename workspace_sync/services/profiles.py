import logging
from typing import Any, Dict, Optional

from ..errors import StoreError
from ..utils.timestamps import now_iso
from .base import StoreBackedService

logger = logging.getLogger(__name__)


class ProfileService(StoreBackedService):
    table = "profiles"

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._store.select_one(self.table, match={"id": user_id})
        except StoreError as error:
            self._log_failure("select", error)
            return None

    async def ensure(self, user_id: str, email: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the profile row for ``user_id``, creating it when missing."""
        existing = await self.get(user_id)
        if existing is not None:
            return existing
        row: Dict[str, Any] = {"id": user_id, "email": email or ""}
        if email:
            row["username"] = email.split("@")[0]
        try:
            created = await self._store.upsert(self.table, row, on_conflict="id")
        except StoreError as error:
            self._log_failure("upsert", error)
            return None
        logger.info("Created profile for %s", user_id)
        return created

    async def update(self, user_id: str, username: Optional[str] = None, email: Optional[str] = None) -> Optional[Dict[str, Any]]:
        values: Dict[str, Any] = {"updated_at": now_iso()}
        if username:
            values["username"] = username
        if email:
            values["email"] = email
        try:
            rows = await self._store.update(self.table, values, match={"id": user_id})
        except StoreError as error:
            self._log_failure("update", error)
            return None
        return rows[0] if rows else None
