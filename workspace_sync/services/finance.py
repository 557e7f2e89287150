import logging

from pydantic import ValidationError

from ..domain.defaults import default_finance_data
from ..errors import NotAuthenticatedError, StoreError
from ..schemas.finance import FinanceData
from ..utils.timestamps import now_iso
from .base import StoreBackedService

logger = logging.getLogger(__name__)


class FinanceService(StoreBackedService):
    """The whole finance aggregate lives in one JSON ``data`` column per user."""

    table = "finance_data"

    async def get(self) -> FinanceData:
        try:
            row = await self._store.select_one(self.table, match=self._owned(), columns="data")
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("select", error)
            return default_finance_data()

        if row is None or not row.get("data"):
            logger.info("No finance data stored yet, creating defaults")
            defaults = default_finance_data()
            await self.save(defaults)
            return defaults

        try:
            return FinanceData.model_validate(row["data"])
        except ValidationError as error:
            logger.warning("Stored finance data is unreadable, using defaults: %s", error)
            return default_finance_data()

    async def save(self, finance: FinanceData) -> bool:
        try:
            row = {
                "user_id": self._user_id(),
                "data": finance.model_dump(mode="json", by_alias=True),
                "updated_at": now_iso(),
            }
            await self._store.upsert(self.table, row, on_conflict="user_id")
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("upsert", error)
            return False
        return True
