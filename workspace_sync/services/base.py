import logging
from typing import Any, Dict

from ..errors import NotAuthenticatedError
from ..session.auth import AuthService
from ..store.rest import RemoteStore

logger = logging.getLogger(__name__)


class StoreBackedService:
    """Shared plumbing for the per-table services.

    Subclasses never let ``StoreError`` escape: each public method logs the failure and
    returns its own sentinel (``[]``, ``None``, ``False`` or a default record).
    """

    table: str = ""

    def __init__(self, store: RemoteStore, auth: AuthService) -> None:
        self._store = store
        self._auth = auth

    def _user_id(self) -> str:
        user = self._auth.user
        if user is None:
            raise NotAuthenticatedError()
        return user.id

    def _owned(self, **match: Any) -> Dict[str, Any]:
        return {"user_id": self._user_id(), **match}

    def _log_failure(self, action: str, error: Exception) -> None:
        logger.error("%s on %s failed: %s", action, self.table, error)
