from dataclasses import dataclass
from typing import Any

from .config import Settings
from .controller.workspace import WorkspaceController
from .services.bundle import WorkspaceServices
from .session.auth import AuthService
from .store.rest import RemoteStore


@dataclass
class Runtime:
    auth: Any
    store: Any
    services: WorkspaceServices
    controller: WorkspaceController

    async def aclose(self) -> None:
        self.controller.dispose()
        await self.controller.drain()
        await self.store.aclose()
        await self.auth.aclose()


def build_runtime(settings: Settings) -> Runtime:
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_ANON_KEY.get_secret_value()
    auth = AuthService(url, key, timeout=settings.REQUEST_TIMEOUT_SECONDS)
    store = RemoteStore(url, key, timeout=settings.REQUEST_TIMEOUT_SECONDS, token_provider=auth.access_token)
    services = WorkspaceServices.build(store, auth)
    controller = WorkspaceController(auth, services, load_timeout=settings.LOAD_TIMEOUT_SECONDS)
    return Runtime(auth=auth, store=store, services=services, controller=controller)
