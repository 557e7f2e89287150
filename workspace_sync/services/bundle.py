from dataclasses import dataclass

from ..session.auth import AuthService
from ..store.rest import RemoteStore
from .calendar import CalendarService
from .finance import FinanceService
from .health import HealthService
from .pages import PagesService
from .profiles import ProfileService
from .tasks import TasksService


@dataclass
class WorkspaceServices:
    pages: PagesService
    tasks: TasksService
    calendar: CalendarService
    finance: FinanceService
    health: HealthService
    profiles: ProfileService

    @classmethod
    def build(cls, store: RemoteStore, auth: AuthService) -> "WorkspaceServices":
        return cls(
            pages=PagesService(store, auth),
            tasks=TasksService(store, auth),
            calendar=CalendarService(store, auth),
            finance=FinanceService(store, auth),
            health=HealthService(store, auth),
            profiles=ProfileService(store, auth),
        )
