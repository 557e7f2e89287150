import pathlib
import sys

import pytest
import pytest_asyncio

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from workspace_sync.controller.workspace import WorkspaceController  # noqa: E402
from workspace_sync.services.bundle import WorkspaceServices  # noqa: E402

from fakes import FakeAuth, FakeStore  # noqa: E402


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def services(store, auth) -> WorkspaceServices:
    return WorkspaceServices.build(store, auth)


@pytest.fixture
def controller(auth, services):
    workspace = WorkspaceController(auth, services, load_timeout=1.0)
    yield workspace
    workspace.dispose()


@pytest_asyncio.fixture
async def ready(controller, auth):
    auth.sign_in_as("user-1", "ada@example.com", emit=False)
    assert await controller.load_for_user("user-1")
    return controller
