from contextlib import contextmanager
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Iterator, NoReturn

from fastapi import HTTPException, Request

from ..controller.workspace import WorkspaceController
from ..errors import NotAuthenticatedError, WorkspaceError
from ..session.auth import AuthService


def controller_for(request: Request) -> WorkspaceController:
    return request.app.state.controller


def auth_for(request: Request) -> AuthService:
    return request.app.state.auth


def serialize(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: serialize(val) for key, val in value.items()}
    return value


@contextmanager
def workspace_errors() -> Iterator[None]:
    try:
        yield
    except NotAuthenticatedError as error:
        raise HTTPException(status_code=401, detail=str(error)) from error
    except KeyError as error:
        raise HTTPException(status_code=404, detail=error.args[0] if error.args else "Not found") from error
    except (WorkspaceError, ValueError) as error:
        raise HTTPException(status_code=400, detail=str(error)) from error


def persistence_failed(controller: WorkspaceController, fallback: str) -> NoReturn:
    raise HTTPException(status_code=502, detail=controller.error or fallback)
