from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from .deps import auth_for, controller_for, serialize

router = APIRouter(prefix="/session", tags=["session"])


def _credentials(body: Dict[str, Any]) -> tuple:
    email = body.get("email")
    password = body.get("password")
    if not isinstance(email, str) or not isinstance(password, str):
        raise HTTPException(status_code=400, detail="email and password are required")
    return email, password


@router.get("")
async def current_session(request: Request) -> Dict[str, Any]:
    auth = auth_for(request)
    return {"user": serialize(auth.user), "loading": auth.loading}


@router.post("/sign-up")
async def sign_up(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    email, password = _credentials(body)
    outcome = await auth_for(request).sign_up(email, password)
    if not outcome.ok:
        raise HTTPException(status_code=400, detail=outcome.error)
    await controller_for(request).drain()
    return {"user": serialize(outcome.user), "signed_in": auth_for(request).session is not None}


@router.post("/sign-in")
async def sign_in(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    email, password = _credentials(body)
    outcome = await auth_for(request).sign_in(email, password)
    if not outcome.ok:
        raise HTTPException(status_code=401, detail=outcome.error)
    controller = controller_for(request)
    # Signing in schedules the workspace load; report its result.
    await controller.drain()
    return {"user": serialize(outcome.user), "workspace": serialize(controller.summary())}


@router.post("/sign-out")
async def sign_out(request: Request) -> Dict[str, Any]:
    outcome = await auth_for(request).sign_out()
    if not outcome.ok:
        raise HTTPException(status_code=400, detail=outcome.error)
    return {"status": "signed_out"}


@router.post("/reset-password")
async def reset_password(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    email = body.get("email")
    if not isinstance(email, str) or not email:
        raise HTTPException(status_code=400, detail="email required")
    outcome = await auth_for(request).reset_password(email)
    if not outcome.ok:
        raise HTTPException(status_code=400, detail=outcome.error)
    return {"status": "sent"}


@router.post("/refresh")
async def refresh(request: Request) -> Dict[str, Any]:
    outcome = await auth_for(request).refresh_session()
    if not outcome.ok:
        raise HTTPException(status_code=401, detail=outcome.error)
    return {"user": serialize(outcome.user)}
