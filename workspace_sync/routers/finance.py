from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

from ..domain.ledger import total_balance
from .deps import controller_for, persistence_failed, serialize, workspace_errors

router = APIRouter(prefix="/finance", tags=["finance"])


@router.get("")
async def finance_data(request: Request) -> Dict[str, Any]:
    finance = controller_for(request).state.finance_data
    return {"finance": serialize(finance), "total_balance": total_balance(finance)}


@router.patch("")
async def update_finance(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        saved = await controller.update_finance_data(**body)
    if not saved:
        persistence_failed(controller, "Failed to save finance data")
    return {"finance": serialize(controller.state.finance_data)}


@router.post("/wallets")
async def add_wallet(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    if not body.get("name"):
        raise HTTPException(status_code=400, detail="name required")
    with workspace_errors():
        wallet_id = await controller.add_wallet(
            body["name"],
            balance=float(body.get("balance") or 0.0),
            currency=body.get("currency") or "USD",
            kind=body.get("type") or "checking",
        )
    if wallet_id is None:
        persistence_failed(controller, "Failed to add wallet")
    return {"wallet": serialize(controller.state.finance_data.wallets[wallet_id])}


@router.get("/wallets/{wallet_id}/transactions")
async def wallet_transactions(request: Request, wallet_id: str) -> Dict[str, Any]:
    return {"transactions": serialize(controller_for(request).transactions_for_wallet(wallet_id))}


@router.post("/transactions")
async def record_transaction(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    controller = controller_for(request)
    missing = [key for key in ("walletId", "amount", "type", "categoryId") if body.get(key) in (None, "")]
    if missing:
        raise HTTPException(status_code=400, detail=f"missing fields: {', '.join(missing)}")
    with workspace_errors():
        transaction_id = await controller.record_transaction(
            body["walletId"],
            body["amount"],
            body["type"],
            body["categoryId"],
            description=body.get("description") or "",
            date=body.get("date"),
            tags=body.get("tags"),
            is_mindful=bool(body.get("isMindful")),
            notes=body.get("notes"),
        )
    if transaction_id is None:
        persistence_failed(controller, "Failed to record transaction")
    finance = controller.state.finance_data
    transaction = finance.transactions[transaction_id]
    return {"transaction": serialize(transaction), "wallet": serialize(finance.wallets[transaction.wallet_id])}


@router.delete("/transactions/{transaction_id}")
async def delete_transaction(request: Request, transaction_id: str) -> Dict[str, Any]:
    controller = controller_for(request)
    with workspace_errors():
        deleted = await controller.delete_transaction(transaction_id)
    if not deleted:
        persistence_failed(controller, "Failed to delete transaction")
    return {"deleted": transaction_id}


@router.get("/spending")
async def spending(request: Request, start: Optional[int] = None, end: Optional[int] = None) -> Dict[str, Any]:
    return {"by_category": controller_for(request).spending_by_category(start, end)}
