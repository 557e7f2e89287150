"""
Wallet arithmetic for the finance aggregate.

Every function here is pure: it takes the current ``FinanceData`` and returns the
sub-collections that must be written back *together*. The controller hands both to a
single aggregate write so a transaction never exists without its balance change.
"""

from typing import Dict, List, Optional, Tuple

from ..schemas.finance import FinanceData, Transaction, Wallet

Wallets = Dict[str, Wallet]
Transactions = Dict[str, Transaction]


def signed_amount(transaction: Transaction) -> float:
    return transaction.amount if transaction.direction == "income" else -transaction.amount


def _adjust(wallets: Wallets, wallet_id: str, delta: float, updated_at: int) -> Wallets:
    wallet = wallets.get(wallet_id)
    if wallet is None:
        raise KeyError(f"Wallet {wallet_id} not found")
    adjusted = dict(wallets)
    adjusted[wallet_id] = wallet.model_copy(update={"balance": round(wallet.balance + delta, 2), "updated_at": updated_at})
    return adjusted


def apply_transaction(finance: FinanceData, transaction: Transaction) -> Tuple[Wallets, Transactions]:
    if transaction.id in finance.transactions:
        raise ValueError(f"Transaction {transaction.id} already recorded")
    wallets = _adjust(finance.wallets, transaction.wallet_id, signed_amount(transaction), transaction.updated_at)
    transactions = {**finance.transactions, transaction.id: transaction}
    return wallets, transactions


def revert_transaction(finance: FinanceData, transaction_id: str, updated_at: int) -> Tuple[Wallets, Transactions]:
    transaction = finance.transactions.get(transaction_id)
    if transaction is None:
        raise KeyError(f"Transaction {transaction_id} not found")
    transactions = {key: value for key, value in finance.transactions.items() if key != transaction_id}
    if transaction.wallet_id not in finance.wallets:
        # Wallet already gone: nothing left to re-balance.
        return dict(finance.wallets), transactions
    wallets = _adjust(finance.wallets, transaction.wallet_id, -signed_amount(transaction), updated_at)
    return wallets, transactions


def transactions_for_wallet(finance: FinanceData, wallet_id: str) -> List[Transaction]:
    matches = [transaction for transaction in finance.transactions.values() if transaction.wallet_id == wallet_id]
    return sorted(matches, key=lambda transaction: transaction.date, reverse=True)


def spending_by_category(finance: FinanceData, start: Optional[int] = None, end: Optional[int] = None) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for transaction in finance.transactions.values():
        if transaction.direction != "expense":
            continue
        if start is not None and transaction.date < start:
            continue
        if end is not None and transaction.date >= end:
            continue
        totals[transaction.category_id] = round(totals.get(transaction.category_id, 0.0) + transaction.amount, 2)
    return totals


def total_balance(finance: FinanceData, currency: Optional[str] = None) -> float:
    wanted = currency or finance.settings.default_currency
    return round(sum(wallet.balance for wallet in finance.wallets.values() if wallet.currency == wanted), 2)
