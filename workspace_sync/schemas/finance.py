from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.strings import to_camel_case

Direction = Literal["income", "expense"]
WalletKind = Literal["checking", "savings", "cash", "investment", "other"]
CategoryKind = Literal["essential", "growth", "fun", "other"]


class FinanceModel(BaseModel):
    """Finance records travel inside one camelCase JSON blob per user."""

    model_config = ConfigDict(alias_generator=to_camel_case, populate_by_name=True)


class Wallet(FinanceModel):
    id: str
    name: str
    balance: float = 0.0
    currency: str = "USD"
    kind: WalletKind = Field(default="checking", alias="type")
    created_at: int
    updated_at: int


class Transaction(FinanceModel):
    id: str
    wallet_id: str
    amount: float = Field(..., gt=0)
    direction: Direction = Field(alias="type")
    category_id: str
    description: str = ""
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    date: int
    is_mindful: bool = False
    created_at: int
    updated_at: int


class Category(FinanceModel):
    id: str
    name: str
    kind: CategoryKind = Field(default="other", alias="type")
    color: str = "#6b7280"
    icon: str = "other"
    is_custom: bool = True
    created_at: int


class Budget(FinanceModel):
    id: str
    category_id: str
    amount: float
    period: Literal["weekly", "monthly"] = "monthly"
    start_date: int
    end_date: int
    is_active: bool = True
    created_at: int


class FinanceGoal(FinanceModel):
    id: str
    title: str
    description: Optional[str] = None
    target_amount: float
    current_amount: float = 0.0
    deadline: Optional[int] = None
    category: Literal["savings", "debt", "investment", "purchase", "other"] = "savings"
    priority: Literal["high", "medium", "low"] = "medium"
    is_completed: bool = False
    created_at: int
    updated_at: int


class FinanceSettings(FinanceModel):
    default_currency: str = "USD"
    default_wallet_id: Optional[str] = None
    reminder_enabled: bool = True
    weekly_review_day: int = Field(default=0, ge=0, le=6)
    monthly_review_day: int = Field(default=1, ge=1, le=31)
    mindful_spending_enabled: bool = True
    export_format: Literal["csv", "pdf"] = "csv"


class FinanceData(FinanceModel):
    wallets: Dict[str, Wallet] = Field(default_factory=dict)
    transactions: Dict[str, Transaction] = Field(default_factory=dict)
    categories: Dict[str, Category] = Field(default_factory=dict)
    budgets: Dict[str, Budget] = Field(default_factory=dict)
    goals: Dict[str, FinanceGoal] = Field(default_factory=dict)
    settings: FinanceSettings = Field(default_factory=FinanceSettings)


FINANCE_SECTIONS = ("wallets", "transactions", "categories", "budgets", "goals", "settings")
