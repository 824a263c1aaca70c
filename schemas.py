import datetime as dt
import math
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from models import AccountType, GoalPeriod, TransactionType
from periods import local_today


class AccountValidationError(ValueError):
    def __init__(self, messages: list[str]):
        self.messages = messages
        super().__init__("; ".join(messages))

    @classmethod
    def from_validation(cls, exc: ValidationError) -> "AccountValidationError":
        messages = []
        for error in exc.errors():
            message = str(error.get("msg", ""))
            messages.append(message.removeprefix("Value error, "))
        return cls(messages)


def parse_amount_cents(value: Union[str, int, float, Decimal, None]) -> int:
    if value is None:
        return 0
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        amount = Decimal(str(value))
    else:
        clean = str(value).strip().replace("€", "").replace("$", "").replace(" ", "")
        if not clean:
            return 0
        clean = clean.replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    return int((amount * 100).quantize(Decimal("1")))


def parse_amount_filter(value: Optional[str]) -> Optional[float]:
    """Lenient amount parsing for report filters; ``None`` means no bound."""
    text = re.sub(r"[\s']", "", value or "")
    clean = re.sub(r"[^0-9,.\-]", "", text)
    if not clean:
        return None

    if "," in clean and "." in clean:
        decimal_sep = "," if clean.rfind(",") > clean.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        clean = clean.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif "," in clean:
        parts = clean.split(",")
        is_decimal = len(parts) == 2 and (len(parts[1]) <= 3 or len(parts[0]) > 2)
        clean = clean.replace(",", "." if is_decimal else "")
    elif "." in clean:
        parts = clean.split(".")
        if not (len(parts) == 2 and len(parts[1]) <= 3):
            clean = clean.replace(".", "")

    try:
        amount = float(clean)
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


class AccountIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    type: AccountType = AccountType.bank
    currency_code: str
    initial_balance_cents: int = Field(
        default=0,
        validation_alias=AliasChoices("initial_balance", "initial_balance_cents"),
    )
    exclude_from_total: bool = False

    @field_validator("name")
    @classmethod
    def _name_present(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Give the account a name first.")
        if len(v.strip()) > 100:
            raise ValueError("Account name must be at most 100 characters.")
        return v.strip()

    @field_validator("currency_code")
    @classmethod
    def _currency_present(cls, v: str) -> str:
        code = v.strip().upper()
        if not code:
            raise ValueError("Currency code cannot be empty.")
        if len(code) != 3 or not code.isalpha():
            raise ValueError("Currency code must be a three-letter ISO code.")
        return code

    @field_validator("initial_balance_cents", mode="before")
    @classmethod
    def _parse_balance(cls, v: object) -> int:
        try:
            return parse_amount_cents(v)  # type: ignore[arg-type]
        except ValueError as exc:
            raise ValueError("Initial balance must be a number.") from exc


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    parent_id: Optional[int] = None
    order: int = 0

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Please enter a category name to continue.")
        return v.strip()

    @field_validator("type")
    @classmethod
    def _not_transfer(cls, v: TransactionType) -> TransactionType:
        if v == TransactionType.transfer:
            raise ValueError("Transfers do not use categories")
        return v


class TransactionIn(BaseModel):
    occurred_at: datetime
    type: TransactionType
    amount_cents: int = Field(..., ge=0)
    account_id: int
    to_account_id: Optional[int] = None
    category_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=200)
    location: Optional[str] = Field(default=None, max_length=200)
    exclude_from_reports: bool = False

    @model_validator(mode="after")
    def _check_shape(self) -> "TransactionIn":
        if self.type == TransactionType.transfer:
            if self.to_account_id is None:
                raise ValueError("Transfers require a destination account")
            if self.to_account_id == self.account_id:
                raise ValueError("Transfer accounts must differ")
            if self.category_id is not None:
                raise ValueError("Transfers cannot have a category")
        elif self.to_account_id is not None:
            raise ValueError("Only transfers can have a destination account")
        return self


class BudgetGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    category_id: Optional[int] = None
    target_cents: int = Field(..., gt=0)
    period: GoalPeriod = GoalPeriod.month


class ExtractedTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str
    amount: float = 0.0
    note: str = ""
    type: TransactionType = TransactionType.expense
    suggested_category: str = Field(
        default="",
        validation_alias=AliasChoices("suggested_category", "suggestedCategory"),
    )
    date: dt.date = Field(default_factory=local_today)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    location: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _absolute_amount(cls, v: object) -> float:
        try:
            amount = abs(float(v))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0
        return amount if math.isfinite(amount) else 0.0

    @field_validator("type", mode="before")
    @classmethod
    def _income_or_expense(cls, v: object) -> TransactionType:
        if str(v).strip().lower() == TransactionType.income.value:
            return TransactionType.income
        return TransactionType.expense

    @field_validator("confidence", mode="before")
    @classmethod
    def _default_confidence(cls, v: object) -> float:
        try:
            value = float(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.5
        if not math.isfinite(value) or value == 0:
            return 0.5
        return min(1.0, max(0.0, value))

    @field_validator("date", mode="before")
    @classmethod
    def _date_or_today(cls, v: object) -> dt.date:
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, dt.date):
            return v
        text = str(v or "").strip()
        if not text:
            return local_today()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
        try:
            return dt.date.fromisoformat(text[:10])
        except ValueError:
            return local_today()

    @field_validator("note", "suggested_category", mode="before")
    @classmethod
    def _text_or_empty(cls, v: object) -> str:
        return "" if v is None else str(v)


class ParseResult(BaseModel):
    success: bool
    transactions: list[ExtractedTransaction] = Field(default_factory=list)
    error: Optional[str] = None
    raw_response: Optional[str] = None
