from __future__ import annotations

import logging
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from budgets import (
    GoalProgress,
    category_group_matcher,
    completion_points,
    daily_budget_success,
    goal_progress,
)
from config import get_settings
from gamification import (
    PointsAward,
    apply_points,
    budget_completion_points,
    leaderboard_snapshot,
    savings_rate,
    transaction_points,
    update_streak,
)
from ledger import (
    AccountView,
    CategoryView,
    Entry,
    Expense,
    GoalView,
    Income,
    Transfer,
)
from models import (
    Account,
    BudgetGoal,
    Category,
    PlayerStats,
    Transaction,
    TransactionType,
)
from periods import local_now, month_period
from reporting import BalanceCheck, summarize_period, verify_account_balance
from schemas import (
    AccountIn,
    AccountValidationError,
    BudgetGoalIn,
    CategoryIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: tuple[tuple[str, TransactionType], ...] = tuple(
    [
        (name, TransactionType.expense)
        for name in (
            "Food",
            "Groceries",
            "Dining",
            "Lifestyle",
            "Fitness",
            "Travel",
            "Transport",
            "Home",
            "Bills",
            "Gear",
            "Creativity",
            "Outdoors",
            "Work Expenses",
            "Entertainment",
            "Pets",
            "Family",
            "Health",
            "Education",
            "Utilities",
            "Rent",
        )
    ]
    + [
        (name, TransactionType.income)
        for name in (
            "Side Hustle",
            "Client Work",
            "Salary",
            "Consulting",
            "Resale",
            "Creative Sales",
            "Investing",
            "Bonus",
            "Dividends",
        )
    ]
)


def get_current_user_id() -> int:
    return 1


def cents_to_units(cents: Optional[int]) -> float:
    return (cents or 0) / 100


def units_to_cents(amount: float) -> int:
    return int(
        (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def to_entry(txn: Transaction) -> Entry:
    common: dict[str, Any] = dict(
        id=str(txn.id),
        date=txn.occurred_at,
        amount=cents_to_units(txn.amount_cents),
        account_id=str(txn.account_id),
        note=txn.note or "",
        exclude_from_reports=bool(txn.exclude_from_reports),
        created_at=txn.created_at,
        location=txn.location,
    )
    if txn.type == TransactionType.transfer:
        return Transfer(to_account_id=str(txn.to_account_id), **common)
    category = txn.category.name if txn.category else ""
    if txn.type == TransactionType.income:
        return Income(category=category, **common)
    return Expense(category=category, **common)


def to_account_view(account: Account) -> AccountView:
    return AccountView(
        id=str(account.id),
        name=account.name,
        type=account.type,
        currency=account.currency_code,
        balance=cents_to_units(account.balance_cents),
        initial_balance=cents_to_units(account.initial_balance_cents),
        exclude_from_total=bool(account.exclude_from_total),
        is_archived=account.archived_at is not None,
    )


def to_category_view(category: Category) -> CategoryView:
    return CategoryView(
        id=str(category.id),
        name=category.name,
        type=category.type,
        parent_id=str(category.parent_id) if category.parent_id else None,
    )


def to_goal_view(goal: BudgetGoal) -> GoalView:
    return GoalView(
        id=str(goal.id),
        name=goal.name,
        target=cents_to_units(goal.target_cents),
        period=goal.period,
        category=goal.category.name if goal.category else None,
        created_at=goal.created_at,
    )


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, include_archived: bool = False) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.name)
        )
        if not include_archived:
            stmt = stmt.where(Account.archived_at.is_(None))
        return list(self.session.scalars(stmt).all())

    def views(self, include_archived: bool = False) -> list[AccountView]:
        return [to_account_view(a) for a in self.list_all(include_archived)]

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        return account

    def create(self, data: Union[AccountIn, Mapping[str, Any]]) -> Account:
        if not isinstance(data, AccountIn):
            try:
                data = AccountIn(**dict(data))
            except ValidationError as exc:
                raise AccountValidationError.from_validation(exc) from exc

        existing = self.session.scalar(
            select(Account).where(
                Account.user_id == self.user_id,
                func.lower(Account.name) == data.name.lower(),
            )
        )
        if existing:
            raise AccountValidationError(
                ["An account with this name already exists."]
            )

        account = Account(
            user_id=self.user_id,
            name=data.name,
            type=data.type,
            currency_code=data.currency_code,
            balance_cents=data.initial_balance_cents,
            initial_balance_cents=data.initial_balance_cents,
            exclude_from_total=data.exclude_from_total,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        logger.info(
            f"account_created: id={account.id} currency={account.currency_code}"
        )
        return account

    def archive(self, account_id: int) -> None:
        account = self.get(account_id)
        account.archived_at = datetime.utcnow()
        self.session.commit()

    def restore(self, account_id: int) -> None:
        account = self.get(account_id)
        account.archived_at = None
        self.session.commit()

    def set_excluded_from_total(self, account_id: int, excluded: bool) -> None:
        account = self.get(account_id)
        account.exclude_from_total = excluded
        self.session.commit()

    def verify(self, account_id: int) -> BalanceCheck:
        account = self.get(account_id)
        entries = TransactionService(self.session, self.user_id).entries(
            account_id=account_id
        )
        return verify_account_balance(to_account_view(account), entries)

    def recalculate(self, account_id: int) -> Account:
        check = self.verify(account_id)
        account = self.get(account_id)
        if not check.matches:
            logger.warning(
                f"account_balance_drift: id={account_id} "
                f"recorded={check.recorded:.2f} expected={check.expected:.2f}"
            )
            account.balance_cents = units_to_cents(check.expected)
            self.session.commit()
        return account


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, include_archived: bool = False) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.order, Category.name)
        )
        if not include_archived:
            stmt = stmt.where(Category.archived_at.is_(None))
        return list(self.session.scalars(stmt).all())

    def views(self, include_archived: bool = False) -> list[CategoryView]:
        return [to_category_view(c) for c in self.list_all(include_archived)]

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == data.type,
                func.lower(Category.name) == data.name.lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        if data.parent_id is not None:
            parent = self.get(data.parent_id)
            if parent.type != data.type:
                raise ValueError("Parent category type mismatch")
            if parent.parent_id is not None:
                raise ValueError("Parent category cannot itself have a parent")
        category = Category(
            user_id=self.user_id,
            name=data.name,
            type=data.type,
            parent_id=data.parent_id,
            order=data.order,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def seed_defaults(self) -> int:
        existing = {
            (c.type, c.name.lower()) for c in self.list_all(include_archived=True)
        }
        added = 0
        for order, (name, type_) in enumerate(DEFAULT_CATEGORIES):
            if (type_, name.lower()) in existing:
                continue
            self.session.add(
                Category(user_id=self.user_id, name=name, type=type_, order=order)
            )
            added += 1
        if added:
            self.session.commit()
        logger.info(f"categories_seeded: user_id={self.user_id} added={added}")
        return added

    def rename(self, category_id: int, name: str) -> Category:
        category = self.get(category_id)
        if not name.strip():
            raise ValueError("Please enter a category name to continue.")
        category.name = name.strip()
        self.session.commit()
        return category

    def archive(self, category_id: int) -> None:
        category = self.get(category_id)
        category.archived_at = datetime.utcnow()
        self.session.commit()

    def restore(self, category_id: int) -> None:
        category = self.get(category_id)
        category.archived_at = None
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def has_any(self) -> bool:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == self.user_id
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def _active_account(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        if account.archived_at is not None:
            raise ValueError("Account is archived")
        return account

    def _apply_balance(self, txn: Transaction, sign: int) -> None:
        amount = txn.amount_cents * sign
        source = self.session.get(Account, txn.account_id)
        if txn.type == TransactionType.income:
            source.balance_cents += amount
        elif txn.type == TransactionType.expense:
            source.balance_cents -= amount
        else:
            target = self.session.get(Account, txn.to_account_id)
            source.balance_cents -= amount
            target.balance_cents += amount

    def create(
        self, data: TransactionIn, *, award_points: bool = True
    ) -> Transaction:
        self._active_account(data.account_id)
        if data.to_account_id is not None:
            self._active_account(data.to_account_id)
        if data.category_id is not None:
            category = self.session.get(Category, data.category_id)
            if not category or category.user_id != self.user_id:
                raise ValueError("Category not found")
            if category.type != data.type:
                raise ValueError("Category type mismatch")

        is_first = not self.has_any()
        txn = Transaction(
            user_id=self.user_id,
            occurred_at=data.occurred_at,
            type=data.type,
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            account_id=data.account_id,
            to_account_id=data.to_account_id,
            note=data.note,
            location=data.location,
            exclude_from_reports=data.exclude_from_reports,
        )
        try:
            self.session.add(txn)
            self.session.flush()
            self._apply_balance(txn, 1)
            if award_points:
                PlayerStatsService(self.session, self.user_id).record_transaction(
                    is_first=is_first, commit=False
                )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self.session.refresh(txn)
        logger.info(f"transaction_created: id={txn.id} type={txn.type.value}")
        return txn

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self._apply_balance(txn, -1)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id}")

    def list(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        account_id: Optional[int] = None,
        type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.occurred_at.desc(), Transaction.created_at.desc())
        )
        if start:
            stmt = stmt.where(
                Transaction.occurred_at >= datetime.combine(start, time.min)
            )
        if end:
            stmt = stmt.where(
                Transaction.occurred_at <= datetime.combine(end, time.max)
            )
        if account_id is not None:
            stmt = stmt.where(
                or_(
                    Transaction.account_id == account_id,
                    Transaction.to_account_id == account_id,
                )
            )
        if type is not None:
            stmt = stmt.where(Transaction.type == type)
        return list(self.session.scalars(stmt).unique().all())

    def entries(self, **filters: Any) -> list[Entry]:
        return [to_entry(txn) for txn in self.list(**filters)]

    def recent(self, limit: int = 10) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.occurred_at.desc(), Transaction.created_at.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).unique().all())


class BudgetGoalService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[BudgetGoal]:
        stmt = (
            select(BudgetGoal)
            .options(joinedload(BudgetGoal.category))
            .where(BudgetGoal.user_id == self.user_id)
            .order_by(BudgetGoal.name)
        )
        return list(self.session.scalars(stmt).unique().all())

    def get(self, goal_id: int) -> BudgetGoal:
        goal = self.session.get(BudgetGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise ValueError("Budget goal not found")
        return goal

    def create(self, data: BudgetGoalIn) -> BudgetGoal:
        if data.category_id is not None:
            categories = CategoryService(self.session, self.user_id)
            category = categories.get(data.category_id)
            if category.type != TransactionType.expense:
                raise ValueError("Budget goals can only track expense categories")
        goal = BudgetGoal(
            user_id=self.user_id,
            name=data.name.strip(),
            category_id=data.category_id,
            target_cents=data.target_cents,
            period=data.period,
        )
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def progress(
        self, *, now: Optional[datetime] = None, account_id: Optional[int] = None
    ) -> list[GoalProgress]:
        now = now or local_now()
        categories = CategoryService(self.session, self.user_id).views(
            include_archived=True
        )
        matcher = category_group_matcher(categories)
        entries = TransactionService(self.session, self.user_id).entries(
            account_id=account_id
        )
        viewpoint = str(account_id) if account_id is not None else None
        return [
            goal_progress(
                to_goal_view(goal),
                entries,
                now=now,
                category_matches=matcher,
                viewpoint_account_id=viewpoint,
            )
            for goal in self.list_all()
        ]

    def award_completions(self, *, now: Optional[datetime] = None) -> int:
        now = now or local_now()
        points = 0
        for goal, progress in zip(self.list_all(), self.progress(now=now)):
            points += completion_points(to_goal_view(goal), progress, now.date())
        if points:
            PlayerStatsService(self.session, self.user_id).award(points)
        return points + self.award_daily_success(today=now.date())

    def award_daily_success(self, *, today: Optional[date] = None) -> int:
        today = today or local_now().date()
        stats = PlayerStatsService(self.session, self.user_id)
        if stats.get_or_create().daily_budget_awarded_on == today:
            return 0

        categories = CategoryService(self.session, self.user_id).views(
            include_archived=True
        )
        entries = TransactionService(self.session, self.user_id).entries(end=today)
        success = daily_budget_success(
            [to_goal_view(goal) for goal in self.list_all()],
            entries,
            today=today,
            category_matches=category_group_matcher(categories),
        )
        if not success:
            return 0

        points = budget_completion_points("day")
        stats.get_or_create().daily_budget_awarded_on = today
        stats.award(points)
        logger.info(f"daily_budget_success: user_id={self.user_id} day={today}")
        return points


class PlayerStatsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get_or_create(self) -> PlayerStats:
        stats = self.session.scalar(
            select(PlayerStats).where(PlayerStats.user_id == self.user_id)
        )
        if stats is None:
            stats = PlayerStats(
                user_id=self.user_id,
                total_points=0,
                level=1,
                streak_days=0,
                transactions_logged=0,
            )
            self.session.add(stats)
            self.session.flush()
        return stats

    def award(self, points: int, *, commit: bool = True) -> PointsAward:
        stats = self.get_or_create()
        result = apply_points(stats.total_points, points)
        stats.total_points = result.total_points
        stats.level = result.level
        if commit:
            self.session.commit()
        if result.leveled_up:
            logger.info(f"level_up: user_id={self.user_id} level={result.level}")
        return result

    def record_transaction(
        self,
        *,
        is_first: bool = False,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> PointsAward:
        now = now or local_now()
        stats = self.get_or_create()
        streak = update_streak(
            stats.streak_days,
            stats.streak_updated_at,
            now,
            bonus_per_day=get_settings().streak_bonus_per_day,
        )
        if streak.changed:
            stats.streak_days = streak.streak_days
            stats.streak_updated_at = now
        stats.transactions_logged += 1
        points = transaction_points(is_first) + streak.points_awarded
        return self.award(points, commit=commit)

    def snapshot(self, *, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_now().date()
        stats = self.get_or_create()
        accounts = AccountService(self.session, self.user_id).views()
        entries = TransactionService(self.session, self.user_id).entries()
        summary = summarize_period(entries, month_period(today), accounts=accounts)
        return leaderboard_snapshot(
            total_points=stats.total_points,
            streak_days=stats.streak_days,
            transactions_logged=stats.transactions_logged,
            savings_percentage=savings_rate(summary.income, summary.expense),
        )
