from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import select

from database import TenantScopedSession, UnscopedSession
from models import Budget, User


class BudgetService:
    def __init__(self, tx: TenantScopedSession, user_id: Optional[str] = None) -> None:
        if not isinstance(tx, TenantScopedSession):
            raise TypeError(f"Expected a TenantScopedSession, got {type(tx).__name__}")
        self.tx = tx
        self.user_id = user_id or tx.user_id
        if self.user_id != tx.user_id:
            raise ValueError("Database handle is scoped to a different user")

    def get(self, budget_id: int) -> Budget:
        budget = self.tx.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def get_or_create_default(self) -> Budget:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.id)
            .limit(1)
        )
        existing = self.tx.scalar(stmt)
        if existing:
            return existing

        if not self.tx.get(User, self.user_id):
            raise ValueError("User not found")

        budget = Budget(user_id=self.user_id, start_year=date.today().year)
        self.tx.add(budget)
        self.tx.flush()
        return budget


def list_all_budgets(handle: UnscopedSession) -> list[tuple[Budget, User]]:
    if not isinstance(handle, UnscopedSession):
        raise TypeError("Listing every budget requires an UnscopedSession")
    stmt = select(Budget, User).join(User, User.id == Budget.user_id).order_by(Budget.id)
    return [(budget, user) for budget, user in handle.execute(stmt).all()]
