import os
import tempfile
from datetime import date

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("BUDGET_DATA_DIR", tempfile.mkdtemp(prefix="budget-backup-tests-"))

from database import Base, create_database_engine, unscoped_scope  # noqa: E402
from models import (  # noqa: E402
    AccountBalance,
    Asset,
    AssetValue,
    Budget,
    BudgetGroup,
    BudgetGroupType,
    BudgetItem,
    BudgetYear,
    MonthlyValue,
    PaymentMethod,
    Transaction,
    Transfer,
    User,
)


def make_session_factory() -> sessionmaker:
    engine = create_database_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_tenant(factory: sessionmaker, email: str) -> tuple[str, int]:
    with unscoped_scope(session_factory=factory) as handle:
        user = User(email=email, name=email.split("@")[0])
        handle.add(user)
        handle.flush()
        budget = Budget(user_id=user.id, start_year=2024)
        handle.add(budget)
        handle.flush()
        return user.id, budget.id


def seed_budget(factory: sessionmaker, user_id: str, budget_id: int) -> None:
    """Give a tenant one row or more of every backed-up collection."""
    with unscoped_scope(session_factory=factory) as handle:
        checking = PaymentMethod(
            user_id=user_id, name="Checking", institution="Bank A", sort_order=0
        )
        handle.add(checking)
        handle.flush()
        credit = PaymentMethod(
            user_id=user_id,
            name="Credit Card",
            institution="Bank A",
            sort_order=1,
            settlement_day=18,
            linked_payment_method_id=checking.id,
        )
        savings = PaymentMethod(
            user_id=user_id,
            name="Savings",
            institution="Bank B",
            sort_order=2,
            is_savings_account=True,
            savings_type="epargne",
        )
        handle.add_all([credit, savings])
        handle.flush()

        y2024 = BudgetYear(budget_id=budget_id, year=2024, initial_balance="1000.00")
        y2025 = BudgetYear(budget_id=budget_id, year=2025, initial_balance="2000.50")
        income = BudgetGroup(
            budget_id=budget_id,
            name="Salary",
            slug="salary",
            type=BudgetGroupType.income,
            sort_order=0,
        )
        housing = BudgetGroup(
            budget_id=budget_id,
            name="Housing",
            slug="housing",
            type=BudgetGroupType.expense,
            sort_order=1,
        )
        handle.add_all([y2024, y2025, income, housing])
        handle.flush()

        salary = BudgetItem(
            year_id=y2024.id,
            group_id=income.id,
            name="Monthly Salary",
            slug="monthly-salary",
            sort_order=0,
            yearly_budget="500.00",
        )
        rent = BudgetItem(
            year_id=y2024.id,
            group_id=housing.id,
            name="Rent",
            slug="rent",
            sort_order=1,
            yearly_budget="18000.00",
        )
        salary_2025 = BudgetItem(
            year_id=y2025.id,
            group_id=income.id,
            name="Monthly Salary",
            slug="monthly-salary",
            sort_order=0,
            yearly_budget="500.00",
        )
        rainy_day = BudgetItem(
            year_id=y2025.id,
            group_id=None,
            name="Rainy day fund",
            slug="rainy-day-fund",
            sort_order=2,
            yearly_budget="1200.00",
            savings_account_id=savings.id,
        )
        handle.add_all([salary, rent, salary_2025, rainy_day])
        handle.flush()

        handle.add_all(
            [
                MonthlyValue(item_id=salary.id, month=1, budget="5000.00", actual="5000.00"),
                MonthlyValue(item_id=salary.id, month=2, budget="5000.00", actual="4999.99"),
                MonthlyValue(item_id=rent.id, month=1, budget="-1500.00", actual="-1500.00"),
                Transaction(
                    year_id=y2024.id,
                    item_id=salary.id,
                    date=date(2024, 1, 15),
                    description="January salary",
                    third_party="Employer",
                    payment_method_id=checking.id,
                    amount="5000.00",
                    accounting_month=1,
                    accounting_year=2024,
                ),
                Transaction(
                    year_id=y2024.id,
                    item_id=rent.id,
                    date=date(2024, 1, 20),
                    description="January rent",
                    comment="paid late",
                    third_party="Landlord",
                    payment_method_id=credit.id,
                    amount="-1500.00",
                    accounting_month=2,
                    accounting_year=2024,
                    warning="Amount differs from last month",
                ),
            ]
        )

        real_estate = Asset(budget_id=budget_id, name="Real Estate", sort_order=0)
        handle.add(real_estate)
        handle.flush()
        apartment = Asset(
            budget_id=budget_id,
            name="Apartment",
            sort_order=1,
            parent_asset_id=real_estate.id,
        )
        handle.add(apartment)
        handle.flush()

        handle.add_all(
            [
                AssetValue(asset_id=real_estate.id, year_id=y2024.id, value="250000.00"),
                AssetValue(asset_id=apartment.id, year_id=y2024.id, value="180000.25"),
                Transfer(
                    year_id=y2024.id,
                    date=date(2024, 3, 1),
                    amount="300.00",
                    description="Monthly savings",
                    source_account_id=checking.id,
                    destination_account_id=savings.id,
                    accounting_month=3,
                    accounting_year=2024,
                ),
                AccountBalance(
                    year_id=y2024.id, payment_method_id=checking.id, initial_balance="1200.00"
                ),
                AccountBalance(
                    year_id=y2024.id, payment_method_id=savings.id, initial_balance="8000.00"
                ),
            ]
        )


SEEDED_COUNTS = {
    "paymentMethods": 3,
    "budgetYears": 2,
    "budgetGroups": 2,
    "budgetItems": 4,
    "monthlyValues": 3,
    "transactions": 2,
    "assets": 2,
    "assetValues": 2,
    "transfers": 1,
    "accountBalances": 2,
}


@pytest.fixture
def session_factory() -> sessionmaker:
    return make_session_factory()


@pytest.fixture
def tenants(session_factory):
    """Tenant A with a full budget and tenant B with an empty one."""
    user_a, budget_a = create_tenant(session_factory, "alice@example.com")
    user_b, budget_b = create_tenant(session_factory, "bob@example.com")
    seed_budget(session_factory, user_a, budget_a)
    return {"a": (user_a, budget_a), "b": (user_b, budget_b)}
