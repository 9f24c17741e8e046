"""
Tests for DailyIncomeProcessor.run_daily_accrual.
"""
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import text

from conftest import reload
from extensions import db
from models import User, Holding, Transaction
from ledger.daily_income import DailyIncomeProcessor, business_today, income_reference
from ledger.purchase import PackagePurchaseProcessor

DAY = date(2026, 10, 19)


def _buy(make_user, make_product, balance=5000, price=5000, daily_income=600, cycle_days=50):
    user = make_user(balance=balance)
    product = make_product(price=price, daily_income=daily_income, cycle_days=cycle_days)
    holding = PackagePurchaseProcessor.purchase_product(user.id, product.id)
    return user, holding


class TestAccrual:

    def test_credits_income_and_counts_down(self, make_user, make_product):
        user, holding = _buy(make_user, make_product)

        summary = DailyIncomeProcessor.run_daily_accrual(DAY)

        assert summary == {"processed": 1, "skipped": 0, "completed": 0, "failed": 0}
        assert reload(User, user.id).balance == Decimal("600")
        holding = reload(Holding, holding.id)
        assert holding.days_remaining == 49
        assert holding.last_accrued_on == DAY

        income = Transaction.query.filter_by(type="income").one()
        assert income.amount == Decimal("600")
        assert income.status == "completed"
        assert income.reference == income_reference(DAY, holding.id) == f"INC-20261019-{holding.id}"

    def test_same_day_twice_credits_once(self, make_user, make_product):
        user, _ = _buy(make_user, make_product)

        DailyIncomeProcessor.run_daily_accrual(DAY)
        second = DailyIncomeProcessor.run_daily_accrual(DAY)

        assert second["processed"] == 0
        assert second["skipped"] == 1
        assert reload(User, user.id).balance == Decimal("600")
        assert Transaction.query.filter_by(type="income").count() == 1

    def test_consecutive_days(self, make_user, make_product):
        user, holding = _buy(make_user, make_product)

        DailyIncomeProcessor.run_daily_accrual(DAY)
        DailyIncomeProcessor.run_daily_accrual(DAY + timedelta(days=1))

        assert reload(User, user.id).balance == Decimal("1200")
        assert reload(Holding, holding.id).days_remaining == 48

    def test_earlier_date_after_later_run_is_skipped(self, make_user, make_product):
        user, _ = _buy(make_user, make_product)

        DailyIncomeProcessor.run_daily_accrual(DAY)
        summary = DailyIncomeProcessor.run_daily_accrual(DAY - timedelta(days=1))

        assert summary["processed"] == 0
        assert reload(User, user.id).balance == Decimal("600")

    def test_default_date_is_business_today(self, make_user, make_product):
        _, holding = _buy(make_user, make_product)

        DailyIncomeProcessor.run_daily_accrual()

        income = Transaction.query.filter_by(type="income").one()
        assert income.reference == income_reference(business_today(), holding.id)


class TestCycleEnd:

    def test_last_day_deactivates_holding(self, make_user, make_product):
        user, holding = _buy(make_user, make_product, daily_income=600, cycle_days=2)
        assert reload(User, user.id).daily_income == Decimal("600")

        DailyIncomeProcessor.run_daily_accrual(DAY)
        summary = DailyIncomeProcessor.run_daily_accrual(DAY + timedelta(days=1))

        assert summary["completed"] == 1
        holding = reload(Holding, holding.id)
        assert holding.is_active is False
        assert holding.days_remaining == 0
        assert holding.completed_at is not None

        user = reload(User, user.id)
        assert user.balance == Decimal("1200")
        assert user.daily_income == Decimal("0")

    def test_finished_holdings_are_not_due(self, make_user, make_product):
        user, _ = _buy(make_user, make_product, cycle_days=1)

        DailyIncomeProcessor.run_daily_accrual(DAY)
        summary = DailyIncomeProcessor.run_daily_accrual(DAY + timedelta(days=1))

        assert summary == {"processed": 0, "skipped": 0, "completed": 0, "failed": 0}
        assert reload(User, user.id).balance == Decimal("600")

    def test_only_finished_holding_leaves_daily_income(self, make_user, make_product):
        user = make_user(balance=10000)
        short = make_product(price=5000, daily_income=600, cycle_days=1)
        long = make_product(price=5000, daily_income=300, cycle_days=30)
        PackagePurchaseProcessor.purchase_product(user.id, short.id)
        PackagePurchaseProcessor.purchase_product(user.id, long.id)

        DailyIncomeProcessor.run_daily_accrual(DAY)

        user = reload(User, user.id)
        assert user.daily_income == Decimal("300")
        assert user.balance == Decimal("900")


    def test_zero_income_holding_still_runs_its_cycle(self, make_user, make_product):
        user, holding = _buy(make_user, make_product, daily_income=0, cycle_days=2)

        first = DailyIncomeProcessor.run_daily_accrual(DAY)
        assert first == {"processed": 1, "skipped": 0, "completed": 0, "failed": 0}
        assert reload(Holding, holding.id).days_remaining == 1

        second = DailyIncomeProcessor.run_daily_accrual(DAY + timedelta(days=1))
        assert second == {"processed": 1, "skipped": 0, "completed": 1, "failed": 0}

        holding = reload(Holding, holding.id)
        assert holding.is_active is False
        assert holding.days_remaining == 0
        assert reload(User, user.id).balance == Decimal("0")
        assert Transaction.query.filter_by(type="income").count() == 0

    def test_zero_income_day_is_not_repeated(self, make_user, make_product):
        _, holding = _buy(make_user, make_product, daily_income=0, cycle_days=5)

        DailyIncomeProcessor.run_daily_accrual(DAY)
        again = DailyIncomeProcessor.run_daily_accrual(DAY)

        assert again["skipped"] == 1
        assert reload(Holding, holding.id).days_remaining == 4


class TestFailureIsolation:

    def test_one_bad_holding_does_not_stop_the_run(self, make_user, make_product):
        good_user, good = _buy(make_user, make_product)
        _, bad = _buy(make_user, make_product)

        # owner vanished (no FK enforcement in SQLite)
        db.session.execute(text("UPDATE holdings SET user_id = 9999 WHERE id = :id"), {"id": bad.id})
        db.session.commit()

        summary = DailyIncomeProcessor.run_daily_accrual(DAY)

        assert summary["processed"] == 1
        assert summary["failed"] == 1
        assert summary["skipped"] == 1
        assert reload(User, good_user.id).balance == Decimal("600")

        bad = reload(Holding, bad.id)
        assert bad.days_remaining == 50
        assert bad.last_accrued_on is None
        assert Transaction.query.filter_by(type="income").count() == 1
