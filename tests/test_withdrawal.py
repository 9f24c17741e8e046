"""
Tests for the withdrawal rules and the admin approve/reject paths.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import LUANDA, OPEN_HOURS, reload
from models import User, Transaction
from ledger.exceptions import (
    AmountOutOfRange, InsufficientBalance, InvalidTransactionState, NoBankInfo,
    NoDeposit, NoProduct, NotWeekday, OutsideBusinessHours, TransactionNotFound, ValidationError,
)
from ledger.withdrawal import WithdrawalConfig, WithdrawalProcessor


@pytest.fixture
def eligible_user(make_user, add_bank_info):
    def _eligible_user(balance=10000, **kwargs):
        user = make_user(balance=balance, has_product=True, has_deposited=True, **kwargs)
        add_bank_info(user)
        return user
    return _eligible_user


def _at(hour, minute=0, day=19):
    return datetime(2026, 10, day, hour, minute, tzinfo=LUANDA)


class TestRequestWithdrawal:

    def test_success_reserves_funds(self, eligible_user):
        user = eligible_user(balance=10000)

        tx = WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

        assert reload(User, user.id).balance == Decimal("8000")
        assert tx.type == "withdrawal"
        assert tx.status == "pending"
        assert tx.amount == Decimal("2000")
        assert tx.fee == Decimal("400")
        assert tx.net_amount == Decimal("1600")
        assert tx.bank_name == "BAI"
        assert tx.owner_name == "Test Owner"
        assert tx.bank_account == "AO06000000001"

    def test_fee_follows_config(self, app, eligible_user):
        app.config["WITHDRAWAL_FEE_PERCENT"] = 10
        assert WithdrawalConfig.calculate_fee(Decimal("1500")) == Decimal("150.00")

    @pytest.mark.parametrize("amount", [1400, 50000])
    def test_bounds_are_inclusive(self, eligible_user, amount):
        user = eligible_user(balance=60000)
        tx = WithdrawalProcessor.request_withdrawal(user.id, amount, now=OPEN_HOURS)
        assert tx.amount == Decimal(amount)

    @pytest.mark.parametrize("amount", [1399, "1399.99", 50001, 100000])
    def test_out_of_range_rejected_regardless_of_balance(self, eligible_user, amount):
        user = eligible_user(balance=1000000)
        with pytest.raises(AmountOutOfRange):
            WithdrawalProcessor.request_withdrawal(user.id, amount, now=OPEN_HOURS)
        assert reload(User, user.id).balance == Decimal("1000000")

    @pytest.mark.parametrize("amount", ["1399.995", "50000.001", "2000.005"])
    def test_fractions_of_a_cent_are_not_rounded_into_range(self, eligible_user, amount):
        user = eligible_user(balance=1000000)
        with pytest.raises(ValidationError):
            WithdrawalProcessor.request_withdrawal(user.id, amount, now=OPEN_HOURS)
        assert reload(User, user.id).balance == Decimal("1000000")
        assert Transaction.query.count() == 0

    def test_non_numeric_amount(self, eligible_user):
        user = eligible_user()
        with pytest.raises(ValidationError):
            WithdrawalProcessor.request_withdrawal(user.id, "lots", now=OPEN_HOURS)


class TestBusinessWindow:

    @pytest.mark.parametrize("hour,minute", [(16, 0), (15, 0), (9, 59), (0, 0)])
    def test_outside_hours_rejected(self, eligible_user, hour, minute):
        user = eligible_user()
        with pytest.raises(OutsideBusinessHours):
            WithdrawalProcessor.request_withdrawal(user.id, 2000, now=_at(hour, minute))
        assert Transaction.query.count() == 0

    @pytest.mark.parametrize("hour,minute", [(10, 0), (14, 59)])
    def test_window_edges_accepted(self, eligible_user, hour, minute):
        user = eligible_user()
        WithdrawalProcessor.request_withdrawal(user.id, 2000, now=_at(hour, minute))

    @pytest.mark.parametrize("day", [24, 25])
    def test_weekend_rejected(self, eligible_user, day):
        user = eligible_user()
        with pytest.raises(NotWeekday):
            WithdrawalProcessor.request_withdrawal(user.id, 2000, now=_at(11, day=day))

    def test_clock_is_read_in_business_timezone(self, eligible_user):
        user = eligible_user()
        # 14:30 UTC is 15:30 in Luanda
        with pytest.raises(OutsideBusinessHours):
            WithdrawalProcessor.request_withdrawal(
                user.id, 2000, now=datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc))
        # 09:30 UTC is 10:30 in Luanda
        WithdrawalProcessor.request_withdrawal(
            user.id, 2000, now=datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc))


class TestAccountPreconditions:

    def test_no_product(self, make_user, add_bank_info):
        user = make_user(balance=10000, has_deposited=True)
        add_bank_info(user)
        with pytest.raises(NoProduct):
            WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

    def test_no_deposit(self, make_user, add_bank_info):
        user = make_user(balance=10000, has_product=True)
        add_bank_info(user)
        with pytest.raises(NoDeposit):
            WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

    def test_no_bank_info(self, make_user):
        user = make_user(balance=10000, has_product=True, has_deposited=True)
        with pytest.raises(NoBankInfo):
            WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

    def test_insufficient_balance(self, eligible_user):
        user = eligible_user(balance=1500)
        with pytest.raises(InsufficientBalance):
            WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)
        assert reload(User, user.id).balance == Decimal("1500")
        assert Transaction.query.count() == 0


class TestAdminDecision:

    def test_approve_keeps_balance(self, eligible_user):
        user = eligible_user(balance=10000)
        tx = WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

        approved = WithdrawalProcessor.approve_withdrawal(tx.id)

        assert approved.status == "completed"
        assert approved.processed_at is not None
        assert reload(User, user.id).balance == Decimal("8000")

    def test_reject_refunds(self, eligible_user):
        user = eligible_user(balance=10000)
        tx = WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

        rejected = WithdrawalProcessor.reject_withdrawal(tx.id)

        assert rejected.status == "failed"
        assert reload(User, user.id).balance == Decimal("10000")

    def test_reject_twice_refunds_once(self, eligible_user):
        user = eligible_user(balance=10000)
        tx = WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

        WithdrawalProcessor.reject_withdrawal(tx.id)
        with pytest.raises(InvalidTransactionState):
            WithdrawalProcessor.reject_withdrawal(tx.id)

        assert reload(User, user.id).balance == Decimal("10000")

    def test_approve_after_reject_refused(self, eligible_user):
        user = eligible_user()
        tx = WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)
        WithdrawalProcessor.reject_withdrawal(tx.id)

        with pytest.raises(InvalidTransactionState):
            WithdrawalProcessor.approve_withdrawal(tx.id)

    def test_unknown_withdrawal(self, app):
        with pytest.raises(TransactionNotFound):
            WithdrawalProcessor.approve_withdrawal(12345)
