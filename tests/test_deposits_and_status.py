"""
Tests for deposits and the admin transaction status dispatcher.
"""
from decimal import Decimal

import pytest

from conftest import OPEN_HOURS, reload
from extensions import db
from models import User, Transaction
from ledger.deposit import approve_deposit, reject_deposit, request_deposit
from ledger.exceptions import (
    AmountOutOfRange, InvalidTransactionState, TransactionNotFound, ValidationError,
)
from ledger.purchase import PackagePurchaseProcessor
from ledger.transactions import update_transaction_status
from ledger.withdrawal import WithdrawalProcessor


class TestDeposits:

    def test_minimum_enforced(self, make_user):
        user = make_user()
        with pytest.raises(AmountOutOfRange):
            request_deposit(user.id, 999)
        assert Transaction.query.count() == 0

    def test_request_is_pending_and_moves_no_money(self, make_user):
        user = make_user(balance=0)
        tx = request_deposit(user.id, 1000, bank_name="BFA", bank_account="123")

        assert tx.status == "pending"
        assert tx.type == "deposit"
        assert tx.bank_name == "BFA"
        assert reload(User, user.id).balance == Decimal("0")

    def test_approve_credits_and_flags(self, make_user):
        user = make_user(balance=0)
        tx = request_deposit(user.id, 2500)

        approved = approve_deposit(tx.id)

        assert approved.status == "completed"
        assert approved.processed_at is not None
        user = reload(User, user.id)
        assert user.balance == Decimal("2500")
        assert user.has_deposited is True

    def test_approve_twice_credits_once(self, make_user):
        user = make_user(balance=0)
        tx = request_deposit(user.id, 2500)
        approve_deposit(tx.id)

        with pytest.raises(InvalidTransactionState):
            approve_deposit(tx.id)
        assert reload(User, user.id).balance == Decimal("2500")

    def test_reject(self, make_user):
        user = make_user(balance=0)
        tx = request_deposit(user.id, 2500)

        rejected = reject_deposit(tx.id)

        assert rejected.status == "failed"
        user = reload(User, user.id)
        assert user.balance == Decimal("0")
        assert user.has_deposited is False

    def test_withdrawal_id_is_not_a_deposit(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)
        with pytest.raises(TransactionNotFound):
            WithdrawalProcessor.approve_withdrawal(tx.id)


class TestStatusDispatcher:

    def test_deposit_completed(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)

        result = update_transaction_status(tx.id, "completed")

        assert result.status == "completed"
        assert reload(User, user.id).balance == Decimal("1000")

    def test_processing_then_completed(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)

        assert update_transaction_status(tx.id, "processing").status == "processing"
        assert reload(User, user.id).balance == Decimal("0")

        assert update_transaction_status(tx.id, "completed").status == "completed"
        assert reload(User, user.id).balance == Decimal("1000")

    def test_withdrawal_failed_refunds(self, make_user, add_bank_info):
        user = make_user(balance=5000, has_product=True, has_deposited=True)
        add_bank_info(user)
        tx = WithdrawalProcessor.request_withdrawal(user.id, 2000, now=OPEN_HOURS)

        update_transaction_status(tx.id, "failed")

        assert reload(User, user.id).balance == Decimal("5000")

    def test_same_status_is_a_no_op(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)
        assert update_transaction_status(tx.id, "pending").status == "pending"

    def test_cannot_reopen(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)
        update_transaction_status(tx.id, "failed")
        with pytest.raises(InvalidTransactionState):
            update_transaction_status(tx.id, "pending")
        with pytest.raises(InvalidTransactionState):
            update_transaction_status(tx.id, "completed")

    def test_internal_movements_are_final(self, make_user, make_product):
        user = make_user(balance=5000)
        product = make_product(price=5000)
        PackagePurchaseProcessor.purchase_product(user.id, product.id)
        purchase = Transaction.query.filter_by(type="purchase").one()

        with pytest.raises(InvalidTransactionState):
            update_transaction_status(purchase.id, "failed")

    def test_unknown_status(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)
        with pytest.raises(ValidationError):
            update_transaction_status(tx.id, "refunded")


class TestTransactionImmutability:

    def test_amount_cannot_change(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)
        tx.amount = Decimal("5000")
        with pytest.raises(ValueError):
            db.session.commit()
        db.session.rollback()
        assert reload(Transaction, tx.id).amount == Decimal("1000")

    def test_type_cannot_change(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)
        tx.type = "commission"
        with pytest.raises(ValueError):
            db.session.commit()
        db.session.rollback()

    def test_status_can_change(self, make_user):
        user = make_user()
        tx = request_deposit(user.id, 1000)
        tx.status = "processing"
        db.session.commit()
        assert reload(Transaction, tx.id).status == "processing"
