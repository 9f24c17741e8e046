from decimal import Decimal
import logging
import uuid
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models import User, Transaction, TransactionType, TransactionStatus
from ledger.account_ledger import AccountLedger, safe_decimal
from ledger.exceptions import (
    LedgerError, LedgerStorageError, AmountOutOfRange, UserNotFound, AccountBlocked,
)
from ledger.locks import BalanceLockManager
from ledger.transactions import load_transaction, transition_status

logger = logging.getLogger(__name__)


def deposit_reference() -> str:
    return f"DEP-{uuid.uuid4().hex[:12].upper()}"


def request_deposit(user_id: int, amount, bank_name: str = None, bank_account: str = None) -> Transaction:
    """Record a pending deposit. Money only moves once an admin confirms it."""
    amount = safe_decimal(amount)
    minimum = Decimal(str(current_app.config.get("DEPOSIT_MIN", 1000)))
    if amount < minimum:
        raise AmountOutOfRange(f"Minimum deposit is {minimum}", minimum=str(minimum))

    try:
        user = db.session.get(User, user_id)
        if not user:
            raise UserNotFound(user_id=user_id)
        if user.is_blocked:
            raise AccountBlocked(user_id=user_id)

        tx = Transaction(
            user_id=user_id,
            type=TransactionType.DEPOSIT.value,
            amount=amount,
            status=TransactionStatus.PENDING.value,
            reference=deposit_reference(),
            description="Deposit request",
            bank_name=bank_name,
            bank_account=bank_account,
        )
        db.session.add(tx)
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Deposit request failed user={user_id} amount={amount}")
        raise LedgerStorageError()

    logger.info(f"Deposit {tx.reference} pending user={user_id} amount={amount}")
    return tx


def approve_deposit(tx_id: int) -> Transaction:
    """Complete the deposit, credit the balance and unlock withdrawals."""
    tx = load_transaction(tx_id, TransactionType.DEPOSIT.value)
    user_id, amount = tx.user_id, safe_decimal(tx.amount)

    with BalanceLockManager.hold(user_id):
        try:
            transition_status(tx, TransactionStatus.COMPLETED.value)
            AccountLedger.credit(user_id, amount)
            AccountLedger.mark_has_deposited(user_id)
            db.session.commit()
        except LedgerError:
            db.session.rollback()
            raise
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Could not approve deposit {tx_id}")
            raise LedgerStorageError()

    logger.info(f"Deposit {tx_id} approved, credited {amount} to user {user_id}")
    return load_transaction(tx_id)


def reject_deposit(tx_id: int) -> Transaction:
    try:
        tx = load_transaction(tx_id, TransactionType.DEPOSIT.value)
        transition_status(tx, TransactionStatus.FAILED.value)
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Could not reject deposit {tx_id}")
        raise LedgerStorageError()

    logger.info(f"Deposit {tx_id} rejected")
    return load_transaction(tx_id)
