from datetime import datetime, timezone
import logging
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models import Transaction, TransactionType, TransactionStatus
from ledger.exceptions import (
    LedgerError, LedgerStorageError, ValidationError,
    TransactionNotFound, InvalidTransactionState,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TransactionStatus.PENDING.value, TransactionStatus.PROCESSING.value)
VALID_STATUSES = tuple(s.value for s in TransactionStatus)
ADMIN_MANAGED_TYPES = (TransactionType.DEPOSIT.value, TransactionType.WITHDRAWAL.value)


def load_transaction(tx_id: int, tx_type: str = None) -> Transaction:
    tx = db.session.get(Transaction, tx_id, populate_existing=True)
    if tx is None or (tx_type and tx.type != tx_type):
        raise TransactionNotFound(transaction_id=tx_id)
    return tx


def transition_status(tx: Transaction, to_status: str) -> None:
    """
    Move an open transaction to `to_status`.

    The WHERE clause re-checks the status, so two admins acting on the same
    row cannot both win. Does not commit.
    """
    values = {"status": to_status}
    if to_status in (TransactionStatus.COMPLETED.value, TransactionStatus.FAILED.value):
        values["processed_at"] = datetime.now(timezone.utc)

    result = db.session.execute(
        update(Transaction)
        .where(Transaction.id == tx.id, Transaction.status.in_(OPEN_STATUSES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidTransactionState(transaction_id=tx.id, status=tx.status, requested=to_status)


def mark_processing(tx_id: int) -> Transaction:
    try:
        tx = load_transaction(tx_id)
        if tx.type not in ADMIN_MANAGED_TYPES:
            raise InvalidTransactionState(transaction_id=tx_id, type=tx.type)
        if tx.status != TransactionStatus.PROCESSING.value:
            transition_status(tx, TransactionStatus.PROCESSING.value)
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Could not mark transaction {tx_id} processing")
        raise LedgerStorageError()
    return load_transaction(tx_id)


def update_transaction_status(tx_id: int, status: str) -> Transaction:
    """Admin entry point: route a status change to the operation that owns it."""
    from ledger.deposit import approve_deposit, reject_deposit
    from ledger.withdrawal import approve_withdrawal, reject_withdrawal

    status = (status or "").strip().lower()
    if status not in VALID_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(VALID_STATUSES)}")

    tx = load_transaction(tx_id)
    if tx.type not in ADMIN_MANAGED_TYPES:
        raise InvalidTransactionState(
            f"{tx.type} transactions are created completed and cannot be changed",
            transaction_id=tx_id,
        )

    if status == tx.status:
        return tx
    if status == TransactionStatus.PENDING.value:
        raise InvalidTransactionState(transaction_id=tx_id, status=tx.status, requested=status)
    if status == TransactionStatus.PROCESSING.value:
        return mark_processing(tx_id)

    handlers = {
        (TransactionType.DEPOSIT.value, TransactionStatus.COMPLETED.value): approve_deposit,
        (TransactionType.DEPOSIT.value, TransactionStatus.FAILED.value): reject_deposit,
        (TransactionType.WITHDRAWAL.value, TransactionStatus.COMPLETED.value): approve_withdrawal,
        (TransactionType.WITHDRAWAL.value, TransactionStatus.FAILED.value): reject_withdrawal,
    }
    return handlers[(tx.type, status)](tx_id)
