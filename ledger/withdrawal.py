from decimal import Decimal, ROUND_DOWN
from datetime import datetime
import logging
import uuid
from zoneinfo import ZoneInfo
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models import User, BankInfo, Transaction, TransactionType, TransactionStatus
from ledger.account_ledger import AccountLedger, CENT, safe_decimal
from ledger.exceptions import (
    LedgerError, LedgerStorageError, NotWeekday, OutsideBusinessHours,
    AmountOutOfRange, UserNotFound, AccountBlocked, NoProduct, NoDeposit,
    NoBankInfo, InsufficientBalance,
)
from ledger.locks import BalanceLockManager
from ledger.transactions import load_transaction, transition_status

logger = logging.getLogger(__name__)

# ==========================================================
#                  CONFIGURATION
# ==========================================================
class WithdrawalConfig:
    """Withdrawal rules, read from the Flask config on every call."""

    @staticmethod
    def _get(key, default):
        return current_app.config.get(key, default)

    @classmethod
    def min_amount(cls) -> Decimal:
        return Decimal(str(cls._get("WITHDRAWAL_MIN", 1400)))

    @classmethod
    def max_amount(cls) -> Decimal:
        return Decimal(str(cls._get("WITHDRAWAL_MAX", 50000)))

    @classmethod
    def window(cls):
        return cls._get("WITHDRAWAL_OPEN_HOUR", 10), cls._get("WITHDRAWAL_CLOSE_HOUR", 15)

    @classmethod
    def business_tz(cls) -> ZoneInfo:
        return ZoneInfo(cls._get("BUSINESS_TIMEZONE", "Africa/Luanda"))

    @classmethod
    def calculate_fee(cls, amount: Decimal) -> Decimal:
        """Calculate processing fee"""
        percent = Decimal(str(cls._get("WITHDRAWAL_FEE_PERCENT", 20)))
        fee = (amount * percent) / Decimal("100")
        return fee.quantize(CENT, rounding=ROUND_DOWN)


def withdrawal_reference() -> str:
    return f"WDR-{uuid.uuid4().hex[:12].upper()}"


# ==========================================================
#                  WITHDRAWAL VALIDATOR
# ==========================================================
class WithdrawalValidator:

    @staticmethod
    def local_time(now: datetime = None) -> datetime:
        tz = WithdrawalConfig.business_tz()
        if now is None:
            return datetime.now(tz)
        if now.tzinfo is None:
            # naive values are taken to already be business-local
            return now.replace(tzinfo=tz)
        return now.astimezone(tz)

    @staticmethod
    def check_window(now: datetime = None) -> None:
        local = WithdrawalValidator.local_time(now)
        if local.weekday() >= 5:
            raise NotWeekday(day=local.strftime("%A"))

        open_hour, close_hour = WithdrawalConfig.window()
        if not (open_hour <= local.hour < close_hour):
            raise OutsideBusinessHours(
                f"Withdrawals are accepted from {open_hour:02d}:00 to {close_hour:02d}:00",
                local_time=local.strftime("%H:%M"),
            )

    @staticmethod
    def check_amount(amount: Decimal) -> None:
        low, high = WithdrawalConfig.min_amount(), WithdrawalConfig.max_amount()
        if amount < low or amount > high:
            raise AmountOutOfRange(
                f"Amount must be between {low} and {high}",
                minimum=str(low), maximum=str(high),
            )

    @staticmethod
    def check_account(user_id: int, amount: Decimal):
        """Returns (user, bank_info) once every account precondition holds."""
        user = db.session.get(User, user_id, populate_existing=True)
        if not user:
            raise UserNotFound(user_id=user_id)
        if user.is_blocked:
            raise AccountBlocked(user_id=user_id)
        if not user.has_product:
            raise NoProduct()
        if not user.has_deposited:
            raise NoDeposit()

        bank_info = BankInfo.query.filter_by(user_id=user_id).first()
        if not bank_info:
            raise NoBankInfo()

        if AccountLedger.get_balance(user_id) < amount:
            raise InsufficientBalance(user_id=user_id, amount=str(amount))
        return user, bank_info


# ==========================================================
#                  WITHDRAWAL PROCESSOR
# ==========================================================
class WithdrawalProcessor:

    @staticmethod
    def request_withdrawal(user_id: int, amount, now: datetime = None) -> Transaction:
        """
        Reserve funds for a payout. The balance is debited now and the pending
        withdrawal waits for an admin.
        """
        amount = safe_decimal(amount)
        try:
            WithdrawalValidator.check_window(now)
            WithdrawalValidator.check_amount(amount)
        except LedgerError as e:
            logger.warning(f"Withdrawal refused user={user_id} amount={amount}: {e.code}")
            raise

        with BalanceLockManager.hold(user_id):
            try:
                _, bank_info = WithdrawalValidator.check_account(user_id, amount)

                AccountLedger.debit(user_id, amount)

                fee = WithdrawalConfig.calculate_fee(amount)
                tx = Transaction(
                    user_id=user_id,
                    type=TransactionType.WITHDRAWAL.value,
                    amount=amount,
                    status=TransactionStatus.PENDING.value,
                    reference=withdrawal_reference(),
                    description="Withdrawal request",
                    fee=fee,
                    net_amount=amount - fee,
                    bank_name=bank_info.bank,
                    bank_account=bank_info.account_number,
                    owner_name=bank_info.owner_name,
                )
                db.session.add(tx)
                db.session.commit()

            except LedgerError as e:
                db.session.rollback()
                logger.warning(f"Withdrawal refused user={user_id} amount={amount}: {e.code}")
                raise
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception(f"Withdrawal failed user={user_id} amount={amount}")
                raise LedgerStorageError()

        logger.info(f"Withdrawal {tx.reference} pending user={user_id} amount={amount} fee={fee}")
        return tx

    @staticmethod
    def approve_withdrawal(tx_id: int) -> Transaction:
        """Funds left the balance at request time, so approval only closes the row."""
        try:
            tx = load_transaction(tx_id, TransactionType.WITHDRAWAL.value)
            transition_status(tx, TransactionStatus.COMPLETED.value)
            db.session.commit()
        except LedgerError:
            db.session.rollback()
            raise
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Could not approve withdrawal {tx_id}")
            raise LedgerStorageError()

        logger.info(f"Withdrawal {tx_id} approved")
        return load_transaction(tx_id)

    @staticmethod
    def reject_withdrawal(tx_id: int) -> Transaction:
        """Fail the withdrawal and give the reserved amount back."""
        tx = load_transaction(tx_id, TransactionType.WITHDRAWAL.value)
        user_id, amount = tx.user_id, safe_decimal(tx.amount)

        with BalanceLockManager.hold(user_id):
            try:
                transition_status(tx, TransactionStatus.FAILED.value)
                AccountLedger.credit(user_id, amount)
                db.session.commit()
            except LedgerError:
                db.session.rollback()
                raise
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception(f"Could not reject withdrawal {tx_id}")
                raise LedgerStorageError()

        logger.info(f"Withdrawal {tx_id} rejected, refunded {amount} to user {user_id}")
        return load_transaction(tx_id)


# module-level aliases used by the admin status dispatcher
request_withdrawal = WithdrawalProcessor.request_withdrawal
approve_withdrawal = WithdrawalProcessor.approve_withdrawal
reject_withdrawal = WithdrawalProcessor.reject_withdrawal
