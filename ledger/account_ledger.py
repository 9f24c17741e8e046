from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
import logging
from sqlalchemy import update
from extensions import db
from models import User
from ledger.exceptions import ValidationError, InsufficientBalance, UserNotFound

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

COMMISSION_COLUMNS = {
    1: User.level1_commission,
    2: User.level2_commission,
    3: User.level3_commission,
}


def safe_decimal(value, field_name: str = "amount") -> Decimal:
    """
    Convert user or DB input to a 2-place Decimal, rejecting junk.

    Never rounds: a value with fractions of a cent is refused, so the amount
    checked against limits is the amount that gets booked.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float, str)):
            amount = Decimal(str(value).strip())
        else:
            raise ValidationError(f"Invalid type for {field_name}")
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a number")
    try:
        cents = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"{field_name} is out of range")
    if cents != amount:
        raise ValidationError(f"{field_name} cannot have more than 2 decimal places")
    return cents


def _positive(amount) -> Decimal:
    amount = safe_decimal(amount)
    if amount <= 0:
        raise ValidationError("amount must be positive")
    return amount


class AccountLedger:
    """
    The only code allowed to change User.balance.

    Every mutation is one UPDATE relative to the stored value, so two
    concurrent writers can never both read the same balance. Nothing here
    commits: the caller owns the unit of work.
    """

    @staticmethod
    def _run(stmt):
        return db.session.execute(stmt.execution_options(synchronize_session=False))

    @staticmethod
    def _exists(user_id: int) -> bool:
        return db.session.query(User.id).filter(User.id == user_id).first() is not None

    @staticmethod
    def refresh(user_id: int):
        """Reload a user row so the identity map reflects the UPDATEs above."""
        return db.session.get(User, user_id, populate_existing=True)

    @staticmethod
    def credit(user_id: int, amount, commission_level: int = None) -> Decimal:
        amount = _positive(amount)
        values = {"balance": User.balance + amount}
        if commission_level is not None:
            column = COMMISSION_COLUMNS.get(commission_level)
            if column is None:
                raise ValidationError(f"Unknown commission level {commission_level}")
            values[column.key] = column + amount

        result = AccountLedger._run(update(User).where(User.id == user_id).values(**values))
        if result.rowcount == 0:
            raise UserNotFound(user_id=user_id)

        logger.debug(f"credit user={user_id} amount={amount} level={commission_level}")
        return amount

    @staticmethod
    def debit(user_id: int, amount) -> Decimal:
        amount = _positive(amount)
        result = AccountLedger._run(
            update(User)
            .where(User.id == user_id, User.balance >= amount)
            .values(balance=User.balance - amount)
        )
        if result.rowcount == 0:
            if not AccountLedger._exists(user_id):
                raise UserNotFound(user_id=user_id)
            raise InsufficientBalance(user_id=user_id, amount=str(amount))

        logger.debug(f"debit user={user_id} amount={amount}")
        return amount

    @staticmethod
    def adjust_daily_income(user_id: int, delta) -> None:
        delta = safe_decimal(delta, "delta")
        AccountLedger._run(
            update(User).where(User.id == user_id).values(daily_income=User.daily_income + delta)
        )

    @staticmethod
    def mark_has_product(user_id: int) -> bool:
        """Set has_product. Returns True only for the call that flipped it."""
        result = AccountLedger._run(
            update(User)
            .where(User.id == user_id, User.has_product.is_(False))
            .values(has_product=True)
        )
        return result.rowcount == 1

    @staticmethod
    def mark_has_deposited(user_id: int) -> None:
        AccountLedger._run(update(User).where(User.id == user_id).values(has_deposited=True))

    @staticmethod
    def get_balance(user_id: int) -> Decimal:
        balance = db.session.query(User.balance).filter(User.id == user_id).scalar()
        if balance is None:
            raise UserNotFound(user_id=user_id)
        return Decimal(balance)
