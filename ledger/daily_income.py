from datetime import date, datetime, timezone
import logging
from zoneinfo import ZoneInfo
from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models import Holding, Transaction, TransactionType, TransactionStatus
from ledger.account_ledger import AccountLedger, safe_decimal
from ledger.exceptions import LedgerError
from ledger.locks import BalanceLockManager

logger = logging.getLogger(__name__)

PROCESSED = "processed"
SKIPPED = "skipped"
COMPLETED = "completed"


def business_now() -> datetime:
    tz = ZoneInfo(current_app.config.get("BUSINESS_TIMEZONE", "Africa/Luanda"))
    return datetime.now(tz)


def business_today() -> date:
    return business_now().date()


def income_reference(cycle_date: date, holding_id: int) -> str:
    # one income row per holding per calendar day; the unique index enforces it
    return f"INC-{cycle_date:%Y%m%d}-{holding_id}"


class DailyIncomeProcessor:
    """
    Credits every active holding once per business day.

    Each holding is its own unit of work: one bad holding is logged and
    skipped, the rest of the run carries on.
    """

    @staticmethod
    def run_daily_accrual(cycle_date: date = None) -> dict:
        cycle_date = cycle_date or business_today()
        summary = {"processed": 0, "skipped": 0, "completed": 0, "failed": 0}

        due = (
            db.session.query(Holding.id, Holding.user_id)
            .filter(Holding.is_active.is_(True), Holding.days_remaining > 0)
            .order_by(Holding.id)
            .all()
        )
        logger.info(f"Daily accrual {cycle_date.isoformat()}: {len(due)} active holdings")

        for holding_id, user_id in due:
            try:
                with BalanceLockManager.hold(user_id):
                    outcome = DailyIncomeProcessor.accrue_holding(holding_id, cycle_date)
            except (LedgerError, SQLAlchemyError):
                db.session.rollback()
                logger.exception(f"Accrual failed for holding {holding_id} (user {user_id})")
                summary["failed"] += 1
                summary["skipped"] += 1
                continue

            if outcome == SKIPPED:
                summary["skipped"] += 1
            else:
                summary["processed"] += 1
                if outcome == COMPLETED:
                    summary["completed"] += 1

        logger.info(f"Daily accrual {cycle_date.isoformat()} finished: {summary}")
        return summary

    @staticmethod
    def accrue_holding(holding_id: int, cycle_date: date) -> str:
        """Credit one day of income for one holding and commit."""
        holding = db.session.get(Holding, holding_id, populate_existing=True)
        if holding is None or not holding.is_active or holding.days_remaining <= 0:
            return SKIPPED

        reference = income_reference(cycle_date, holding.id)
        if db.session.query(Transaction.id).filter_by(reference=reference).first():
            logger.warning(f"Income {reference} already recorded, skipping")
            return SKIPPED

        # claim today's slot; a concurrent or repeated run matches zero rows
        claimed = db.session.execute(
            update(Holding)
            .where(
                Holding.id == holding.id,
                Holding.is_active.is_(True),
                Holding.days_remaining > 0,
                or_(Holding.last_accrued_on.is_(None), Holding.last_accrued_on < cycle_date),
            )
            .values(days_remaining=Holding.days_remaining - 1, last_accrued_on=cycle_date)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            db.session.rollback()
            return SKIPPED

        amount = safe_decimal(holding.daily_income, "daily_income")
        now = datetime.now(timezone.utc)

        # a zero-income day still counts down, it just moves no money
        if amount > 0:
            AccountLedger.credit(holding.user_id, amount)
            db.session.add(Transaction(
                user_id=holding.user_id,
                type=TransactionType.INCOME.value,
                amount=amount,
                status=TransactionStatus.COMPLETED.value,
                reference=reference,
                description=f"Daily income from {holding.product_name}",
                holding_id=holding.id,
                processed_at=now,
            ))

        outcome = PROCESSED
        if holding.days_remaining - 1 <= 0:
            db.session.execute(
                update(Holding)
                .where(Holding.id == holding.id)
                .values(is_active=False, completed_at=now)
                .execution_options(synchronize_session=False)
            )
            if amount > 0:
                AccountLedger.adjust_daily_income(holding.user_id, -amount)
            outcome = COMPLETED

        db.session.commit()
        logger.info(f"Income {reference} user={holding.user_id} amount={amount} outcome={outcome}")
        return outcome
