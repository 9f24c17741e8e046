from datetime import datetime, timezone
import logging
import uuid
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models import User, Product, Holding, Transaction, TransactionType, TransactionStatus
from ledger.account_ledger import AccountLedger, safe_decimal
from ledger.commission import compute_commissions
from ledger.exceptions import (
    LedgerError, LedgerStorageError, ProductNotFound, ProductInactive,
    UserNotFound, InsufficientBalance, AccountBlocked,
)
from ledger.locks import BalanceLockManager
from ledger.referral_tree import ReferralTreeHelper

logger = logging.getLogger(__name__)


def purchase_reference() -> str:
    return f"PUR-{uuid.uuid4().hex[:12].upper()}"


def commission_reference(holding_id: int, level: int) -> str:
    return f"COM-{holding_id}-L{level}"


class PackagePurchaseProcessor:

    @staticmethod
    def validate_purchase(buyer_id: int, product_id: int):
        """
        Checks that must pass before anything is written.
        Returns (buyer, product, price).
        """
        product = db.session.get(Product, product_id)
        if not product:
            raise ProductNotFound(product_id=product_id)
        if not product.active:
            raise ProductInactive(product_id=product_id)

        buyer = db.session.get(User, buyer_id)
        if not buyer:
            raise UserNotFound(user_id=buyer_id)
        if buyer.is_blocked:
            raise AccountBlocked(user_id=buyer_id)

        price = safe_decimal(product.price, "price")
        # read the stored value, not whatever the identity map holds
        if AccountLedger.get_balance(buyer_id) < price:
            raise InsufficientBalance(user_id=buyer_id, amount=str(price))

        return buyer, product, price

    @staticmethod
    def purchase_product(buyer_id: int, product_id: int) -> Holding:
        """
        Buy a product with wallet balance.

        Debit, purchase record, holding snapshot, daily income bump and (on the
        buyer's first ever product) upline commissions are one commit.
        """
        with BalanceLockManager.hold(buyer_id):
            try:
                buyer, product, price = PackagePurchaseProcessor.validate_purchase(buyer_id, product_id)
                daily_income = safe_decimal(product.daily_income, "daily_income")
                now = datetime.now(timezone.utc)

                AccountLedger.debit(buyer_id, price)

                holding = Holding(
                    user_id=buyer_id,
                    product_id=product.id,
                    product_name=product.name,
                    price=price,
                    daily_income=daily_income,
                    cycle_days=product.cycle_days,
                    days_remaining=product.cycle_days,
                    is_active=True,
                    purchased_at=now,
                )
                db.session.add(holding)
                db.session.flush()

                db.session.add(Transaction(
                    user_id=buyer_id,
                    type=TransactionType.PURCHASE.value,
                    amount=price,
                    status=TransactionStatus.COMPLETED.value,
                    reference=purchase_reference(),
                    description=f"Purchase of {product.name}",
                    holding_id=holding.id,
                    processed_at=now,
                ))

                AccountLedger.adjust_daily_income(buyer_id, daily_income)
                first_purchase = AccountLedger.mark_has_product(buyer_id)

                paid = []
                if first_purchase and buyer.referred_by is not None:
                    upline = ReferralTreeHelper.upline_chain(buyer_id)
                    for commission in compute_commissions(price, upline):
                        AccountLedger.credit(
                            commission.referrer_id, commission.amount,
                            commission_level=commission.level,
                        )
                        db.session.add(Transaction(
                            user_id=commission.referrer_id,
                            type=TransactionType.COMMISSION.value,
                            amount=commission.amount,
                            status=TransactionStatus.COMPLETED.value,
                            reference=commission_reference(holding.id, commission.level),
                            description=f"Level {commission.level} commission from user {buyer_id}",
                            level=commission.level,
                            holding_id=holding.id,
                            processed_at=now,
                        ))
                        paid.append(commission)

                db.session.commit()

            except LedgerError as e:
                db.session.rollback()
                logger.warning(f"Purchase rejected buyer={buyer_id} product={product_id}: {e.code}")
                raise
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception(f"Purchase failed buyer={buyer_id} product={product_id}")
                raise LedgerStorageError()

        logger.info(
            f"Purchase buyer={buyer_id} product={product_id} holding={holding.id} "
            f"price={price} commissions={[(c.referrer_id, c.level, str(c.amount)) for c in paid]}"
        )
        return holding
