from decimal import Decimal, ROUND_HALF_UP
from typing import List, NamedTuple, Sequence
from ledger.account_ledger import CENT, safe_decimal


# ==========================================================
#                  CONFIGURATION
# ==========================================================
class CommissionConfig:
    # Fixed. Past commissions are materialized as transactions, so changing
    # these never touches history.
    LEVEL_RATES = {
        1: Decimal("0.25"),
        2: Decimal("0.05"),
        3: Decimal("0.02"),
    }

    @staticmethod
    def rate_for(level: int) -> Decimal:
        return CommissionConfig.LEVEL_RATES.get(level, Decimal("0"))


class Commission(NamedTuple):
    referrer_id: int
    level: int
    amount: Decimal


def compute_commissions(purchase_amount, upline: Sequence[int]) -> List[Commission]:
    """
    Pair each referrer in the upline with its level rate.

    Levels with no referrer are simply absent from the result; no
    zero-amount rows are produced.
    """
    amount = safe_decimal(purchase_amount, "purchase_amount")
    commissions = []
    for level, referrer_id in enumerate(upline, start=1):
        rate = CommissionConfig.rate_for(level)
        if rate <= 0 or referrer_id is None:
            continue
        value = (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
        if value <= 0:
            continue
        commissions.append(Commission(referrer_id, level, value))
    return commissions
