"""
Ledger error taxonomy.

Validation and precondition errors are raised before any state change.
Integrity errors mean a referenced row does not exist. Storage errors are
the only fatal kind: callers get a generic message and the detail goes to
the log.
"""


class LedgerError(Exception):
    """Base ledger exception"""
    code = "ledger_error"
    http_status = 400
    default_message = "Operation failed"

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# ==========================================================
#                  VALIDATION
# ==========================================================
class ValidationError(LedgerError):
    code = "validation_error"
    default_message = "Invalid request"


class InvalidReferralCode(ValidationError):
    code = "invalid_referral_code"
    default_message = "Referral code is not valid"


# ==========================================================
#                  PRECONDITIONS
# ==========================================================
class PreconditionError(LedgerError):
    http_status = 409


class InsufficientBalance(PreconditionError):
    code = "insufficient_balance"
    default_message = "Insufficient balance"


class ProductInactive(PreconditionError):
    code = "product_inactive"
    default_message = "Product is not available"


class OutsideBusinessHours(PreconditionError):
    code = "outside_business_hours"
    default_message = "Withdrawals are only accepted during business hours"


class NotWeekday(PreconditionError):
    code = "not_weekday"
    default_message = "Withdrawals are only accepted Monday to Friday"


class NoProduct(PreconditionError):
    code = "no_product"
    default_message = "Buy a product before withdrawing"


class NoDeposit(PreconditionError):
    code = "no_deposit"
    default_message = "Make a deposit before withdrawing"


class AmountOutOfRange(PreconditionError):
    code = "amount_out_of_range"
    default_message = "Amount is outside the allowed range"


class NoBankInfo(PreconditionError):
    code = "no_bank_info"
    default_message = "Register your bank details before withdrawing"


class InvalidTransactionState(PreconditionError):
    code = "invalid_transaction_state"
    default_message = "Transaction cannot move to that status"


class AccountBlocked(PreconditionError):
    code = "account_blocked"
    http_status = 403
    default_message = "Account is blocked"


# ==========================================================
#                  INTEGRITY
# ==========================================================
class NotFoundError(LedgerError):
    code = "not_found"
    http_status = 404
    default_message = "Not found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"
    default_message = "Product not found"


class UserNotFound(NotFoundError):
    code = "user_not_found"
    default_message = "User not found"


class TransactionNotFound(NotFoundError):
    code = "transaction_not_found"
    default_message = "Transaction not found"


# ==========================================================
#                  STORAGE
# ==========================================================
class LedgerStorageError(LedgerError):
    code = "internal_error"
    http_status = 500
    default_message = "Operation failed. Please try again."
