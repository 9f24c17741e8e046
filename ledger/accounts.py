import logging
import re
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from extensions import db
from models import User
from ledger.exceptions import LedgerError, LedgerStorageError, ValidationError
from ledger.referral_tree import ReferralTreeHelper

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^\+?\d{9,15}$')


def validate_phone(phone):
    return PHONE_PATTERN.match(phone or "") is not None


def register_user(phone_number: str, password: str, referral_code: str, role: str = "user") -> User:
    """
    Create a user under the owner of `referral_code`.

    New users always join as leaves of the referral graph, which is why no
    cycle check is needed here.
    """
    phone_number = (phone_number or "").strip()
    if not validate_phone(phone_number):
        raise ValidationError("Invalid phone number")
    if not password or len(password) < 6:
        raise ValidationError("Password must be at least 6 characters")

    try:
        referrer = ReferralTreeHelper.resolve_referrer(referral_code)

        if User.query.filter_by(phone_number=phone_number).first():
            raise ValidationError("Phone number already registered")

        user = User(
            phone_number=phone_number,
            referral_code=ReferralTreeHelper.generate_referral_code(),
            referred_by=referrer.id,
            role=role,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Phone number already registered")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Registration failed for {phone_number}")
        raise LedgerStorageError()

    logger.info(f"Registered user {user.id} under referrer {referrer.id}")
    return user


def create_root_user(phone_number: str, password: str, role: str = "admin") -> User:
    """First account of an installation; it has no referrer by definition."""
    user = User(
        phone_number=phone_number,
        referral_code=ReferralTreeHelper.generate_referral_code(),
        role=role,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user
