import logging
import random
import string
from typing import Dict, List
from extensions import db
from models import User
from ledger.exceptions import InvalidReferralCode, ValidationError

logger = logging.getLogger(__name__)

MAX_REFERRAL_DEPTH = 3


class ReferralTreeHelper:
    """
    Read-only walks over the users.referred_by back-references.

    Registration only ever adds leaves, so no new cycle can appear. The walks
    still keep a visited set and a depth bound so bad legacy data cannot hang
    them.
    """

    @staticmethod
    def upline_chain(user_id: int, max_depth: int = MAX_REFERRAL_DEPTH) -> List[int]:
        """
        Return [level1, level2, ...] referrer ids, direct referrer first.

        Stops at max_depth hops, at a user with no referrer, or at a
        referrer id that no longer resolves to a user.
        """
        chain = []
        seen = {user_id}
        current = db.session.query(User.referred_by).filter(User.id == user_id).scalar()

        while current is not None and len(chain) < max_depth:
            if current in seen:
                logger.warning(f"Referral cycle detected at user {current} while walking from {user_id}")
                break

            row = db.session.query(User.id, User.referred_by).filter(User.id == current).first()
            if row is None:
                logger.warning(f"Broken referral link: user {current} missing in upline of {user_id}")
                break

            chain.append(row.id)
            seen.add(row.id)
            current = row.referred_by

        return chain

    @staticmethod
    def get_downline(user_id: int, max_depth: int = MAX_REFERRAL_DEPTH) -> Dict[int, List[User]]:
        """Level -> users at that depth below user_id (breadth first)."""
        levels = {}
        seen = {user_id}
        frontier = [user_id]

        for level in range(1, max_depth + 1):
            members = (
                User.query.filter(User.referred_by.in_(frontier)).order_by(User.id).all()
                if frontier else []
            )
            members = [m for m in members if m.id not in seen]
            seen.update(m.id for m in members)
            levels[level] = members
            frontier = [m.id for m in members]

        return levels

    @staticmethod
    def resolve_referrer(referral_code: str) -> User:
        code = (referral_code or "").strip().upper()
        if not code:
            raise ValidationError("Referral code is required")
        referrer = User.query.filter_by(referral_code=code).first()
        if not referrer:
            raise InvalidReferralCode(referral_code=code)
        return referrer

    @staticmethod
    def generate_referral_code() -> str:
        """Two letters followed by four digits, unique across users."""
        rng = random.SystemRandom()
        while True:
            code = "".join(rng.choice(string.ascii_uppercase) for _ in range(2)) + \
                "".join(rng.choice(string.digits) for _ in range(4))
            if not User.query.filter_by(referral_code=code).first():
                return code
