from flask import Blueprint, jsonify
from blueprints.auth import login_required
from ledger.commission import CommissionConfig
from ledger.referral_tree import ReferralTreeHelper
from models import money

bp = Blueprint("team", __name__, url_prefix="/api")


def _member(user):
    return {
        "id": user.id,
        "phoneNumber": user.phone_number,
        "hasProduct": user.has_product,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


@bp.route("/user/referrals", methods=["GET"])
@login_required
def referrals(user):
    """Three-level team view with earned commission per level."""
    downline = ReferralTreeHelper.get_downline(user.id)
    earned = {
        1: user.level1_commission,
        2: user.level2_commission,
        3: user.level3_commission,
    }

    levels = []
    for level, members in downline.items():
        levels.append({
            "level": level,
            "rate": float(CommissionConfig.rate_for(level)),
            "count": len(members),
            "activeCount": sum(1 for m in members if m.has_product),
            "commission": money(earned.get(level)),
            "members": [_member(m) for m in members],
        })

    return jsonify({"referralCode": user.referral_code, "levels": levels}), 200
