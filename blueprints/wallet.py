import logging
from flask import Blueprint, jsonify, request
from extensions import db
from models import Bank, BankInfo, Transaction
from blueprints.auth import login_required
from ledger.deposit import request_deposit
from ledger.exceptions import ValidationError
from ledger.withdrawal import WithdrawalProcessor

logger = logging.getLogger(__name__)

bp = Blueprint("wallet", __name__, url_prefix="/api")


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid or missing JSON body")
    return data


#============================================================================
#      DEPOSITS & WITHDRAWALS
#============================================================================
@bp.route("/deposits", methods=["POST"])
@login_required
def create_deposit(user):
    data = _json_body()
    tx = request_deposit(
        user.id,
        data.get("amount"),
        bank_name=data.get("bankName"),
        bank_account=data.get("bankAccount"),
    )
    return jsonify({"message": "Deposit submitted for review", "transaction": tx.to_dict()}), 201


@bp.route("/withdrawals", methods=["POST"])
@login_required
def create_withdrawal(user):
    data = _json_body()
    tx = WithdrawalProcessor.request_withdrawal(user.id, data.get("amount"))
    return jsonify({"message": "Withdrawal submitted for review", "transaction": tx.to_dict()}), 201


@bp.route("/transactions", methods=["GET"])
@login_required
def list_transactions(user):
    query = user.transactions
    tx_type = request.args.get("type")
    if tx_type:
        query = query.filter(Transaction.type == tx_type)
    transactions = query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()
    return jsonify([t.to_dict() for t in transactions]), 200


#============================================================================
#      BANK DETAILS
#============================================================================
@bp.route("/banks", methods=["GET"])
def list_banks():
    banks = Bank.query.filter_by(active=True).order_by(Bank.name).all()
    return jsonify([b.to_dict() for b in banks]), 200


@bp.route("/bank-info", methods=["GET"])
@login_required
def get_bank_info(user):
    if not user.bank_info:
        return jsonify(None), 200
    return jsonify(user.bank_info.to_dict()), 200


@bp.route("/bank-info", methods=["POST"])
@login_required
def save_bank_info(user):
    data = _json_body()
    bank = (data.get("bank") or "").strip()
    owner_name = (data.get("ownerName") or "").strip()
    account_number = (data.get("accountNumber") or "").strip()
    if not bank or not owner_name or not account_number:
        raise ValidationError("bank, ownerName and accountNumber are required")

    info = user.bank_info or BankInfo(user_id=user.id)
    info.bank = bank
    info.owner_name = owner_name
    info.account_number = account_number
    db.session.add(info)
    db.session.commit()

    logger.info(f"Bank info saved for user {user.id}")
    return jsonify(info.to_dict()), 200


@bp.route("/bank-info", methods=["DELETE"])
@login_required
def delete_bank_info(user):
    if user.bank_info:
        db.session.delete(user.bank_info)
        db.session.commit()
    return jsonify({"message": "Bank info removed"}), 200
