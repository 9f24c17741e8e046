from functools import wraps
import logging
from flask import Blueprint, jsonify, request, session, current_app
from flask_login import login_user, logout_user
from extensions import db
from models import User
from ledger.accounts import register_user

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="")


def current_session_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    return db.session.get(User, user_id)


def login_required(f):
    """JSON flavour of login_required: 401 without a session, 403 when blocked."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = current_session_user()
        if not user:
            return jsonify({"error": "unauthorized", "message": "Login required"}), 401
        if user.is_blocked:
            return jsonify({"error": "account_blocked", "message": "Account is blocked"}), 403
        return f(user, *args, **kwargs)

    return decorated_function


def _start_session(user):
    session.clear()
    session["user_id"] = user.id
    login_user(user)


#===========================================================================
#      REGISTER
#===========================================================================
@bp.route("/api/register", methods=["POST"])
def register():
    """
    Expected JSON:
    {"phoneNumber": "", "password": "", "referralCode": ""}
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "validation_error", "message": "Invalid or missing JSON body"}), 400

    user = register_user(
        data.get("phoneNumber", ""),
        data.get("password", ""),
        data.get("referralCode", ""),
    )
    _start_session(user)
    current_app.logger.info(f"New registration user={user.id}")
    return jsonify({"message": "Registration successful", "user": user.to_dict()}), 201


# --------------------------------------------------
#      Login
# --------------------------------------------------
@bp.route("/api/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    phone_number = (data.get("phoneNumber") or "").strip()
    password = data.get("password") or ""

    if not phone_number or not password:
        return jsonify({"error": "validation_error", "message": "Phone number and password are required"}), 400

    user = User.query.filter_by(phone_number=phone_number).first()
    if not user or not user.check_password(password):
        return jsonify({"error": "invalid_credentials", "message": "Invalid credentials"}), 401

    if user.is_blocked:
        logger.warning(f"Blocked user {user.id} attempted login")
        return jsonify({"error": "account_blocked", "message": "Account is blocked"}), 403

    _start_session(user)
    return jsonify({"message": "Login successful", "user": user.to_dict()}), 200


@bp.route("/api/logout", methods=["POST"])
def logout():
    logout_user()
    session.clear()
    return jsonify({"message": "Logged out successfully"}), 200


@bp.route("/api/user", methods=["GET"])
@login_required
def me(user):
    """Current user, for frontend auto-login"""
    return jsonify(user.to_dict()), 200
