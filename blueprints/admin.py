#======================================================================================
#
# ADMIN API
#
#=======================================================================================
from functools import wraps
import logging
from flask import Blueprint, jsonify, request, session
from sqlalchemy import or_
from extensions import db
from models import (
    User, Product, Holding, Transaction, TransactionType, TransactionStatus,
    Bank, Setting, SocialLink, CarouselImage, money,
)
from ledger.account_ledger import safe_decimal
from ledger.exceptions import ValidationError, UserNotFound, ProductNotFound, TransactionNotFound, NotFoundError
from ledger.transactions import update_transaction_status

logger = logging.getLogger(__name__)


def admin_required(f):
    """
    Restrict a route to admins.
    Re-reads the user so a demoted or blocked admin loses access immediately.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = session.get("user_id")
        if not user_id:
            return jsonify({"error": "unauthorized", "message": "Login required"}), 401

        user = db.session.get(User, user_id)
        if not user or user.is_blocked or not user.is_admin:
            return jsonify({"error": "forbidden", "message": "Admin access required"}), 403

        return f(*args, **kwargs)

    return decorated_function


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid or missing JSON body")
    return data


def _sum_completed(tx_type):
    total = (
        db.session.query(db.func.coalesce(db.func.sum(Transaction.amount), 0))
        .filter(Transaction.type == tx_type, Transaction.status == TransactionStatus.COMPLETED.value)
        .scalar()
    )
    return money(total)


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFound(user_id=user_id)
    return user


def _get_product(product_id):
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFound(product_id=product_id)
    return product


#============================================================================
#      DASHBOARD
#============================================================================
@admin_bp.route("/stats", methods=["GET"])
@admin_required
def stats():
    popular = (
        db.session.query(Holding.product_id, Holding.product_name, db.func.count(Holding.id).label("sales"))
        .group_by(Holding.product_id, Holding.product_name)
        .order_by(db.func.count(Holding.id).desc())
        .limit(5)
        .all()
    )
    pending_withdrawals = Transaction.query.filter(
        Transaction.type == TransactionType.WITHDRAWAL.value,
        Transaction.status.in_([TransactionStatus.PENDING.value, TransactionStatus.PROCESSING.value]),
    ).count()

    return jsonify({
        "totalUsers": User.query.count(),
        "totalDeposits": _sum_completed(TransactionType.DEPOSIT.value),
        "totalWithdrawals": _sum_completed(TransactionType.WITHDRAWAL.value),
        "pendingWithdrawals": pending_withdrawals,
        "activeHoldings": Holding.query.filter_by(is_active=True).count(),
        "popularProducts": [
            {"productId": p.product_id, "name": p.product_name, "sales": p.sales}
            for p in popular
        ],
    }), 200


#============================================================================
#      USERS
#============================================================================
@admin_bp.route("/users", methods=["GET"])
@admin_required
def list_users():
    query = User.query
    q = (request.args.get("q") or "").strip()
    if q:
        query = query.filter(
            or_(User.phone_number.ilike(f"%{q}%"), User.referral_code.ilike(f"%{q.upper()}%"))
        )
    users = query.order_by(User.id.desc()).all()
    return jsonify([u.to_dict() for u in users]), 200


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
@admin_required
def user_detail(user_id):
    user = _get_user(user_id)
    payload = user.to_dict()
    payload["bankInfo"] = user.bank_info.to_dict() if user.bank_info else None
    payload["holdings"] = [h.to_dict() for h in user.holdings.order_by(Holding.id).all()]
    payload["transactions"] = [
        t.to_dict() for t in user.transactions.order_by(Transaction.id.desc()).limit(50).all()
    ]
    return jsonify(payload), 200


def _set_blocked(user_id, blocked):
    user = _get_user(user_id)
    if user.id == session.get("user_id"):
        raise ValidationError("You cannot block your own account")
    user.is_blocked = blocked
    db.session.commit()
    logger.info(f"User {user_id} {'blocked' if blocked else 'unblocked'} by admin {session.get('user_id')}")
    return jsonify(user.to_dict()), 200


@admin_bp.route("/users/<int:user_id>/block", methods=["POST"])
@admin_required
def block_user(user_id):
    return _set_blocked(user_id, True)


@admin_bp.route("/users/<int:user_id>/unblock", methods=["POST"])
@admin_required
def unblock_user(user_id):
    return _set_blocked(user_id, False)


#============================================================================
#      TRANSACTIONS
#============================================================================
@admin_bp.route("/transactions", methods=["GET"])
@admin_required
def list_transactions():
    query = Transaction.query
    for field in ("type", "status"):
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(Transaction, field) == value)
    user_id = request.args.get("userId", type=int)
    if user_id:
        query = query.filter(Transaction.user_id == user_id)

    transactions = query.order_by(Transaction.id.desc()).all()
    return jsonify([t.to_dict() for t in transactions]), 200


@admin_bp.route("/transactions/<int:tx_id>", methods=["GET"])
@admin_required
def transaction_detail(tx_id):
    tx = db.session.get(Transaction, tx_id)
    if not tx:
        raise TransactionNotFound(transaction_id=tx_id)
    return jsonify(tx.to_dict()), 200


@admin_bp.route("/transactions/<int:tx_id>", methods=["PUT"])
@admin_required
def update_transaction(tx_id):
    data = _json_body()
    tx = update_transaction_status(tx_id, data.get("status"))
    logger.info(f"Admin {session.get('user_id')} set transaction {tx_id} to {tx.status}")
    return jsonify(tx.to_dict()), 200


#============================================================================
#      PRODUCTS
#============================================================================
PRODUCT_FIELDS = {
    "name": "name",
    "description": "description",
    "price": "price",
    "returnRate": "return_rate",
    "cycleDays": "cycle_days",
    "dailyIncome": "daily_income",
    "totalReturn": "total_return",
    "active": "active",
    "order": "order",
}
MONEY_FIELDS = ("price", "return_rate", "daily_income", "total_return")


def _apply_product_fields(product, data, creating=False):
    for key, attr in PRODUCT_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if attr in MONEY_FIELDS:
            value = safe_decimal(value, key)
            if value < 0:
                raise ValidationError(f"{key} cannot be negative")
        elif attr in ("cycle_days", "order"):
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValidationError(f"{key} must be an integer")
        elif attr == "active":
            value = bool(value)
        setattr(product, attr, value)

    if creating:
        missing = [k for k in ("name", "price", "cycleDays", "dailyIncome") if k not in data]
        if missing:
            raise ValidationError(f"Missing fields: {', '.join(missing)}")
    if not product.name:
        raise ValidationError("name is required")
    if product.price is None or product.price <= 0:
        raise ValidationError("price must be positive")
    if product.cycle_days is None or product.cycle_days <= 0:
        raise ValidationError("cycleDays must be positive")

    # totals are derived when not given explicitly
    if "totalReturn" not in data:
        product.total_return = safe_decimal(product.daily_income) * product.cycle_days


@admin_bp.route("/products", methods=["GET"])
@admin_required
def list_products():
    products = Product.query.order_by(Product.order, Product.id).all()
    return jsonify([p.to_dict() for p in products]), 200


@admin_bp.route("/products", methods=["POST"])
@admin_required
def create_product():
    data = _json_body()
    product = Product(active=True, order=0, return_rate=0)
    _apply_product_fields(product, data, creating=True)
    db.session.add(product)
    db.session.commit()
    logger.info(f"Product {product.id} created: {product.name}")
    return jsonify(product.to_dict()), 201


@admin_bp.route("/products/<int:product_id>", methods=["PUT"])
@admin_required
def update_product(product_id):
    product = _get_product(product_id)
    _apply_product_fields(product, _json_body())
    db.session.commit()
    # existing holdings keep their own snapshot
    return jsonify(product.to_dict()), 200


@admin_bp.route("/products/<int:product_id>", methods=["DELETE"])
@admin_required
def delete_product(product_id):
    product = _get_product(product_id)
    if Holding.query.filter_by(product_id=product.id).first():
        product.active = False
        db.session.commit()
        return jsonify({"message": "Product has holdings and was deactivated", "product": product.to_dict()}), 200

    db.session.delete(product)
    db.session.commit()
    return jsonify({"message": "Product deleted"}), 200


#============================================================================
#      BANKS
#============================================================================
@admin_bp.route("/banks", methods=["GET"])
@admin_required
def list_banks():
    return jsonify([b.to_dict() for b in Bank.query.order_by(Bank.name).all()]), 200


@admin_bp.route("/banks", methods=["POST"])
@admin_required
def create_bank():
    data = _json_body()
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    bank = Bank(name=name, logo=data.get("logo"), active=bool(data.get("active", True)))
    db.session.add(bank)
    db.session.commit()
    return jsonify(bank.to_dict()), 201


@admin_bp.route("/banks/<int:bank_id>", methods=["PUT"])
@admin_required
def update_bank(bank_id):
    bank = db.session.get(Bank, bank_id)
    if not bank:
        raise NotFoundError("Bank not found")
    data = _json_body()
    if "name" in data:
        if not (data["name"] or "").strip():
            raise ValidationError("name is required")
        bank.name = data["name"].strip()
    if "logo" in data:
        bank.logo = data["logo"]
    if "active" in data:
        bank.active = bool(data["active"])
    db.session.commit()
    return jsonify(bank.to_dict()), 200


@admin_bp.route("/banks/<int:bank_id>", methods=["DELETE"])
@admin_required
def delete_bank(bank_id):
    bank = db.session.get(Bank, bank_id)
    if not bank:
        raise NotFoundError("Bank not found")
    db.session.delete(bank)
    db.session.commit()
    return jsonify({"message": "Bank deleted"}), 200


#============================================================================
#      SOCIAL LINKS & CAROUSEL
#============================================================================
SOCIAL_LINK_FIELDS = {"name": "name", "url": "url", "icon": "icon", "active": "active"}
CAROUSEL_FIELDS = {
    "title": "title",
    "imageUrl": "image_url",
    "linkUrl": "link_url",
    "order": "order",
    "active": "active",
}


def _apply_content_fields(item, data, fields, required):
    for key, attr in fields.items():
        if key not in data:
            continue
        value = data[key]
        if attr == "active":
            value = bool(value)
        elif attr == "order":
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValidationError(f"{key} must be an integer")
        elif value is not None:
            value = str(value).strip()
        setattr(item, attr, value)

    missing = [key for key in required if not getattr(item, fields[key])]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")


def _get_content(model, item_id, label):
    item = db.session.get(model, item_id)
    if not item:
        raise NotFoundError(f"{label} not found")
    return item


@admin_bp.route("/social-links", methods=["GET"])
@admin_required
def list_social_links():
    return jsonify([link.to_dict() for link in SocialLink.query.order_by(SocialLink.id).all()]), 200


@admin_bp.route("/social-links", methods=["POST"])
@admin_required
def create_social_link():
    link = SocialLink(active=True)
    _apply_content_fields(link, _json_body(), SOCIAL_LINK_FIELDS, ("name", "url", "icon"))
    db.session.add(link)
    db.session.commit()
    return jsonify(link.to_dict()), 201


@admin_bp.route("/social-links/<int:link_id>", methods=["PUT"])
@admin_required
def update_social_link(link_id):
    link = _get_content(SocialLink, link_id, "Social link")
    _apply_content_fields(link, _json_body(), SOCIAL_LINK_FIELDS, ("name", "url", "icon"))
    db.session.commit()
    return jsonify(link.to_dict()), 200


@admin_bp.route("/social-links/<int:link_id>", methods=["DELETE"])
@admin_required
def delete_social_link(link_id):
    db.session.delete(_get_content(SocialLink, link_id, "Social link"))
    db.session.commit()
    return jsonify({"message": "Social link deleted"}), 200


@admin_bp.route("/carousel", methods=["GET"])
@admin_required
def list_carousel():
    images = CarouselImage.query.order_by(CarouselImage.order, CarouselImage.id).all()
    return jsonify([img.to_dict() for img in images]), 200


@admin_bp.route("/carousel", methods=["POST"])
@admin_required
def create_carousel_image():
    image = CarouselImage(active=True, order=0)
    _apply_content_fields(image, _json_body(), CAROUSEL_FIELDS, ("title", "imageUrl"))
    db.session.add(image)
    db.session.commit()
    return jsonify(image.to_dict()), 201


@admin_bp.route("/carousel/<int:image_id>", methods=["PUT"])
@admin_required
def update_carousel_image(image_id):
    image = _get_content(CarouselImage, image_id, "Carousel image")
    _apply_content_fields(image, _json_body(), CAROUSEL_FIELDS, ("title", "imageUrl"))
    db.session.commit()
    return jsonify(image.to_dict()), 200


@admin_bp.route("/carousel/<int:image_id>", methods=["DELETE"])
@admin_required
def delete_carousel_image(image_id):
    db.session.delete(_get_content(CarouselImage, image_id, "Carousel image"))
    db.session.commit()
    return jsonify({"message": "Carousel image deleted"}), 200


#============================================================================
#      SETTINGS
#============================================================================
@admin_bp.route("/settings", methods=["GET"])
@admin_required
def list_settings():
    return jsonify([s.to_dict() for s in Setting.query.order_by(Setting.key).all()]), 200


@admin_bp.route("/settings/<key>", methods=["PUT"])
@admin_required
def put_setting(key):
    data = _json_body()
    if "value" not in data:
        raise ValidationError("value is required")

    setting = Setting.query.filter_by(key=key).first()
    if setting:
        setting.value = str(data["value"])
    else:
        setting = Setting(key=key, value=str(data["value"]))
        db.session.add(setting)
    db.session.commit()
    return jsonify(setting.to_dict()), 200
