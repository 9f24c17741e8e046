from flask import Blueprint, jsonify, request
from extensions import db
from models import Product, Holding
from blueprints.auth import login_required
from ledger.account_ledger import AccountLedger
from ledger.exceptions import ValidationError, ProductNotFound
from ledger.purchase import PackagePurchaseProcessor

bp = Blueprint("products", __name__, url_prefix="/api")


@bp.route("/products", methods=["GET"])
def list_products():
    products = Product.query.filter_by(active=True).order_by(Product.order, Product.price).all()
    return jsonify([p.to_dict() for p in products]), 200


@bp.route("/products/<int:product_id>", methods=["GET"])
def get_product(product_id):
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFound(product_id=product_id)
    return jsonify(product.to_dict()), 200


@bp.route("/purchase", methods=["POST"])
@login_required
def purchase(user):
    data = request.get_json(silent=True) or {}
    product_id = data.get("productId")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        raise ValidationError("productId must be an integer")
    return _purchase(user, product_id)


@bp.route("/products/<int:product_id>/purchase", methods=["POST"])
@login_required
def purchase_by_path(user, product_id):
    return _purchase(user, product_id)


def _purchase(user, product_id):
    holding = PackagePurchaseProcessor.purchase_product(user.id, product_id)
    buyer = AccountLedger.refresh(user.id)

    return jsonify({
        "message": "Purchase successful",
        "holding": holding.to_dict(),
        "user": buyer.to_dict(),
    }), 201


@bp.route("/user/investments", methods=["GET"])
@login_required
def investments(user):
    holdings = user.holdings.order_by(Holding.purchased_at.desc(), Holding.id.desc()).all()
    return jsonify([h.to_dict() for h in holdings]), 200
