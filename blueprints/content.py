from flask import Blueprint, jsonify
from models import Setting, SocialLink, CarouselImage

bp = Blueprint("content", __name__, url_prefix="/api")


# Public reads for the home screen; edits live under /api/admin
@bp.route("/settings", methods=["GET"])
def list_settings():
    return jsonify([s.to_dict() for s in Setting.query.order_by(Setting.key).all()]), 200


@bp.route("/social-links", methods=["GET"])
def list_social_links():
    links = SocialLink.query.filter_by(active=True).order_by(SocialLink.id).all()
    return jsonify([link.to_dict() for link in links]), 200


@bp.route("/carousel", methods=["GET"])
def list_carousel():
    images = (
        CarouselImage.query.filter_by(active=True)
        .order_by(CarouselImage.order, CarouselImage.id)
        .all()
    )
    return jsonify([img.to_dict() for img in images]), 200
