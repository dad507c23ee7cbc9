from flask import Blueprint, jsonify

from security.cron import require_cron_secret
from services.bookings import advance_stays
from services.sweeper import sweep_expired_holds

cron_bp = Blueprint("cron", __name__, url_prefix="/cron")


@cron_bp.route("/expire-holds", methods=["GET", "POST"])
@require_cron_secret
def expire_holds():
    return jsonify(sweep_expired_holds().as_json()), 200


@cron_bp.route("/advance-stays", methods=["GET", "POST"])
@require_cron_secret
def advance():
    return jsonify(advance_stays()), 200
