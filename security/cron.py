import hmac
import logging
from functools import wraps

from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)


def require_cron_secret(fn):
    """Only the trusted scheduler, sending `Authorization: Bearer <CRON_SECRET>`, gets through."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if not secret:
            return jsonify(error="Cron secret not configured"), 503
        supplied = request.headers.get("Authorization", "")
        if not hmac.compare_digest(supplied.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
            logger.warning("Unauthorized cron access attempt on %s", request.path)
            return jsonify(error="Unauthorized"), 401
        return fn(*args, **kwargs)
    return wrapper
