from functools import wraps

from flask import g, jsonify


def require_roles(*role_names: str):
    """
    Usage: @require_roles("HOST")

    ADMIN passes every role check.
    """
    wanted = set(role_names)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401
            if not user.is_admin and not any(user.has_role(name) for name in wanted):
                return jsonify(error="Forbidden"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
