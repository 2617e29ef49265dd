# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, g

from .extensions import db
from .models import User
from .responses import error_response


# Role groups for the stock and pricing routes
STOCK_MANAGER_ROLES = ("MD", "IT", "WAREHOUSE", "DIRECTOR", "MANAGER")
PRICING_MANAGER_ROLES = ("MD", "IT", "ACCOUNTANT", "DIRECTOR")
PRICING_ADMIN_ROLES = ("DIRECTOR", "IT")


class ForbiddenError(PermissionError):
    """403-level: the actor is known but lacks the required role."""


def _resolve_actor() -> User | None:
    raw = request.headers.get("X-User-Id", "").strip()
    if not raw.isdigit():
        return None
    user = db.session.query(User).filter_by(id=int(raw)).first()
    if user is None or not user.is_active:
        return None
    return user


def require_actor(f):
    """
    Resolve the acting user and store it on g.current_user.

    The caller identifies itself with an X-User-Id header (authentication
    itself happens upstream). Returns 401 if the header is missing, malformed
    or names an unknown or deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _resolve_actor()
        if user is None:
            return error_response("Authentication required", 401)
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require the actor's sub_role to be one of roles.

    Must be stacked under @require_actor. A mismatch raises ForbiddenError,
    which the app turns into a 403 envelope.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return error_response("Authentication required", 401)
            if user.sub_role not in roles:
                raise ForbiddenError(f"Insufficient permissions. Requires one of: {', '.join(roles)}")
            return f(*args, **kwargs)

        return decorated_function
    return decorator
