# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import ValidationError

ACTING_USER_HEADER = "X-Acting-User"


def _read_acting_user():
    raw = request.headers.get(ACTING_USER_HEADER)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{ACTING_USER_HEADER} must be an integer user id")


def with_acting_user(f):
    """
    Establish the acting user for audit fields.

    Sets g.acting_user_id from the X-Acting-User header (None when absent).
    No authentication happens here; the caller is trusted to identify itself.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.acting_user_id = _read_acting_user()
        except ValidationError as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function


def require_acting_user(f):
    """Like with_acting_user, but answers 400 when the header is missing."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.acting_user_id = _read_acting_user()
        except ValidationError as e:
            return jsonify(e.to_dict()), e.status_code
        if g.acting_user_id is None:
            err = ValidationError(f"{ACTING_USER_HEADER} header is required")
            return jsonify(err.to_dict()), err.status_code
        return f(*args, **kwargs)

    return decorated_function
