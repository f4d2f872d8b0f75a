from datetime import timedelta
from functools import wraps
import re

import jwt
from flask import current_app, jsonify, request

from app_factory import db
from parkspot.models import User, UserRole, utcnow


# --------------------
# JWT HELPERS
# --------------------
def create_token(user):
    payload = {
        "user_id": user.id,
        "role": user.role.value,
        "exp": utcnow() + timedelta(hours=current_app.config["JWT_EXPIRY_HOURS"]),
    }
    return jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm="HS256")


def is_valid_email(email: str) -> bool:
    pattern = r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$"
    return re.match(pattern, email) is not None


def token_required(f):
    @wraps(f)
    def decorator(*args, **kwargs):
        auth = request.headers.get("Authorization", "")
        token = auth.split(" ")[1] if " " in auth else None

        if not token:
            return jsonify({"error": "Token missing"}), 401

        try:
            data = jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=["HS256"])
        except jwt.PyJWTError:
            return jsonify({"error": "Invalid or expired token"}), 401

        current_user = db.session.get(User, data.get("user_id"))
        if not current_user:
            return jsonify({"error": "Invalid user"}), 401

        return f(current_user, *args, **kwargs)
    return decorator


def roles_required(*roles):
    allowed = {UserRole.parse(r) for r in roles}

    def wrap(f):
        @wraps(f)
        def wrapper(current_user, *args, **kwargs):
            if current_user.role not in allowed:
                return jsonify({"error": f"{' or '.join(sorted(r.value.title() for r in allowed))} required"}), 403
            return f(current_user, *args, **kwargs)
        return wrapper
    return wrap
