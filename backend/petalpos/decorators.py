# Overview: Request decorators and helpers for API routes.

from functools import wraps

from flask import current_app, jsonify, request

from .errors import PetalError
from .validation import ConflictError, ValidationError

ACTOR_HEADER = "X-Actor"


def current_actor() -> str | None:
    """
    Opaque caller identity for audit fields.

    Authentication lives in front of this service; the value is recorded,
    never used for authorization.
    """
    actor = (request.headers.get(ACTOR_HEADER) or "").strip()
    return actor[:128] or None


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def api_errors(action: str):
    """
    Map domain failures to JSON responses.

    - PetalError -> its status code with {"error", "code", "details"}
    - ValidationError -> 400, ConflictError -> 409
    - anything else is logged and returned as a 500
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except PetalError as e:
                return jsonify(e.to_dict()), e.status_code
            except ValidationError as e:
                return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
            except ConflictError as e:
                return jsonify({"error": str(e), "code": "CONFLICT"}), 409
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
