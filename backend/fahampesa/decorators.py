# Overview: Request decorators for API routes (tenant context and error envelope).

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import FahamPesaError
from .extensions import db


def _request_user_id():
    user_id = request.args.get("user_id")
    if user_id:
        return user_id
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data.get("user_id")
    return None


def require_tenant(f):
    """
    Establish tenant context for the request.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.tenant_id: the user_id whose data this request may touch

    Returns 400 if user_id is missing from both the query string and the
    JSON body.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _request_user_id()
        if user_id is None or not str(user_id).strip():
            return jsonify({"success": False, "error": "user_id is required"}), 400

        g.tenant_id = str(user_id).strip()
        return f(*args, **kwargs)

    return decorated_function


def handle_service_errors(f):
    """
    Map service failures onto the JSON error envelope.

    - FahamPesaError: its status_code, message and hints
    - KeyError: 400 "Missing required field"
    - anything else: logged, 500

    The session is rolled back in every failure case.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except FahamPesaError as e:
            db.session.rollback()
            return jsonify(e.to_dict()), e.status_code
        except KeyError as e:
            db.session.rollback()
            return jsonify({"success": False, "error": f"Missing required field: {e}"}), 400
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
            return jsonify({"success": False, "error": "Internal server error"}), 500

    return decorated_function
