# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import Actor, validate_role


def _int_header(name):
    raw = request.headers.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer")


def require_actor(f):
    """
    Establish the upstream-authenticated actor.

    Sets g.actor from:
    - X-Actor-Id (required)
    - X-Actor-Role (required, a known role; 'system' is internal only)
    - X-Actor-Warehouse-Id, X-Actor-Project-Id (optional scope)

    Returns 401 when the identity headers are missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        role = request.headers.get("X-Actor-Role")
        try:
            actor_id = _int_header("X-Actor-Id")
            warehouse_id = _int_header("X-Actor-Warehouse-Id")
            project_id = _int_header("X-Actor-Project-Id")
        except ValueError as e:
            return jsonify({"error": str(e)}), 401

        if actor_id is None or not role:
            return jsonify({"error": "Authenticated actor required"}), 401
        if not validate_role(role) or role == "system":
            return jsonify({"error": f"Unknown role: {role}"}), 401

        g.actor = Actor(id=actor_id, role=role, warehouse_id=warehouse_id, project_id=project_id)
        return f(*args, **kwargs)

    return decorated_function
