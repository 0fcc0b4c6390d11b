# Overview: Request decorators establishing the acting user and enforcing roles.

"""
Authentication is handled by the identity provider in front of this API.
It forwards the authenticated subject and its role in request headers:

- X-Actor-Id:   stable subject id of the signed-in user
- X-Actor-Role: "admin" or "user"

require_auth turns those into g.current_actor; require_role gates a route
on the actor's role.
"""

from dataclasses import dataclass
from functools import wraps

from flask import current_app, g, jsonify, request

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"
ROLES = ("admin", "user")


@dataclass(frozen=True)
class Actor:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _is_authenticated() -> bool:
    return getattr(g, "current_actor", None) is not None


def require_auth(f):
    """
    Require an authenticated actor.

    Returns 401 when the identity headers are missing or carry an unknown role.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        role = (request.headers.get(ACTOR_ROLE_HEADER) or "user").strip().lower()

        if not actor_id:
            return jsonify({"error": "Authentication required"}), 401

        if role not in ROLES:
            current_app.logger.warning("Rejected request with unknown role %r for actor %s", role, actor_id)
            return jsonify({"error": "Invalid role"}), 401

        g.current_actor = Actor(id=actor_id, role=role)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated actor to hold one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            actor = g.current_actor
            if actor.role not in roles:
                current_app.logger.info(
                    "Denied %s %s to actor %s (role %s)",
                    request.method, request.path, actor.id, actor.role,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
