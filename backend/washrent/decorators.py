# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-Actor"


def require_actor(f):
    """
    Require an acting operator for write endpoints.

    Sets g.actor from the X-Actor header. Services never read it from g:
    routes pass it explicitly so every write records who made it.

    Returns 401 if the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not actor:
            return jsonify({"error": f"{ACTOR_HEADER} header required", "code": "actor_required"}), 401

        g.actor = actor[:128]
        return f(*args, **kwargs)

    return decorated_function
