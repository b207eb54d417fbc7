# jwt_utils.py
import jwt
from jwt import ExpiredSignatureError, InvalidTokenError, DecodeError
from functools import wraps
from flask import request, jsonify, g, current_app


def verify_jwt_token(token):
    """
    Verify JWT token and return payload (claims).
    Raises ExpiredSignatureError, InvalidTokenError on failure.
    """
    if token.startswith("Bearer "):
        token = token.split(" ", 1)[1]

    # decode will raise exceptions we can catch upstream
    payload = jwt.decode(
        token,
        current_app.config["JWT_SECRET"],
        algorithms=[current_app.config["JWT_ALGORITHM"]],
    )
    return payload


def require_jwt(f):
    """
    Decorator for Flask routes that act on behalf of a dashboard user.
    The token must carry a user_id claim: that id is the actor recorded
    on every approval or rejection. Missing/invalid token -> 401.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        auth = request.headers.get("Authorization", None)
        if not auth:
            return jsonify({"message": "Authorization header required"}), 401

        try:
            claims = verify_jwt_token(auth)
        except ExpiredSignatureError:
            return jsonify({"message": "Token expired"}), 401
        except (InvalidTokenError, DecodeError) as e:
            return jsonify({"message": "Invalid token", "details": str(e)}), 401

        if claims.get("user_id") is None:
            return jsonify({"message": "Token tidak memuat user_id"}), 401

        # attach claims to request context for downstream use
        g.user_claims = claims
        g.token = auth
        return f(*args, **kwargs)

    return wrapper


def get_actor_id():
    return g.user_claims["user_id"]
