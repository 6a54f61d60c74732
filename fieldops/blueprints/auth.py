"""
Request authentication.

Agents and admins carry an HS256 bearer token with ``user_id`` and ``role``
claims. Booking and profile collaborators call in with a shared API key.
"""
import datetime
import hmac
from functools import wraps

import jwt
from flask import current_app, jsonify, request

from fieldops.actors import ROLES, Actor
from fieldops.errors import Unauthorized

TOKEN_TTL_DAYS = 30


def generate_token(user_id, role, expires_in=None):
    """Generate JWT token for an agent or admin"""
    if role not in ROLES:
        raise ValueError("Unknown role: {}".format(role))
    payload = {
        'user_id': user_id,
        'role': role,
        'exp': datetime.datetime.now(datetime.timezone.utc) + (expires_in or datetime.timedelta(days=TOKEN_TTL_DAYS)),
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm='HS256')


def verify_token(token):
    """Verify JWT token and return the caller, or None"""
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    user_id = payload.get('user_id')
    role = payload.get('role')
    if not user_id or role not in ROLES:
        return None
    return Actor(user_id, role)


def _unauthenticated():
    return jsonify({'error': {'code': 'auth.required', 'message': 'Unauthorized'}}), 401


def require_role(*roles):
    """Decorator requiring a bearer token with one of ``roles``; passes ``actor``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            header = request.headers.get('Authorization', '')
            if not header.startswith('Bearer '):
                return _unauthenticated()
            actor = verify_token(header[len('Bearer '):])
            if not actor:
                return _unauthenticated()
            if actor.role not in roles:
                raise Unauthorized("{} access required".format(' or '.join(roles).capitalize()))
            return f(*args, actor=actor, **kwargs)
        return decorated_function
    return decorator


def require_api_key(f):
    """Decorator for collaborator endpoints"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        supplied = request.headers.get('X-API-Key', '')
        expected = current_app.config['COLLABORATOR_API_KEY']
        if not supplied or not hmac.compare_digest(supplied, expected):
            return _unauthenticated()
        return f(*args, **kwargs)
    return decorated_function
