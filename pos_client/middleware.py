"""Middleware for cashier identity."""
from functools import wraps

from flask import g, jsonify, request, session

from pos_client.utils.number_format import to_int


def load_user():
    """
    Load the current cashier id into g.user_id.

    Login itself lives in the mobile app; the id arrives in the X-User-Id
    header or was stored in the session by an earlier request.
    """
    g.user_id = None

    raw = request.headers.get('X-User-Id') or session.get('user_id')
    if raw in (None, ''):
        return
    user_id = to_int(raw)
    if user_id > 0:
        g.user_id = user_id
        session['user_id'] = user_id


def require_user(f):
    """
    Decorator: Require a cashier id.

    Returns a 401 JSON error if none was provided.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user_id') is None:
            return jsonify({
                'status': 'error',
                'message': 'User not identified. Please log in again.'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
