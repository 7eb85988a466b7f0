# auth.py

from datetime import datetime, timezone
from functools import wraps

import jwt
from firebase_admin import auth as firebase_auth
from flask import current_app, g, jsonify, request

from services import get_db


def issue_access_token(user_id: str) -> str:
    token_payload = {
        'user_id': user_id,
        'exp': datetime.now(timezone.utc) + current_app.config['JWT_ACCESS_TOKEN_EXPIRES'],
    }
    return jwt.encode(token_payload, current_app.config['JWT_SECRET_KEY'], algorithm='HS256')


def verify_firebase_token(id_token: str) -> dict:
    """Checks a Firebase Auth ID token from the client sign-in flow and returns its claims."""
    return firebase_auth.verify_id_token(id_token)


def _get_user_from_token(token):
    try:
        data = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=["HS256"])
    except jwt.PyJWTError:
        return None

    user_id = data.get('user_id')
    if not user_id:
        return None
    user_doc = get_db().collection('users').document(user_id).get()
    if not user_doc.exists:
        return None
    g.user_id = user_id
    g.user_name = user_doc.to_dict().get('displayName') or 'Anonymous'
    return user_id


def _bearer_token():
    header = request.headers.get('Authorization', '')
    return header.split(' ')[-1] if header.startswith('Bearer ') else None


def token_optional(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = None
        g.user_name = None
        token = _bearer_token()
        user_id = _get_user_from_token(token) if token else None
        return f(user_id, *args, **kwargs)
    return decorated


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _bearer_token()
        if not token: return jsonify({"error": "Token is missing"}), 401
        user_id = _get_user_from_token(token)
        if not user_id: return jsonify({"error": "Token is invalid or expired"}), 401
        return f(user_id, *args, **kwargs)
    return decorated
