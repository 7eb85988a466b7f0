# services.py

import os

from flask import current_app, g, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def get_request_identifier():
    # If a user provides their own key, return None to EXEMPT them from rate limiting
    if request.headers.get('X-User-API-Key'):
        return None

    # Otherwise, key by user_id for logged-in users, or IP for guests
    return g.get("user_id") or get_remote_address()


limiter = Limiter(key_func=get_request_identifier)


def generation_limit():
    return os.getenv('GENERATION_RATE_LIMIT', '30/day')


def get_db():
    db = current_app.extensions.get('firestore')
    if db is None:
        raise RuntimeError("Firestore is not initialized")
    return db


def get_bucket():
    bucket = current_app.extensions.get('storage_bucket')
    if bucket is None:
        raise RuntimeError("Cloud Storage bucket is not initialized")
    return bucket


def user_api_key():
    return request.headers.get('X-User-API-Key') or os.getenv('GEMINI_API_KEY')

