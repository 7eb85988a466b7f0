# app.py

import base64
import json
import os
from datetime import timedelta

import firebase_admin
from dotenv import load_dotenv
from firebase_admin import auth as firebase_auth, credentials, firestore, storage
from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from auth import issue_access_token, token_required, verify_firebase_token
from errors import GameError
from firestore_handler import ensure_user_profile, get_leaderboard, get_user_profile_data
from routes.game_routes import game_bp
from services import get_db, limiter

load_dotenv()
app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',')}}, supports_credentials=True, expose_headers=["Content-Type", "Authorization"], allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-User-API-Key"])
app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'fallback_secret_key_for_dev_only_change_me')
app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=24)
app.config['RATELIMIT_ENABLED'] = os.getenv('RATELIMIT_ENABLED', 'true').lower() == 'true'

# --- Firebase Initialization ---
service_account_key_base64 = os.getenv('FIREBASE_SERVICE_ACCOUNT_KEY_BASE64')
if service_account_key_base64:
    try:
        decoded_key_bytes = base64.b64decode(service_account_key_base64)
        service_account_info = json.loads(decoded_key_bytes.decode('utf-8'))
        if not firebase_admin._apps:
            cred = credentials.Certificate(service_account_info)
            firebase_admin.initialize_app(cred, {'storageBucket': os.getenv('FIREBASE_STORAGE_BUCKET')})
        app.extensions['firestore'] = firestore.client()
        app.extensions['storage_bucket'] = storage.bucket()
        app.logger.info("Firebase Admin SDK initialized successfully.")
    except Exception as e:
        app.logger.error(f"Failed to initialize Firebase Admin SDK: {e}")
else:
    app.logger.warning("FIREBASE_SERVICE_ACCOUNT_KEY_BASE64 not found.")

limiter.init_app(app)
app.register_blueprint(game_bp)


@app.errorhandler(GameError)
def game_error_handler(e):
    app.logger.info(f"{request.path} rejected: {e.message}")
    return jsonify(e.to_dict()), e.status_code


# Global handler for 429 Rate Limit errors
@app.errorhandler(429)
def ratelimit_handler(e):
    return jsonify(error=f"Rate limit exceeded: {e.description}"), 429


@app.errorhandler(Exception)
def unexpected_error_handler(e):
    if isinstance(e, HTTPException):
        return jsonify(error=e.description), e.code
    app.logger.error(f"Unhandled error in {request.path}: {e}")
    return jsonify({"error": f"An internal error occurred: {str(e)}"}), 500


# --- Account Routes ---

@app.route('/session', methods=['POST'])
@limiter.limit("30 per minute")
def start_session():
    """
    Exchanges a Firebase ID token for an app access token.
    The first sign-in creates the user's profile.
    """
    data = request.get_json(silent=True) or {}
    id_token = data.get('idToken')
    if not id_token:
        return jsonify({"error": "ID token is required"}), 400

    try:
        claims = verify_firebase_token(id_token)
    except (ValueError, firebase_auth.InvalidIdTokenError) as e:
        app.logger.warning(f"Rejected sign-in: {e}")
        return jsonify({"error": "Invalid credentials"}), 401

    user_id = claims['uid']
    profile = ensure_user_profile(
        get_db(), user_id,
        display_name=claims.get('name'),
        email=claims.get('email'),
        photo_url=claims.get('picture'),
    )
    return jsonify({
        "message": "Login successful", "access_token": issue_access_token(user_id),
        "user": {"id": user_id, "displayName": profile.get('displayName'), "email": profile.get('email')}
    }), 200


@app.route('/profile', methods=['GET'])
@token_required
def get_user_profile(current_user_id):
    profile_data = get_user_profile_data(get_db(), current_user_id)
    return jsonify(profile_data), 200


@app.route('/leaderboard', methods=['GET'])
def leaderboard_route():
    limit = request.args.get('limit', 100, type=int)
    if limit is None or not 1 <= limit <= 500:
        return jsonify({"error": "limit must be between 1 and 500"}), 400
    return jsonify({"leaders": get_leaderboard(get_db(), limit)}), 200


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5001))
    app.run(host='0.0.0.0', port=port)
