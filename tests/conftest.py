import os
import sys

import pytest

# Ensure the project root (containing app.py and the handler modules) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ['RATELIMIT_ENABLED'] = 'false'
os.environ['JWT_SECRET_KEY'] = 'test-secret'
os.environ.pop('FIREBASE_SERVICE_ACCOUNT_KEY_BASE64', None)

from firebase_admin import firestore

from fakes import FakeBucket, FakeFirestore, fake_transactional


@pytest.fixture(autouse=True)
def fake_transactions(monkeypatch):
    monkeypatch.setattr(firestore, 'transactional', fake_transactional)


@pytest.fixture()
def db():
    return FakeFirestore()


@pytest.fixture()
def bucket():
    return FakeBucket()


@pytest.fixture()
def make_user(db):
    def _make_user(user_id, display_name=None, **counters):
        data = {
            'displayName': display_name or user_id.title(),
            'email': f'{user_id}@example.com',
            'photoURL': None,
            'score': 0,
            'gamesCreated': 0,
            'gamesPlayed': 0,
        }
        data.update(counters)
        db.seed('users', user_id, data)
        return user_id
    return _make_user


@pytest.fixture()
def make_game(db):
    def _make_game(game_id, creator_id, difference_count=4, is_public=True, **fields):
        data = {
            'creatorId': creator_id,
            'creatorName': creator_id.title(),
            'prompt': 'a lighthouse at dusk',
            'originalImageUrl': f'https://img.example/{game_id}/original.png',
            'modifiedImageUrl': f'https://img.example/{game_id}/modified.png',
            'differences': [f'change {i}' for i in range(difference_count)],
            'difficultyRange': None,
            'playCount': 0,
            'isPublic': is_public,
        }
        data.update(fields)
        db.seed('gameRounds', game_id, data)
        return game_id
    return _make_game


@pytest.fixture()
def flask_app(db, bucket):
    from app import app as application
    application.config['TESTING'] = True
    application.extensions['firestore'] = db
    application.extensions['storage_bucket'] = bucket
    yield application
    application.extensions.pop('firestore', None)
    application.extensions.pop('storage_bucket', None)


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def auth_headers(flask_app):
    from auth import issue_access_token

    def _auth_headers(user_id):
        with flask_app.app_context():
            token = issue_access_token(user_id)
        return {'Authorization': f'Bearer {token}'}
    return _auth_headers
