import json
from types import SimpleNamespace

import firebase_admin.auth

import image_generator
from fakes import PNG_DATA_URL
from firestore_handler import ensure_user_profile, get_leaderboard


def test_first_sign_in_creates_profile(client, db, monkeypatch):
    claims = {'uid': 'alice', 'name': 'Alice', 'email': 'alice@example.com', 'picture': 'https://p.example/a.png'}
    monkeypatch.setattr(firebase_admin.auth, 'verify_id_token', lambda token: claims)

    res = client.post('/session', json={'idToken': 'firebase-token'})

    assert res.status_code == 200
    body = res.get_json()
    assert body['access_token']
    assert body['user'] == {'id': 'alice', 'displayName': 'Alice', 'email': 'alice@example.com'}
    user = db.data('users', 'alice')
    assert user['score'] == 0
    assert user['gamesCreated'] == 0
    assert user['gamesPlayed'] == 0
    assert user['photoURL'] == 'https://p.example/a.png'


def test_session_rejects_bad_token(client, monkeypatch):
    def reject(token):
        raise firebase_admin.auth.InvalidIdTokenError('bad token')
    monkeypatch.setattr(firebase_admin.auth, 'verify_id_token', reject)

    assert client.post('/session', json={'idToken': 'nope'}).status_code == 401
    assert client.post('/session', json={}).status_code == 400


def test_sign_in_again_keeps_counters(db, make_user):
    make_user('alice', score=40, gamesCreated=2, gamesPlayed=4)
    profile = ensure_user_profile(db, 'alice', display_name='Alice B', email='new@example.com')
    assert profile['displayName'] == 'Alice B'
    assert profile['email'] == 'new@example.com'
    assert (profile['score'], profile['gamesCreated'], profile['gamesPlayed']) == (40, 2, 4)


def test_protected_routes_need_token(client):
    assert client.get('/random_game').status_code == 401
    assert client.post('/verify_answer', json={}).status_code == 401
    res = client.get('/profile', headers={'Authorization': 'Bearer garbage'})
    assert res.status_code == 401


def test_create_and_play_over_http(client, db, make_user, auth_headers):
    make_user('alice', display_name='Alice')
    make_user('bob', display_name='Bob')

    res = client.post('/create_game', headers=auth_headers('alice'), json={
        'prompt': 'a rainy street',
        'originalImage': PNG_DATA_URL,
        'modifiedImage': PNG_DATA_URL,
        'differences': ['a', 'b', 'c', 'd', 'e', 'f', 'g'],
    })
    assert res.status_code == 201
    game_id = res.get_json()['gameId']
    assert db.data('gameRounds', game_id)['creatorName'] == 'Alice'

    quota = client.get('/quota', headers=auth_headers('alice')).get_json()
    assert quota['userQuota'] == {'used': 1, 'limit': 5, 'remaining': 4}
    assert quota['appQuota']['used'] == 1

    game = client.get('/random_game', headers=auth_headers('bob')).get_json()
    assert game['id'] == game_id
    assert 'differences' not in game

    res = client.post('/verify_answer', headers=auth_headers('bob'),
                      json={'gameId': game_id, 'selectedAnswer': '6-8 differences'})
    assert res.status_code == 200
    assert res.get_json() == {'isCorrect': True, 'actualCount': 7, 'pointsEarned': 10}

    play = client.get(f'/game_play/{game_id}', headers=auth_headers('bob')).get_json()['gamePlay']
    assert play['playerName'] == 'Bob'

    res = client.post('/verify_answer', headers=auth_headers('bob'),
                      json={'gameId': game_id, 'selectedAnswer': '6-8 differences'})
    assert res.status_code == 409
    assert res.get_json() == {'error': 'Game already played'}

    res = client.get('/random_game', headers=auth_headers('bob'))
    assert res.status_code == 404

    leaders = client.get('/leaderboard').get_json()['leaders']
    assert [leader['uid'] for leader in leaders] == ['bob']


def test_create_game_reports_user_quota(client, make_user, auth_headers):
    make_user('alice', gamesCreated=5)
    res = client.post('/create_game', headers=auth_headers('alice'), json={
        'prompt': 'a rainy street',
        'originalImage': PNG_DATA_URL,
        'modifiedImage': PNG_DATA_URL,
        'differences': ['a', 'b', 'c'],
    })
    assert res.status_code == 429
    body = res.get_json()
    assert body['success'] is False
    assert body['userQuota'] == {'used': 5, 'limit': 5, 'remaining': 0}


def test_create_game_validates_body(client, make_user, auth_headers):
    make_user('alice')
    res = client.post('/create_game', headers=auth_headers('alice'), json={'prompt': ''})
    assert res.status_code == 400
    res = client.post('/create_game', headers=auth_headers('alice'), data='not json')
    assert res.status_code == 400


def test_game_route_hides_answers_and_blocks_creator(client, make_user, make_game, auth_headers):
    make_user('alice')
    make_game('g1', 'alice', difference_count=9)

    res = client.get('/game/g1')
    assert res.status_code == 200
    assert 'differences' not in res.get_json()

    assert client.get('/game/g1', headers=auth_headers('alice')).status_code == 403
    assert client.get('/game/missing').status_code == 404


def test_community_games_lists_public_rounds(client, make_game):
    make_game('g1', 'alice')
    make_game('g2', 'bob', is_public=False)
    games = client.get('/community_games').get_json()['games']
    assert [g['id'] for g in games] == ['g1']
    assert 'differences' not in games[0]


def test_check_app_quota(client, make_game):
    make_game('g1', 'alice')
    body = client.get('/check_app_quota').get_json()
    assert body == {'success': True, 'appQuota': {'used': 1, 'limit': 1000, 'remaining': 999}}


def test_profile_includes_created_games(client, make_user, make_game, auth_headers):
    make_user('alice', score=30, gamesCreated=1)
    make_game('g1', 'alice', difference_count=6, difficultyRange='6-8')

    profile = client.get('/profile', headers=auth_headers('alice')).get_json()

    assert profile['score'] == 30
    assert profile['userQuota'] == {'used': 1, 'limit': 5, 'remaining': 4}
    assert profile['createdGames'][0]['id'] == 'g1'
    assert profile['createdGames'][0]['difficultyRange'] == '6-8'
    assert len(profile['createdGames'][0]['differences']) == 6


def test_leaderboard_orders_by_score(db, make_user):
    make_user('alice', score=10)
    make_user('bob', score=30)
    make_user('carol', score=0)
    leaders = get_leaderboard(db)
    assert [leader['uid'] for leader in leaders] == ['bob', 'alice']


def test_plan_differences_route_validates_count(client, make_user, auth_headers, monkeypatch):
    monkeypatch.setenv('GEMINI_API_KEY', 'test-key')
    make_user('alice')
    res = client.post('/plan_differences', headers=auth_headers('alice'),
                      json={'prompt': 'a harbour', 'count': 42})
    assert res.status_code == 400


def test_verify_answer_rejects_path_like_game_id(client, make_user, make_game, auth_headers):
    make_user('bob')
    make_game('g1', 'alice')
    res = client.post('/verify_answer', headers=auth_headers('bob'),
                      json={'gameId': 'g1/extra', 'selectedAnswer': '3-5 differences'})
    assert res.status_code == 400
    assert res.get_json() == {'error': 'Game ID is invalid'}


def test_plan_differences_route_uses_callers_api_key(client, make_user, auth_headers, monkeypatch):
    clients = []

    class RecordingClient:
        def __init__(self, api_key):
            self.api_key = api_key
            self.models = SimpleNamespace(generate_content=self.generate_content)
            clients.append(self)

        def generate_content(self, **kwargs):
            return SimpleNamespace(text=json.dumps([f'{self.api_key} edit {i}' for i in range(3)]))

    monkeypatch.setattr(image_generator.genai, 'Client', RecordingClient)
    monkeypatch.setenv('GEMINI_API_KEY', 'server-key')
    make_user('alice')
    make_user('bob')

    for user, key in (('alice', 'alice-key'), ('bob', 'bob-key')):
        headers = {**auth_headers(user), 'X-User-API-Key': key}
        res = client.post('/plan_differences', headers=headers, json={'prompt': 'a harbour', 'count': 3})
        assert res.status_code == 200
        assert res.get_json()['differences'][0] == f'{key} edit 0'

    res = client.post('/plan_differences', headers=auth_headers('alice'), json={'prompt': 'a harbour', 'count': 3})
    assert res.get_json()['differences'][0] == 'server-key edit 0'
    assert [c.api_key for c in clients] == ['alice-key', 'bob-key', 'server-key']


def test_plan_differences_route_without_any_key(client, make_user, auth_headers, monkeypatch):
    monkeypatch.delenv('GEMINI_API_KEY', raising=False)
    make_user('alice')
    res = client.post('/plan_differences', headers=auth_headers('alice'), json={'prompt': 'a harbour', 'count': 3})
    assert res.status_code == 502
    assert 'API key not found' in res.get_json()['error']
