# firestore_handler.py

import logging
import random
from datetime import datetime
from typing import NamedTuple
from urllib.parse import quote

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from errors import (
    AlreadyPlayedError,
    CannotPlayError,
    GameNotFoundError,
    NoGamesAvailableError,
    UserNotFoundError,
    ValidationError,
    require_document_id,
)
from quota_handler import check_user_quota

POINTS_PER_CORRECT_ANSWER = 10

# Guessable answers and the inclusive difference counts they cover
ANSWER_RANGES = {
    '3-5 differences': (3, 5),
    '6-8 differences': (6, 8),
    '9+ differences': (9, float('inf')),
}
ANSWER_OPTIONS = list(ANSWER_RANGES)

# Fields a player may see before answering. Differences and difficulty give the answer away.
PUBLIC_GAME_FIELDS = (
    'creatorId', 'creatorName', 'prompt', 'originalImageUrl',
    'modifiedImageUrl', 'createdAt', 'playCount', 'isPublic',
)


class GamePlayKey(NamedTuple):
    """Identifies the single play a player may have on a game."""
    game_id: str
    player_id: str

    @property
    def document_id(self) -> str:
        # Underscore is the separator, so it is escaped inside each part.
        def encode(part):
            return quote(part, safe='').replace('_', '%5F')
        return f"{encode(self.game_id)}_{encode(self.player_id)}"


def _isoformat(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value else None


def public_game_view(game_id: str, game_data: dict) -> dict:
    view = {"id": game_id}
    for field in PUBLIC_GAME_FIELDS:
        view[field] = game_data.get(field)
    view['createdAt'] = _isoformat(view['createdAt'])
    return view


def ensure_user_profile(db, user_id: str, display_name: str = None, email: str = None, photo_url: str = None) -> dict:
    """
    Creates the user's profile on first sign-in, otherwise refreshes the identity fields.
    Counters are never touched here.
    """
    require_document_id(user_id, "User ID")
    user_ref = db.collection('users').document(user_id)
    user_doc = user_ref.get()

    identity = {
        'displayName': display_name or 'Anonymous',
        'email': email or '',
        'photoURL': photo_url,
    }
    if not user_doc.exists:
        user_ref.set({
            **identity,
            'score': 0,
            'gamesCreated': 0,
            'gamesPlayed': 0,
            'createdAt': firestore.SERVER_TIMESTAMP,
        })
        logging.info(f"Created profile for user {user_id}")
    else:
        user_ref.set(identity, merge=True)

    return user_ref.get().to_dict()


def get_user_profile_data(db, user_id: str):
    """
    Fetches and formats all profile data for a given user.
    """
    user_doc_ref = db.collection('users').document(user_id)
    user_doc = user_doc_ref.get()
    if not user_doc.exists:
        raise UserNotFoundError("User not found")

    user_data = user_doc.to_dict()

    created_games = []
    created_query = (db.collection('gameRounds')
                     .where(filter=FieldFilter('creatorId', '==', user_id))
                     .order_by('createdAt', direction=firestore.Query.DESCENDING)
                     .stream())
    for doc in created_query:
        game = doc.to_dict()
        created_games.append({
            **public_game_view(doc.id, game),
            "differences": game.get("differences", []),
            "difficultyRange": game.get("difficultyRange"),
        })

    return {
        "uid": user_id,
        "displayName": user_data.get("displayName"),
        "email": user_data.get("email"),
        "photoURL": user_data.get("photoURL"),
        "score": user_data.get("score", 0),
        "gamesCreated": user_data.get("gamesCreated", 0),
        "gamesPlayed": user_data.get("gamesPlayed", 0),
        "createdAt": _isoformat(user_data.get("createdAt")),
        "userQuota": check_user_quota(db, user_id),
        "createdGames": created_games,
    }


def get_leaderboard(db, limit: int = 100):
    """Top scorers, highest first. Users who have not scored yet are left out."""
    query = (db.collection('users')
             .order_by('score', direction=firestore.Query.DESCENDING)
             .limit(limit)
             .stream())
    leaders = []
    for doc in query:
        data = doc.to_dict()
        if data.get('score', 0) > 0:
            leaders.append({
                "uid": doc.id,
                "displayName": data.get("displayName") or 'Anonymous',
                "score": data.get("score", 0),
                "gamesPlayed": data.get("gamesPlayed", 0),
                "photoURL": data.get("photoURL"),
            })
    return leaders


def get_community_games(db, limit: int = 12):
    query = (db.collection('gameRounds')
             .where(filter=FieldFilter('isPublic', '==', True))
             .order_by('createdAt', direction=firestore.Query.DESCENDING)
             .limit(limit)
             .stream())
    return [public_game_view(doc.id, doc.to_dict()) for doc in query]


def get_random_unplayed_game(db, player_id: str, rng=random):
    """
    Picks a public game the player neither created nor played yet.

    Creator exclusion is done here rather than with a '!=' filter so the
    query needs no composite index.
    """
    require_document_id(player_id, "User ID")

    public_games = (db.collection('gameRounds')
                    .where(filter=FieldFilter('isPublic', '==', True))
                    .stream())
    candidates = [doc for doc in public_games if doc.to_dict().get('creatorId') != player_id]
    if not candidates:
        raise NoGamesAvailableError("No games available")

    plays = (db.collection('gamePlays')
             .where(filter=FieldFilter('playerId', '==', player_id))
             .stream())
    played_game_ids = {doc.to_dict().get('gameId') for doc in plays}

    unplayed = [doc for doc in candidates if doc.id not in played_game_ids]
    if not unplayed:
        logging.info(f"No unplayed games left for user {player_id}")
        raise NoGamesAvailableError("No unplayed games available")

    selected = rng.choice(unplayed)
    return public_game_view(selected.id, selected.to_dict())


def get_playable_game(db, game_id: str, player_id: str = None):
    require_document_id(game_id, "Game ID")
    game_doc = db.collection('gameRounds').document(game_id).get()
    if not game_doc.exists:
        raise GameNotFoundError("Game not found")

    game_data = game_doc.to_dict()
    if not game_data.get('isPublic') or (player_id and game_data.get('creatorId') == player_id):
        raise CannotPlayError("Cannot access this game")
    return public_game_view(game_doc.id, game_data)


def get_game_play(db, game_id: str, player_id: str):
    key = GamePlayKey(require_document_id(game_id, "Game ID"), require_document_id(player_id, "User ID"))
    play_doc = db.collection('gamePlays').document(key.document_id).get()
    if not play_doc.exists:
        return None
    play = play_doc.to_dict()
    play['playedAt'] = _isoformat(play.get('playedAt'))
    return play


def answer_range(selected_answer: str):
    if selected_answer not in ANSWER_RANGES:
        raise ValidationError(f"Invalid answer. Choose one of: {', '.join(ANSWER_OPTIONS)}")
    return ANSWER_RANGES[selected_answer]


def _record_play(transaction, game_ref, play_ref, user_ref, key: GamePlayKey, player_name: str, selected_answer: str):
    # Firestore transactions need every read before the first write.
    game_doc = game_ref.get(transaction=transaction)
    if not game_doc.exists:
        raise GameNotFoundError("Game not found")

    game_data = game_doc.to_dict()
    if not game_data.get('isPublic') or game_data.get('creatorId') == key.player_id:
        raise CannotPlayError("Cannot play this game")

    if play_ref.get(transaction=transaction).exists:
        raise AlreadyPlayedError("Game already played")

    if not user_ref.get(transaction=transaction).exists:
        raise UserNotFoundError("User not found")

    low, high = answer_range(selected_answer)
    actual_count = len(game_data.get('differences', []))
    is_correct = low <= actual_count <= high
    points = POINTS_PER_CORRECT_ANSWER if is_correct else 0

    transaction.set(play_ref, {
        'gameId': key.game_id,
        'playerId': key.player_id,
        'playerName': player_name,
        'score': points,
        'selectedAnswer': selected_answer,
        'correctAnswer': actual_count,
        'isCorrect': is_correct,
        'playedAt': firestore.SERVER_TIMESTAMP,
    })
    transaction.update(game_ref, {'playCount': firestore.Increment(1)})
    transaction.update(user_ref, {
        'score': firestore.Increment(points),
        'gamesPlayed': firestore.Increment(1),
    })

    return {"isCorrect": is_correct, "actualCount": actual_count, "pointsEarned": points}


def verify_answer_and_record_play(db, game_id: str, player_id: str, player_name: str, selected_answer: str):
    """
    Scores a guess and records the play, exactly once per player and game.

    The play record, the game's play count and the player's stats are written
    in one transaction. A concurrent duplicate either sees the existing play or
    is retried by Firestore and then sees it.
    """
    key = GamePlayKey(require_document_id(game_id, "Game ID"), require_document_id(player_id, "User ID"))
    if not isinstance(player_name, str) or not player_name.strip():
        raise ValidationError("Player name is required")
    answer_range(selected_answer)

    game_ref = db.collection('gameRounds').document(key.game_id)
    play_ref = db.collection('gamePlays').document(key.document_id)
    user_ref = db.collection('users').document(key.player_id)

    record = firestore.transactional(_record_play)
    result = record(db.transaction(), game_ref, play_ref, user_ref, key, player_name.strip(), selected_answer)

    logging.info(f"Play recorded for user {player_id} on game {game_id}: correct={result['isCorrect']}")
    return result
