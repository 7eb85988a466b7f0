# quota_handler.py

import logging
import os

from firebase_admin import firestore

from errors import QuotaExceededError, UserNotFoundError, require_document_id

# Maximum game rounds a single user may create
USER_GAME_QUOTA = int(os.getenv('USER_GAME_QUOTA', '5'))

# Maximum game rounds for the entire application
APP_GAME_QUOTA = int(os.getenv('APP_GAME_QUOTA', '1000'))


def quota_status(used: int, limit: int) -> dict:
    return {"used": used, "limit": limit, "remaining": max(0, limit - used)}


def check_user_quota(db, user_id: str, limit: int = None) -> dict:
    """Read-only snapshot of a user's creation quota. Unknown users have used nothing."""
    limit = USER_GAME_QUOTA if limit is None else limit
    user_doc = db.collection('users').document(user_id).get()
    if not user_doc.exists:
        return quota_status(0, limit)
    return quota_status(user_doc.to_dict().get('gamesCreated', 0), limit)


def check_app_quota(db, limit: int = None) -> dict:
    """Counts every game round on the server against the app-wide quota."""
    limit = APP_GAME_QUOTA if limit is None else limit
    results = db.collection('gameRounds').count(alias='all').get()
    used = results[0][0].value
    return quota_status(used, limit)


def _consume_user_quota(transaction, user_ref, limit: int) -> dict:
    user_doc = user_ref.get(transaction=transaction)
    if not user_doc.exists:
        raise UserNotFoundError("User not found")

    games_created = user_doc.to_dict().get('gamesCreated', 0)
    if games_created >= limit:
        raise QuotaExceededError(
            f"You have reached your game creation limit ({limit} games).",
            scope='user',
            quota=quota_status(games_created, limit),
        )

    transaction.update(user_ref, {'gamesCreated': firestore.Increment(1)})
    return quota_status(games_created + 1, limit)


def reserve_game_quota(db, user_id: str, user_limit: int = None, app_limit: int = None) -> dict:
    """
    Checks the app-wide quota, then reserves one unit of the user's quota.

    The app-wide check is a plain count outside the transaction, so concurrent
    creations can overshoot the app limit. The per-user check and increment run
    in a single Firestore transaction on the user document.
    """
    require_document_id(user_id, "User ID")
    user_limit = USER_GAME_QUOTA if user_limit is None else user_limit

    app_quota = check_app_quota(db, app_limit)
    logging.info(f"App quota: {app_quota['used']} / {app_quota['limit']}")
    if app_quota['remaining'] <= 0:
        raise QuotaExceededError(
            "Application has reached its game creation limit. Please try again later.",
            scope='app',
            quota=app_quota,
        )

    user_ref = db.collection('users').document(user_id)
    consume = firestore.transactional(_consume_user_quota)
    user_quota = consume(db.transaction(), user_ref, user_limit)

    logging.info(f"Quota reserved for user {user_id}: {user_quota['used']} / {user_quota['limit']}")
    return {"success": True, "userQuota": user_quota, "appQuota": app_quota}
