# errors.py

import re


class GameError(Exception):
    """Base class for errors that are reported back to the player."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class ValidationError(GameError):
    status_code = 400


class QuotaExceededError(GameError):
    """Raised when either the per-user or the app-wide creation quota is used up."""
    status_code = 429

    def __init__(self, message: str, scope: str, quota: dict):
        super().__init__(message)
        self.scope = scope
        self.quota = quota

    def to_dict(self):
        key = 'userQuota' if self.scope == 'user' else 'appQuota'
        return {"success": False, "error": self.message, key: self.quota}


class UserNotFoundError(GameError):
    status_code = 404


class GameNotFoundError(GameError):
    status_code = 404


class NoGamesAvailableError(GameError):
    status_code = 404


class CannotPlayError(GameError):
    status_code = 403


class AlreadyPlayedError(GameError):
    status_code = 409


class GenerationError(GameError):
    status_code = 502


_RESERVED_ID = re.compile(r"^__.*__$")


def require_document_id(value, name: str) -> str:
    """Rejects ids Firestore cannot use as a single document name."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    if '/' in value or value in ('.', '..') or _RESERVED_ID.match(value):
        raise ValidationError(f"{name} is invalid")
    return value
