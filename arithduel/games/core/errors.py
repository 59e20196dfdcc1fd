# arithduel/games/core/errors.py
from __future__ import annotations


class DuelError(Exception):
    """Validation rejection raised by the lobby registry and match coordinator."""
    code = "rejected"
    status = 400

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message or self.__class__.__name__)
        if code:
            self.code = code

    def to_payload(self) -> dict:
        return {"ok": False, "error": str(self), "code": self.code}


class RoomNotFound(DuelError):
    code = "not_found"
    status = 404


class RoomFull(DuelError):
    code = "full"
    status = 409


class RoomUnavailable(DuelError):
    code = "unavailable"
    status = 409


class AlreadyInRoom(DuelError):
    code = "already_in_room"
    status = 409


class NotInRoom(DuelError):
    code = "not_in_room"
    status = 404


class NotHost(DuelError):
    code = "not_host"
    status = 403


class InvalidState(DuelError):
    code = "invalid_state"
    status = 409


class AlreadySubmitted(DuelError):
    code = "already_submitted"
    status = 409


class RoundAlreadyResolved(DuelError):
    code = "already_resolved"
    status = 409


class EvaluationError(ValueError):
    """Malformed expression, division by zero, or non-numeric result."""
