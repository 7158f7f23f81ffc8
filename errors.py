"""Error types raised inside the stage engine.

Nothing here ever reaches the socket layer: ``StageController.dispatch``
catches every ``StageError`` and either drops it or reports it to the
connection that caused it.
"""

from __future__ import annotations


class StageError(Exception):
    reason = "error"


class AuthorizationError(StageError):
    """Admin command from a non-admin connection, or a wrong admin secret."""
    reason = "not-authorized"


class ValidationError(StageError):
    """Structurally invalid input (bad index, unknown name, bad duration)."""
    reason = "invalid"


class StateConflictError(StageError):
    """Valid request that the current state does not allow."""

    def __init__(self, reason: str, **details):
        super().__init__(reason)
        self.reason = reason
        self.details = details


# ---- vote specific ----
class UnknownScene(ValidationError):
    reason = "unknown-scene"


class InvalidOption(ValidationError):
    reason = "bad-option"


class NoEligibleBallot(StateConflictError):
    def __init__(self, scene: str, required: list[int]):
        super().__init__("no-eligible-ballot", scene=scene, required=required)


class AlreadyVoted(StateConflictError):
    def __init__(self):
        super().__init__("already-voted")


class SettingsError(ValueError):
    """Bad environment value or timeline file; fatal at startup."""
