"""
Exceptions raised by the domain, persistence and service layers.

Every `GameError` carries a stable machine-readable `code` and the HTTP status the API layer answers with.
Clients use the code to decide whether to refetch, show a message, or redirect.
"""


class GameError(Exception):
    """Top-level exception for anything the caller is allowed to see."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


# --- 401 ---
class UnauthorizedError(GameError):
    code = "UNAUTHORIZED"
    status_code = 401


# --- NOT FOUND ---
class NotFoundError(GameError):
    status_code = 404


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"


class GameNotFoundError(NotFoundError):
    code = "GAME_NOT_FOUND"


# --- PRECONDITION / STATE CONFLICT ---
class GameStateError(GameError):
    """Operation is not valid for the current status of the game. Refetch the game state."""

    status_code = 409


class GameNotActiveError(GameStateError):
    code = "GAME_NOT_ACTIVE"


class GameNotStartedError(GameStateError):
    code = "GAME_NOT_STARTED"


class GameAlreadyStartedError(GameStateError):
    code = "GAME_ALREADY_STARTED"


class GameNotFinishedError(GameStateError):
    code = "GAME_NOT_FINISHED"


class HasActiveGameError(GameStateError):
    code = "HAS_ACTIVE_GAME"


class OpponentAlreadyJoinedError(GameStateError):
    code = "OPPONENT_ALREADY_JOINED"


class UsernameTakenError(GameStateError):
    code = "USERNAME_TAKEN"


# --- AUTHORIZATION ---
class AuthorizationError(GameError):
    status_code = 403


class NotYourTurnError(AuthorizationError):
    code = "NOT_YOUR_TURN"


class NotInGameError(AuthorizationError):
    code = "NOT_IN_GAME"


class NotGameCreatorError(AuthorizationError):
    code = "NOT_GAME_CREATOR"


# --- INPUT VALIDATION ---
class InvalidRequestError(GameError):
    code = "INVALID_REQUEST"
    status_code = 400


class InvalidColumnError(InvalidRequestError):
    code = "INVALID_COLUMN"


class ColumnFullError(InvalidRequestError):
    code = "COLUMN_FULL"


class InvalidCodeFormatError(InvalidRequestError):
    code = "INVALID_CODE_FORMAT"


class InvalidUsernameError(InvalidRequestError):
    code = "INVALID_USERNAME"


class CannotJoinOwnGameError(InvalidRequestError):
    code = "CANNOT_JOIN_OWN_GAME"


class OpponentNotAbandonedError(InvalidRequestError):
    code = "OPPONENT_NOT_ABANDONED"


class UseClaimAbandonedError(InvalidRequestError):
    """The opponent went silent: the win must be claimed instead of playing on."""

    code = "USE_CLAIM_ABANDONED_ENDPOINT"


# --- OPTIMISTIC CONCURRENCY ---
class MoveConflictError(GameError):
    """Another request advanced the game first. Refetch and retry the user action."""

    code = "MOVE_CONFLICT"
    status_code = 409


# --- PERSISTENCE ---
class RepositoryError(GameError):
    """Persistence failed in a way the caller cannot fix (e.g. no unique id could be generated)."""

    code = "INTERNAL_ERROR"
    status_code = 500


class InvalidBoardError(ValueError):
    """A board string is not 42 characters from {'0', '1', '2'}. Programming error, never user input."""


class RatingSnapshotMissingError(RuntimeError):
    """
    Finalizing a game whose rating snapshots were never captured.

    NOTE: not a GameError on purpose. This can only happen if the join/match step is broken, so it must abort the
    transaction loudly instead of being mapped onto a user-facing error code.
    """
