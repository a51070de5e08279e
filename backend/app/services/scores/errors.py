class ScoreError(Exception):
    """Base class for failures surfaced by the score services."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ScoreError):
    pass


class NotFound(ScoreError):
    pass


class StorageFailure(ScoreError):
    """A ledger write or aggregate update could not complete."""


class PropagationFailure(StorageFailure):
    """The play was recorded but the aggregate update failed.

    ``play`` holds the serialized ledger entry so callers can still report it.
    """

    def __init__(self, message: str, play: dict, points_earned: int):
        super().__init__(message)
        self.play = play
        self.points_earned = points_earned
