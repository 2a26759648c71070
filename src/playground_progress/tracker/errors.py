class ProgressTrackerError(Exception):
    pass


class StorageReadError(ProgressTrackerError):
    """A Persistent Store entry could not be read or parsed. Recovered locally by the trackers."""


class StorageWriteError(ProgressTrackerError):
    """A Persistent Store write failed. Logged; in-memory state is kept."""


class InvalidTransitionError(ProgressTrackerError):
    """A caller tried to validate a locked exercise. Programmer error, never a user-facing message."""

    def __init__(self, level_id: int, exercise_index: int) -> None:
        super().__init__(f"Exercise {exercise_index} of level {level_id} is locked and cannot be validated")
        self.level_id = level_id
        self.exercise_index = exercise_index


class UnknownExerciseError(ProgressTrackerError, ValueError):
    def __init__(self, level_id: int, exercise_index: int, total_exercises: int) -> None:
        super().__init__(f"Level {level_id} has exercises 1..{total_exercises}, got {exercise_index}")
        self.level_id = level_id
        self.exercise_index = exercise_index
