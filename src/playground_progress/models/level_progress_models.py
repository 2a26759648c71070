import re
import typing

from pydantic import BaseModel, Field, model_validator

from playground_progress.utils.base_types import BadgeId, ExerciseIndex, IsoTimestamp, LevelId

ExerciseState = typing.Literal["LOCKED", "UNLOCKED", "COMPLETED"]

# Single-buffer field names older playground scripts stored, mapped to userCode buffer names
LEGACY_CODE_FIELDS = {
    "code": "code",
    "htmlCode": "html",
    "cssCode": "css",
    "jsCode": "javascript",
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Upper bound on exercises expanded from a legacy `completed` counter
MAX_LEGACY_EXERCISES = 100


def _is_count(value: typing.Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_index_key(value: typing.Any) -> bool:
    return _is_count(value) or (isinstance(value, str) and value.isdigit())


def legacy_badge_name_to_id(name: str) -> BadgeId:
    """firstSteps -> first-steps; names already in kebab-case are kept."""
    return BadgeId(_CAMEL_BOUNDARY.sub("-", name).lower())


class ExerciseRecord(BaseModel):
    index: ExerciseIndex = Field(..., ge=1)
    completed: bool = False
    # buffer name (html, css, javascript, ...) -> last edited text
    userCode: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy_code_fields(cls, data: typing.Any) -> typing.Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "index" not in data and "id" in data:
            data["index"] = data.pop("id")

        user_code = data.get("userCode")
        if not isinstance(user_code, dict):
            user_code = {}
        user_code = {k: v for k, v in user_code.items() if isinstance(k, str) and isinstance(v, str)}
        for legacy_field, buffer_name in LEGACY_CODE_FIELDS.items():
            legacy_value = data.pop(legacy_field, None)
            if isinstance(legacy_value, str) and legacy_value and buffer_name not in user_code:
                user_code[buffer_name] = legacy_value
        data["userCode"] = user_code

        if not isinstance(data.get("completed", False), bool):
            data["completed"] = data["completed"] in (1, "true", "True")
        return data


class LevelProgressModel(BaseModel):
    """
    Progress of one learner through one level, as stored under the level's key.

    Older playground scripts stored a different shape (a `completed` counter, `code`
    strings per exercise, a `badges` flag object, or an exercise list). Those shapes
    are upgraded on read; writes always use this model's shape.
    """

    levelId: LevelId
    totalExercises: int = Field(..., ge=1)
    highestCompletedIndex: int = Field(default=0, ge=0)
    exercises: dict[ExerciseIndex, ExerciseRecord] = Field(default_factory=dict)
    badgesEarned: list[BadgeId] = Field(default_factory=list)
    lastUpdated: typing.Optional[IsoTimestamp] = None

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy_shape(cls, data: typing.Any) -> typing.Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        exercises = data.get("exercises")
        if isinstance(exercises, list):
            # [{id, completed}, ...]
            converted: dict[typing.Any, typing.Any] = {}
            for position, item in enumerate(exercises, start=1):
                if not isinstance(item, dict):
                    continue
                index = item.get("index", item.get("id", position))
                if not _is_index_key(index):
                    continue
                converted[index] = item
            exercises = converted
        if not isinstance(exercises, dict):
            exercises = {}
        exercises = {k: v for k, v in exercises.items() if isinstance(v, dict)}
        for key, record in list(exercises.items()):
            if "index" not in record and "id" not in record:
                exercises[key] = {**record, "index": key}

        legacy_completed = data.pop("completed", None)
        if _is_count(legacy_completed):
            # Old schema: `completed` held the highest finished exercise number
            declared_total = data.get("totalExercises", data.get("total"))
            limit = min(legacy_completed, MAX_LEGACY_EXERCISES)
            if _is_count(declared_total):
                limit = min(limit, declared_total)
            for index in range(1, limit + 1):
                record = exercises.get(index, exercises.get(str(index), {"index": index}))
                exercises.pop(str(index), None)
                exercises[index] = {**record, "completed": True}
        data["exercises"] = exercises

        if "totalExercises" not in data:
            legacy_total = data.pop("total", None)
            if isinstance(legacy_total, int):
                data["totalExercises"] = legacy_total
            elif exercises:
                data["totalExercises"] = len(exercises)

        if "levelId" not in data and "level" in data:
            data["levelId"] = data.pop("level")

        legacy_badges = data.pop("badges", None)
        if "badgesEarned" not in data and isinstance(legacy_badges, dict):
            data["badgesEarned"] = [legacy_badge_name_to_id(name) for name, earned in legacy_badges.items() if earned]

        badges = data.get("badgesEarned")
        if isinstance(badges, list):
            unique_badges: list[str] = []
            for badge in badges:
                if isinstance(badge, str) and badge not in unique_badges:
                    unique_badges.append(badge)
            data["badgesEarned"] = unique_badges
        return data

    @model_validator(mode="after")
    def sync_highest_completed_index(self) -> "LevelProgressModel":
        self.exercises = {record.index: record for record in self.exercises.values()}
        self.refresh_highest_completed_index()
        return self

    def refresh_highest_completed_index(self) -> None:
        completed = [
            record.index for record in self.exercises.values() if record.completed and record.index <= self.totalExercises
        ]
        self.highestCompletedIndex = max(completed, default=0)

    def exercise_state(self, index: int) -> ExerciseState:
        record = self.exercises.get(ExerciseIndex(index))
        if record is not None and record.completed:
            return "COMPLETED"
        if index == 1:
            return "UNLOCKED"
        previous = self.exercises.get(ExerciseIndex(index - 1))
        if previous is not None and previous.completed:
            return "UNLOCKED"
        return "LOCKED"

    def exercise_states(self) -> dict[ExerciseIndex, ExerciseState]:
        return {ExerciseIndex(i): self.exercise_state(i) for i in range(1, self.totalExercises + 1)}

    def completed_count(self) -> int:
        return sum(1 for record in self.exercises.values() if record.completed)

    def is_level_completed(self) -> bool:
        return all(self.exercise_state(i) == "COMPLETED" for i in range(1, self.totalExercises + 1))


def create_initial_level_progress(level_id: LevelId, total_exercises: int) -> LevelProgressModel:
    return LevelProgressModel(
        levelId=level_id,
        totalExercises=total_exercises,
        highestCompletedIndex=0,
        exercises={ExerciseIndex(i): ExerciseRecord(index=ExerciseIndex(i)) for i in range(1, total_exercises + 1)},
        badgesEarned=[],
    )


class ValidationResultModel(BaseModel):
    passed: bool
    message: str
    newlyCompleted: bool = False
    badgesAwarded: list[BadgeId] = Field(default_factory=list)


class LevelSnapshotResponseModel(BaseModel):
    """Response for the presentation layer: the stored record plus the derived states."""

    progress: LevelProgressModel
    exerciseStates: dict[ExerciseIndex, ExerciseState]
    percentComplete: int
    levelCompleted: bool
    hasUnsavedChanges: bool = False
