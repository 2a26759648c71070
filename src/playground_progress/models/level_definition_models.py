import re
import typing

from pydantic import BaseModel, Field, field_validator, model_validator

from playground_progress.utils.base_types import BadgeId, ExerciseIndex, LevelId

LEVEL_COMPLETED_TRIGGER = "level-completed"
_EXERCISE_COMPLETED_PREFIX = "exercise-completed:"
_TRIGGER_PATTERN = re.compile(r"^(level-completed|exercise-completed:[1-9][0-9]*)$")


def exercise_completed_trigger(exercise_index: int) -> str:
    return f"{_EXERCISE_COMPLETED_PREFIX}{exercise_index}"


def parse_exercise_trigger(trigger: str) -> typing.Optional[ExerciseIndex]:
    """
    Returns the exercise index of an `exercise-completed:<n>` trigger, None for any other trigger.
    """
    if not trigger.startswith(_EXERCISE_COMPLETED_PREFIX):
        return None
    try:
        return ExerciseIndex(int(trigger[len(_EXERCISE_COMPLETED_PREFIX) :]))
    except ValueError:
        return None


class TokenRule(BaseModel):
    """
    One textual check against a submission.

    `field` names the editor buffer to read; when unset, all buffers are joined.
    Every `required` token must appear, at least one token of each `anyOf` group
    must appear, and no `forbidden` token may appear.
    """

    field: typing.Optional[str] = None
    required: list[str] = Field(default_factory=list)
    anyOf: list[list[str]] = Field(default_factory=list)
    forbidden: list[str] = Field(default_factory=list)

    @field_validator("anyOf")
    @classmethod
    def validate_any_of_groups(cls, v: list[list[str]]) -> list[list[str]]:
        if any(not group for group in v):
            raise ValueError("anyOf groups must not be empty")
        return v

    @model_validator(mode="after")
    def validate_not_empty(self) -> "TokenRule":
        if not (self.required or self.anyOf or self.forbidden):
            raise ValueError("A token rule needs at least one required, anyOf or forbidden token")
        return self


class ExercisePredicate(BaseModel):
    rules: list[TokenRule] = Field(..., min_length=1)
    caseSensitive: bool = False
    successMessage: str
    failureHint: str


class BadgeRule(BaseModel):
    badgeId: BadgeId
    trigger: str
    title: typing.Optional[str] = None

    @field_validator("trigger")
    @classmethod
    def validate_trigger(cls, v: str) -> str:
        if not _TRIGGER_PATTERN.match(v):
            raise ValueError(f"Unsupported badge trigger: {v}")
        return v


class LevelDefinition(BaseModel):
    """
    Static description of one curriculum level: how many exercises it has,
    the predicate that checks each one, and the badges its milestones award.
    """

    levelId: LevelId = Field(..., ge=1)
    title: str
    totalExercises: int = Field(..., ge=1)
    predicates: dict[ExerciseIndex, ExercisePredicate]
    badgeRules: list[BadgeRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_exercise_coverage(self) -> "LevelDefinition":
        expected = set(range(1, self.totalExercises + 1))
        actual = set(self.predicates.keys())
        if actual != expected:
            missing = sorted(expected - actual)
            extra = sorted(actual - expected)
            raise ValueError(
                f"Level {self.levelId} predicates must cover 1..{self.totalExercises} (missing={missing}, extra={extra})"
            )

        for rule in self.badgeRules:
            exercise_index = parse_exercise_trigger(rule.trigger)
            if exercise_index is not None and exercise_index > self.totalExercises:
                raise ValueError(f"Badge {rule.badgeId} triggers on unknown exercise {exercise_index}")

        badge_ids = [rule.badgeId for rule in self.badgeRules]
        if len(badge_ids) != len(set(badge_ids)):
            raise ValueError(f"Level {self.levelId} declares a badge more than once")
        return self

    def rules_for_trigger(self, trigger: str) -> list[BadgeRule]:
        return [rule for rule in self.badgeRules if rule.trigger == trigger]


class LevelCatalogModel(BaseModel):
    levels: list[LevelDefinition]

    @field_validator("levels")
    @classmethod
    def validate_unique_levels(cls, v: list[LevelDefinition]) -> list[LevelDefinition]:
        level_ids = [level.levelId for level in v]
        if len(level_ids) != len(set(level_ids)):
            raise ValueError("Level ids in a catalog must be unique")
        return v
