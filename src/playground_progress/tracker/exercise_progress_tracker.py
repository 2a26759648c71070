import json
import logging
import typing
from datetime import datetime, timezone

from pydantic import ValidationError

from playground_progress.dynamodb.profile_storage_table import PersistentStore
from playground_progress.models.level_definition_models import (
    LEVEL_COMPLETED_TRIGGER,
    LevelDefinition,
    exercise_completed_trigger,
    parse_exercise_trigger,
)
from playground_progress.models.level_progress_models import (
    ExerciseState,
    LevelProgressModel,
    LevelSnapshotResponseModel,
    ValidationResultModel,
    create_initial_level_progress,
)
from playground_progress.tracker.errors import (
    InvalidTransitionError,
    StorageReadError,
    StorageWriteError,
    UnknownExerciseError,
)
from playground_progress.tracker.hub_progress_tracker import HubProgressTracker
from playground_progress.utils.base_types import BadgeId, ExerciseIndex, IsoTimestamp
from playground_progress.utils.exercise_predicates import SubmittedContent, evaluate_predicate
from playground_progress.utils.storage_keys import legacy_level_storage_keys, level_storage_key

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ExerciseProgressTracker:
    """
    Owns one learner's progress through one level.

    Per exercise the state is LOCKED, UNLOCKED or COMPLETED. Exercise 1 starts
    unlocked; exercise i unlocks when exercise i-1 completes; COMPLETED is terminal
    until `reset` or `import_progress`. Every mutation is written back to the store
    synchronously. Store failures never reach the caller: reads fall back to a fresh
    record, failed writes leave the in-memory state in place and set
    `has_unsaved_changes`.
    """

    def __init__(
        self,
        definition: LevelDefinition,
        storage: PersistentStore,
        hub_tracker: typing.Optional[HubProgressTracker] = None,
    ) -> None:
        self.definition = definition
        self.storage = storage
        self.hub_tracker = hub_tracker
        self.storage_key = level_storage_key(definition.levelId)
        self.has_unsaved_changes = False
        self._progress = self._load_progress()

    @property
    def level_id(self) -> int:
        return self.definition.levelId

    @property
    def total_exercises(self) -> int:
        return self.definition.totalExercises

    # --- loading / saving ---

    def _new_progress(self) -> LevelProgressModel:
        return create_initial_level_progress(self.definition.levelId, self.definition.totalExercises)

    def _load_progress(self) -> LevelProgressModel:
        for key in [self.storage_key, *legacy_level_storage_keys(self.definition.levelId)]:
            try:
                raw_value = self.storage.get(key)
            except StorageReadError as e:
                _LOGGER.warning(f"Could not read {key} for level {self.level_id}, using a fresh record: {e}")
                return self._new_progress()
            if raw_value is None:
                continue

            progress = self._parse_progress(raw_value, key)
            if progress is None:
                return self._new_progress()
            if key != self.storage_key:
                _LOGGER.info(f"Upgrading level {self.level_id} progress from legacy key {key}.")
                self._progress = progress
                self.save()
            return progress

        _LOGGER.info(f"No stored progress for level {self.level_id}, starting a fresh record.")
        return self._new_progress()

    def _parse_progress(self, raw_value: str, key: str) -> typing.Optional[LevelProgressModel]:
        try:
            data = json.loads(raw_value)
            if not isinstance(data, dict):
                raise StorageReadError(f"Expected a JSON object under {key}")
            stored_level_id = data.get("levelId", data.get("level", self.level_id))
            if stored_level_id != self.level_id:
                raise StorageReadError(f"Record under {key} belongs to level {stored_level_id}")
            data.setdefault("levelId", self.level_id)
            data.setdefault("totalExercises", self.total_exercises)
            return self._normalize(LevelProgressModel.model_validate(data))
        except (json.JSONDecodeError, ValidationError, StorageReadError, TypeError, ValueError) as e:
            _LOGGER.warning(f"Unreadable progress under {key} for level {self.level_id}, using a fresh record: {e}")
            return None

    def _normalize(self, stored: LevelProgressModel) -> LevelProgressModel:
        """Fits a stored record to the level definition: exercise count, index range, derived fields."""
        progress = self._new_progress()
        for index in range(1, self.total_exercises + 1):
            record = stored.exercises.get(ExerciseIndex(index))
            if record is not None:
                progress.exercises[ExerciseIndex(index)] = record.model_copy(deep=True)
        progress.badgesEarned = list(stored.badgesEarned)
        progress.lastUpdated = stored.lastUpdated
        progress.refresh_highest_completed_index()
        return progress

    def save(self) -> bool:
        """
        Writes the current record to the store.

        :return: True if the write succeeded. On failure the state stays in memory
                 and `has_unsaved_changes` is set.
        """
        self._progress.lastUpdated = IsoTimestamp(datetime.now(timezone.utc).isoformat())
        try:
            self.storage.set(self.storage_key, self._progress.model_dump_json(exclude_none=True))
        except StorageWriteError as e:
            _LOGGER.error(f"Failed to persist level {self.level_id} progress, keeping it in memory: {e}")
            self.has_unsaved_changes = True
            return False
        self.has_unsaved_changes = False
        return True

    def _sync_hub(self, *, overwrite: bool = False) -> None:
        if self.hub_tracker is None:
            return
        try:
            self.hub_tracker.merge_level_summary(
                self.definition.levelId,
                self._progress.completed_count(),
                self.total_exercises,
                self._progress.badgesEarned,
                overwrite=overwrite,
            )
        except Exception as e:
            # Hub sync never blocks progression
            _LOGGER.warning(f"Failed to sync hub progress for level {self.level_id}: {e}", exc_info=True)

    # --- queries ---

    def _check_index(self, exercise_index: int) -> ExerciseIndex:
        if not 1 <= exercise_index <= self.total_exercises:
            raise UnknownExerciseError(self.level_id, exercise_index, self.total_exercises)
        return ExerciseIndex(exercise_index)

    def get_snapshot(self) -> LevelProgressModel:
        return self._progress.model_copy(deep=True)

    def get_exercise_state(self, exercise_index: int) -> ExerciseState:
        return self._progress.exercise_state(self._check_index(exercise_index))

    def get_exercise_states(self) -> dict[ExerciseIndex, ExerciseState]:
        return self._progress.exercise_states()

    def get_snapshot_response(self) -> LevelSnapshotResponseModel:
        completed = self._progress.completed_count()
        return LevelSnapshotResponseModel(
            progress=self.get_snapshot(),
            exerciseStates=self.get_exercise_states(),
            percentComplete=round((completed / self.total_exercises) * 100),
            levelCompleted=self._progress.is_level_completed(),
            hasUnsavedChanges=self.has_unsaved_changes,
        )

    # --- operations ---

    def validate(self, exercise_index: int, submitted_content: SubmittedContent) -> ValidationResultModel:
        """
        Checks a submission for an exercise and completes the exercise when it passes.

        :param exercise_index: 1-based exercise number.
        :param submitted_content: The editor text, or buffer name -> text.
        :return: The pass/fail result with the message to show the learner.
        :raises UnknownExerciseError: If the index is outside the level.
        :raises InvalidTransitionError: If the exercise is still locked.
        """
        index = self._check_index(exercise_index)
        state = self._progress.exercise_state(index)
        if state == "LOCKED":
            _LOGGER.error(f"Attempted to validate locked exercise {index} of level {self.level_id}.")
            raise InvalidTransitionError(self.level_id, index)

        result = evaluate_predicate(self.definition.predicates[index], submitted_content)
        if not result.passed:
            _LOGGER.info(f"Level {self.level_id} exercise {index} did not pass validation.")
            return result

        if state == "COMPLETED":
            _LOGGER.debug(f"Level {self.level_id} exercise {index} already completed, no state change.")
            return result

        self._complete_exercise(index)
        result.newlyCompleted = True
        result.badgesAwarded = self._award_for_completion(index)
        self._sync_hub()
        return result

    def _complete_exercise(self, index: ExerciseIndex) -> None:
        self._progress.exercises[index].completed = True
        self._progress.highestCompletedIndex = max(self._progress.highestCompletedIndex, index)
        _LOGGER.info(f"Level {self.level_id} exercise {index} completed.")
        if index < self.total_exercises:
            _LOGGER.info(f"Level {self.level_id} exercise {index + 1} unlocked.")
        self.save()

    def _award_for_completion(self, index: ExerciseIndex) -> list[BadgeId]:
        awarded = self.award_badge_if_eligible(exercise_completed_trigger(index))
        if self._progress.is_level_completed():
            _LOGGER.info(f"Level {self.level_id} fully completed.")
            awarded.extend(self.award_badge_if_eligible(LEVEL_COMPLETED_TRIGGER))
        return awarded

    def _trigger_holds(self, trigger: str) -> bool:
        if trigger == LEVEL_COMPLETED_TRIGGER:
            return self._progress.is_level_completed()
        exercise_index = parse_exercise_trigger(trigger)
        if exercise_index is None or not 1 <= exercise_index <= self.total_exercises:
            return False
        return self._progress.exercises[exercise_index].completed

    def award_badge_if_eligible(self, trigger: str) -> list[BadgeId]:
        """
        Awards the badges tied to a milestone, each at most once.

        :param trigger: "exercise-completed:<n>" or "level-completed".
        :return: The badges newly awarded by this call (empty when already earned or not eligible).
        """
        try:
            if not self._trigger_holds(trigger):
                return []
            awarded: list[BadgeId] = []
            for rule in self.definition.rules_for_trigger(trigger):
                if rule.badgeId in self._progress.badgesEarned:
                    continue
                self._progress.badgesEarned.append(rule.badgeId)
                awarded.append(rule.badgeId)
                _LOGGER.info(f"Badge earned in level {self.level_id}: {rule.badgeId}")
            if awarded:
                self.save()
            return awarded
        except Exception as e:
            _LOGGER.warning(f"Badge check failed for trigger {trigger} in level {self.level_id}: {e}", exc_info=True)
            return []

    def record_edit(self, exercise_index: int, field_name: str, new_content: str) -> None:
        """
        Stores the latest editor text for an exercise buffer and persists it immediately.
        Never validates; allowed in any exercise state.
        """
        index = self._check_index(exercise_index)
        self._progress.exercises[index].userCode[field_name] = new_content
        self.save()

    def reset(self) -> LevelProgressModel:
        """
        Returns the level to its initial state and clears badges and saved code.
        Irreversible; callers must have the learner's confirmation.
        """
        _LOGGER.info(f"Resetting progress for level {self.level_id}.")
        self._progress = self._new_progress()
        self.save()
        self._sync_hub(overwrite=True)
        return self.get_snapshot()

    def export_progress(self) -> str:
        return self._progress.model_dump_json(exclude_none=True)

    def import_progress(self, payload: typing.Union[str, dict[str, typing.Any]]) -> LevelProgressModel:
        """
        Replaces the level's progress with an exported record (older shapes accepted).

        :raises ValueError: If the payload is not a record for this level.
        """
        data = json.loads(payload) if isinstance(payload, str) else dict(payload)
        if not isinstance(data, dict):
            raise ValueError("Imported progress must be a JSON object")
        imported_level_id = data.get("levelId", data.get("level"))
        if imported_level_id is not None and imported_level_id != self.level_id:
            raise ValueError(f"Imported progress belongs to level {imported_level_id}, not {self.level_id}")
        data.setdefault("levelId", self.level_id)
        data.setdefault("totalExercises", self.total_exercises)

        try:
            imported = LevelProgressModel.model_validate(data)
        except TypeError as te:
            raise ValueError(f"Imported progress has an unsupported shape: {te}") from te
        self._progress = self._normalize(imported)
        _LOGGER.info(f"Imported progress for level {self.level_id}: {self._progress.completed_count()} completed.")
        self.save()
        self._sync_hub(overwrite=True)
        return self.get_snapshot()
