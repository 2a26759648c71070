import json
import logging
import typing
from datetime import datetime, timezone

from pydantic import ValidationError

from playground_progress.dynamodb.profile_storage_table import PersistentStore
from playground_progress.models.hub_progress_models import (
    HubLevelSummaryModel,
    HubProgressModel,
    HubProgressSummaryModel,
)
from playground_progress.models.level_definition_models import LevelDefinition
from playground_progress.models.level_progress_models import LevelProgressModel
from playground_progress.tracker.errors import StorageReadError, StorageWriteError
from playground_progress.utils.base_types import BadgeId, IsoTimestamp, LevelId
from playground_progress.utils.storage_keys import (
    HUB_STORAGE_KEY,
    all_level_storage_keys,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class HubProgressTracker:
    """
    Maintains the cross-level aggregate record under the shared hub key.

    Every level tracker merges into the same key with an unordered read-modify-write,
    so concurrent writers can lose each other's update (last writer wins).
    `rebuild_from_level_records` recomputes it from the per-level records.
    """

    def __init__(self, storage: PersistentStore) -> None:
        self.storage = storage

    def load(self) -> HubProgressModel:
        try:
            raw_value = self.storage.get(HUB_STORAGE_KEY)
        except StorageReadError as e:
            _LOGGER.warning(f"Could not read hub progress, starting from empty: {e}")
            return HubProgressModel()

        if raw_value is None:
            return HubProgressModel()
        try:
            return HubProgressModel.model_validate(json.loads(raw_value))
        except (json.JSONDecodeError, ValidationError) as e:
            _LOGGER.warning(f"Discarding unreadable hub progress: {e}")
            return HubProgressModel()

    def _save(self, hub: HubProgressModel) -> bool:
        hub.lastUpdated = IsoTimestamp(datetime.now(timezone.utc).isoformat())
        try:
            self.storage.set(HUB_STORAGE_KEY, hub.model_dump_json(exclude_none=True))
            return True
        except StorageWriteError as e:
            _LOGGER.error(f"Failed to write hub progress: {e}")
            return False

    def merge_level_summary(
        self,
        level_id: LevelId,
        completed: int,
        total: int,
        badges: typing.Iterable[BadgeId] = (),
        *,
        overwrite: bool = False,
    ) -> HubProgressModel:
        """
        Merges one level's numbers into the aggregate.

        :param level_id: The level being reported.
        :param completed: Number of completed exercises in the level.
        :param total: Number of exercises in the level.
        :param badges: Badges earned in the level; unioned into the hub badges.
        :param overwrite: Replace `completed` instead of keeping the maximum (reset/import).
        :return: The merged aggregate (written back best-effort).
        """
        hub = self.load()
        existing = hub.levels.get(level_id) or HubLevelSummaryModel()

        merged_completed = completed if overwrite else max(existing.completed, completed)
        merged_completed = min(merged_completed, total)
        level_completed = total > 0 and merged_completed >= total
        hub.levels[level_id] = HubLevelSummaryModel(
            completed=merged_completed,
            total=total,
            levelCompleted=level_completed,
            unlocked=True,
        )

        if level_completed:
            next_level_id = LevelId(level_id + 1)
            next_summary = hub.levels.get(next_level_id)
            if next_summary is None:
                _LOGGER.info(f"Level {level_id} completed, unlocking level {next_level_id} on the hub.")
                hub.levels[next_level_id] = HubLevelSummaryModel(unlocked=True)
            elif not next_summary.unlocked:
                next_summary.unlocked = True

        for badge_id in badges:
            hub.badges[badge_id] = True

        self._save(hub)
        return hub

    def get_progress_summary(
        self, level_ids: typing.Optional[typing.Iterable[LevelId]] = None
    ) -> HubProgressSummaryModel:
        """
        Counts completed levels and earned badges over the curriculum.

        `level_ids` are the levels on offer. Hub levels outside them still count once the
        learner has recorded progress there. Without `level_ids`, every level on the hub counts.
        """
        hub = self.load()
        counted_levels = set(hub.levels)
        if level_ids is not None:
            started = {level_id for level_id, summary in hub.levels.items() if summary.total or summary.completed}
            counted_levels = set(level_ids) | started
        level_count = len(counted_levels)
        completed_levels = sum(1 for summary in hub.levels.values() if summary.levelCompleted)
        earned_badges = sum(1 for earned in hub.badges.values() if earned)
        overall = round((completed_levels / level_count) * 100) if level_count else 0
        return HubProgressSummaryModel(
            completedLevels=completed_levels,
            totalLevels=level_count,
            earnedBadges=earned_badges,
            overallProgress=min(overall, 100),
        )

    def rebuild_from_level_records(self, definitions: typing.Iterable[LevelDefinition]) -> HubProgressModel:
        """
        Recomputes every level summary from the per-level records, replacing what the hub holds.
        Levels without a readable record are reported as not started.
        """
        hub = self.load()
        for definition in definitions:
            completed = 0
            badges: list[BadgeId] = []
            progress = self._read_level_record(definition)
            if progress is not None:
                completed = sum(
                    1
                    for index, record in progress.exercises.items()
                    if record.completed and index <= definition.totalExercises
                )
                badges = list(progress.badgesEarned)

            existing = hub.levels.get(definition.levelId)
            unlocked = definition.levelId == 1 or completed > 0 or (existing is not None and existing.unlocked)
            hub.levels[definition.levelId] = HubLevelSummaryModel(
                completed=completed,
                total=definition.totalExercises,
                levelCompleted=completed >= definition.totalExercises,
                unlocked=unlocked,
            )
            for badge_id in badges:
                hub.badges[badge_id] = True

        for level_id, summary in list(hub.levels.items()):
            if summary.levelCompleted and LevelId(level_id + 1) in hub.levels:
                hub.levels[LevelId(level_id + 1)].unlocked = True

        self._save(hub)
        return hub

    def _read_level_record(self, definition: LevelDefinition) -> typing.Optional[LevelProgressModel]:
        for key in all_level_storage_keys(definition.levelId):
            try:
                raw_value = self.storage.get(key)
                if raw_value is None:
                    continue
                data = json.loads(raw_value)
                if isinstance(data, dict):
                    data.setdefault("levelId", definition.levelId)
                    data.setdefault("totalExercises", definition.totalExercises)
                return LevelProgressModel.model_validate(data)
            except (StorageReadError, json.JSONDecodeError, ValidationError, TypeError, ValueError) as e:
                _LOGGER.warning(f"Skipping unreadable record {key} while rebuilding the hub: {e}")
        return None

    def reset_all(self, definitions: typing.Iterable[LevelDefinition]) -> list[LevelId]:
        """
        Deletes the hub record and every level's record (current and legacy keys).
        Irreversible; callers must have the learner's confirmation.

        :return: The levels whose records were cleared.
        """
        cleared: list[LevelId] = []
        for definition in definitions:
            for key in all_level_storage_keys(definition.levelId):
                self.storage.remove(key)
            cleared.append(definition.levelId)
        self.storage.remove(HUB_STORAGE_KEY)
        _LOGGER.info(f"Reset progress for {len(cleared)} level(s) and the hub.")
        return cleared
