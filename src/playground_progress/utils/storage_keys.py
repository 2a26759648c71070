from playground_progress.utils.base_types import LevelId, StorageKey

HUB_STORAGE_KEY = StorageKey("frontend-mastery-progress")


def level_storage_key(level_id: LevelId) -> StorageKey:
    return StorageKey(f"level{level_id}-progress")


def legacy_level_storage_keys(level_id: LevelId) -> list[StorageKey]:
    """
    Keys older playground scripts wrote a level's progress under, newest style first.
    Only ever read; writes always go to `level_storage_key`.
    """
    return [
        StorageKey(f"level{level_id}_progress"),
        StorageKey(f"level{level_id}Progress"),
    ]


def all_level_storage_keys(level_id: LevelId) -> list[StorageKey]:
    return [level_storage_key(level_id), *legacy_level_storage_keys(level_id)]
