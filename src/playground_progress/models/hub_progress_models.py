import typing

from pydantic import BaseModel, Field, model_validator

from playground_progress.utils.base_types import IsoTimestamp, LevelId


class HubLevelSummaryModel(BaseModel):
    completed: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    levelCompleted: bool = False
    unlocked: bool = False


class HubProgressModel(BaseModel):
    """
    Cross-level aggregate shown on the curriculum hub.

    Every level tracker merges into this record independently, so it is only ever
    eventually consistent with the per-level records and is never the source of truth.
    Malformed level entries are dropped on read instead of failing the whole record.
    """

    levels: dict[LevelId, HubLevelSummaryModel] = Field(default_factory=dict)
    badges: dict[str, bool] = Field(default_factory=dict)
    lastUpdated: typing.Optional[IsoTimestamp] = None

    @model_validator(mode="before")
    @classmethod
    def drop_malformed_entries(cls, data: typing.Any) -> typing.Any:
        if not isinstance(data, dict):
            return {}
        data = dict(data)

        levels = data.get("levels")
        clean_levels: dict[typing.Any, typing.Any] = {}
        if isinstance(levels, dict):
            for level_key, summary in levels.items():
                try:
                    level_id = int(level_key)
                except (TypeError, ValueError):
                    continue
                if level_id < 1 or not isinstance(summary, dict):
                    continue
                try:
                    clean_levels[level_id] = HubLevelSummaryModel.model_validate(summary)
                except ValueError:
                    continue
        data["levels"] = clean_levels

        badges = data.get("badges")
        if isinstance(badges, dict):
            data["badges"] = {k: v for k, v in badges.items() if isinstance(k, str) and isinstance(v, bool)}
        else:
            data["badges"] = {}

        last_updated = data.get("lastUpdated")
        if last_updated is not None and not isinstance(last_updated, str):
            data.pop("lastUpdated")
        return data


class HubProgressSummaryModel(BaseModel):
    completedLevels: int
    totalLevels: int
    earnedBadges: int
    overallProgress: int


class HubResponseModel(BaseModel):
    hub: HubProgressModel
    summary: HubProgressSummaryModel
