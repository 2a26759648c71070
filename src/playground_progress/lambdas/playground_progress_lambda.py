import json
import logging
import re
import typing

from pydantic import ValidationError

from playground_progress.curriculum.level_catalog import LevelCatalog
from playground_progress.dynamodb.profile_storage_table import ProfileStorageTable
from playground_progress.models.api_models import (
    ConfirmRequestModel,
    ImportRequestModel,
    RecordEditRequestModel,
    ValidateRequestModel,
)
from playground_progress.models.hub_progress_models import HubResponseModel
from playground_progress.tracker.errors import InvalidTransitionError, StorageWriteError, UnknownExerciseError
from playground_progress.tracker.exercise_progress_tracker import ExerciseProgressTracker
from playground_progress.tracker.hub_progress_tracker import HubProgressTracker
from playground_progress.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_event_body,
    get_method,
    get_path,
    get_profile_id_from_event,
)
from playground_progress.utils.aws_env_vars import get_profile_storage_table_name
from playground_progress.utils.base_types import LevelId, ProfileId
from playground_progress.utils.input_validator import InputValidator, SuspiciousInputError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_LEVEL_PATH = re.compile(r"^/levels/(?P<level_id>[0-9]+)/(?P<action>progress|export|import)$")
_EXERCISE_PATH = re.compile(r"^/levels/(?P<level_id>[0-9]+)/exercises/(?P<index>[0-9]+)/(?P<action>validate|code)$")

_LEVEL_ACTION_METHODS = {"progress": ("GET", "DELETE"), "export": ("GET",), "import": ("PUT",)}
_EXERCISE_ACTION_METHODS = {"validate": ("POST",), "code": ("PUT",)}
_HUB_METHODS = ("GET", "DELETE")


class PlaygroundProgressApiHandler:
    def __init__(self, profile_storage_table: ProfileStorageTable, level_catalog: LevelCatalog):
        self.profile_storage_table = profile_storage_table
        self.level_catalog = level_catalog

    def _create_tracker(self, profile_id: ProfileId, level_id: LevelId) -> typing.Optional[ExerciseProgressTracker]:
        definition = self.level_catalog.get(level_id)
        if definition is None:
            return None
        storage = self.profile_storage_table.for_profile(profile_id)
        return ExerciseProgressTracker(definition, storage, HubProgressTracker(storage))

    def _parse_body(self, event: dict) -> typing.Any:
        if not event.get("body"):
            return None
        return json.loads(get_event_body(event))

    def _hub_response(self, hub_tracker: HubProgressTracker, event: dict) -> dict:
        level_ids = [level.levelId for level in self.level_catalog.levels()]
        response_model = HubResponseModel(
            hub=hub_tracker.load(),
            summary=hub_tracker.get_progress_summary(level_ids=level_ids),
        )
        return format_lambda_response(200, response_model.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_get_progress(self, tracker: ExerciseProgressTracker, event: dict) -> dict:
        snapshot = tracker.get_snapshot_response()
        return format_lambda_response(200, snapshot.model_dump(mode="json", exclude_none=True), event=event)

    def _handle_validate(self, tracker: ExerciseProgressTracker, exercise_index: int, event: dict) -> dict:
        request = ValidateRequestModel.model_validate(self._parse_body(event))
        InputValidator.validate_submission(request.content)

        result = tracker.validate(exercise_index, request.content)
        body = {
            "result": result.model_dump(mode="json"),
            "snapshot": tracker.get_snapshot_response().model_dump(mode="json", exclude_none=True),
        }
        return format_lambda_response(200, body, event=event)

    def _handle_record_edit(self, tracker: ExerciseProgressTracker, exercise_index: int, event: dict) -> dict:
        request = RecordEditRequestModel.model_validate(self._parse_body(event))
        InputValidator.validate_field_name(request.field)
        InputValidator.validate_field(request.content, request.field)

        tracker.record_edit(exercise_index, request.field, request.content)
        return format_lambda_response(200, {"saved": not tracker.has_unsaved_changes}, event=event)

    def _handle_reset(self, tracker: ExerciseProgressTracker, event: dict) -> dict:
        request = ConfirmRequestModel.model_validate(self._parse_body(event) or {})
        if not request.confirm:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Reset requires confirmation.", event=event)
        tracker.reset()
        return self._handle_get_progress(tracker, event)

    def _handle_import(self, tracker: ExerciseProgressTracker, event: dict) -> dict:
        request = ImportRequestModel.model_validate(self._parse_body(event))
        if not request.confirm:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Import requires confirmation.", event=event)
        try:
            tracker.import_progress(request.progress)
        except ValidationError:
            raise
        except ValueError as ve:
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(ve), event=event)
        return self._handle_get_progress(tracker, event)

    def _handle_reset_all(self, profile_id: ProfileId, event: dict) -> dict:
        request = ConfirmRequestModel.model_validate(self._parse_body(event) or {})
        if not request.confirm:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Reset requires confirmation.", event=event)
        hub_tracker = HubProgressTracker(self.profile_storage_table.for_profile(profile_id))
        cleared = hub_tracker.reset_all(self.level_catalog.levels())
        return format_lambda_response(200, {"clearedLevels": cleared}, event=event)

    def _route_level_request(self, profile_id: ProfileId, http_method: str, path: str, event: dict) -> dict:
        level_match = _LEVEL_PATH.match(path)
        exercise_match = _EXERCISE_PATH.match(path)
        match = level_match or exercise_match
        if match is None:
            _LOGGER.warning(f"Unsupported path for playground progress: {http_method} {path}")
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        action = match.group("action")
        allowed_methods = (_EXERCISE_ACTION_METHODS if exercise_match else _LEVEL_ACTION_METHODS)[action]
        if http_method not in allowed_methods:
            _LOGGER.warning(f"Unsupported method for playground progress: {http_method} {path}")
            return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

        level_id = LevelId(int(match.group("level_id")))
        tracker = self._create_tracker(profile_id, level_id)
        if tracker is None:
            _LOGGER.warning(f"Unknown level requested: {level_id}")
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, f"Unknown level {level_id}.", event=event)

        if exercise_match is not None:
            exercise_index = int(exercise_match.group("index"))
            if action == "validate":
                return self._handle_validate(tracker, exercise_index, event)
            return self._handle_record_edit(tracker, exercise_index, event)

        if action == "export":
            return format_lambda_response(200, json.loads(tracker.export_progress()), event=event)
        if action == "import":
            return self._handle_import(tracker, event)
        if http_method == "DELETE":
            return self._handle_reset(tracker, event)
        return self._handle_get_progress(tracker, event)

    def handle(self, event: dict) -> dict:
        profile_id = get_profile_id_from_event(event)
        if not profile_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)

        _LOGGER.info(f"PlaygroundProgressApiHandler: {http_method} {path} for profile: {profile_id}")

        try:
            if path == "/hub":
                if http_method not in _HUB_METHODS:
                    _LOGGER.warning(f"Unsupported method for the hub: {http_method}")
                    return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)
                if http_method == "DELETE":
                    return self._handle_reset_all(profile_id, event)
                hub_tracker = HubProgressTracker(self.profile_storage_table.for_profile(profile_id))
                return self._hub_response(hub_tracker, event)

            return self._route_level_request(profile_id, http_method, path, event)

        except ValidationError as e:
            _LOGGER.error(f"Request body validation error: {e.errors()}", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=json.loads(e.json()), event=event)
        except json.JSONDecodeError:
            _LOGGER.error("Request body is not valid JSON.", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, event=event)
        except SuspiciousInputError as e:
            _LOGGER.warning(f"Rejected submission for profile {profile_id}: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except UnknownExerciseError as e:
            _LOGGER.warning(str(e))
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, str(e), event=event)
        except InvalidTransitionError as e:
            _LOGGER.error(f"Client attempted a locked exercise: {e}")
            return create_error_response(ErrorCode.INVALID_TRANSITION, str(e), event=event)
        except StorageWriteError as e:
            _LOGGER.error(f"Storage failure for profile {profile_id}: {e}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in PlaygroundProgressApiHandler for {profile_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def playground_progress_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.debug("Global playground_progress_lambda_handler received event.")

    try:
        api_handler = PlaygroundProgressApiHandler(
            profile_storage_table=ProfileStorageTable(get_profile_storage_table_name()),
            level_catalog=LevelCatalog.from_environment(),
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in playground_progress_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during PlaygroundProgressApiHandler: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
