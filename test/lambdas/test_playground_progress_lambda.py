import json
import typing
from unittest.mock import Mock, patch

import pytest

from playground_progress.curriculum.level_catalog import LevelCatalog
from playground_progress.dynamodb.profile_storage_table import ProfileStorageTable
from playground_progress.lambdas.playground_progress_lambda import (
    PlaygroundProgressApiHandler,
    playground_progress_lambda_handler,
)
from playground_progress.tracker.errors import StorageReadError, StorageWriteError
from playground_progress.utils.base_types import ProfileId
from test_utils.authorizer import add_authorizer_info
from test_utils.storage import InMemoryStorage

PROFILE_ID = "learner_123"
PASSING_HTML = "<!DOCTYPE html>\n<html><head></head><body></body></html>"


def create_event(
    method: str,
    path: str,
    body: typing.Optional[dict] = None,
    profile_id: typing.Optional[str] = PROFILE_ID,
) -> dict:
    """Helper to create a mock API Gateway event."""
    event = {
        "requestContext": {"http": {"method": method, "path": path}},
        "headers": {"origin": "http://localhost:5173"},
        "body": json.dumps(body) if body is not None else None,
    }
    if profile_id is not None:
        add_authorizer_info(event, profile_id)
    return event


def create_handler(profile_storage_table=None) -> PlaygroundProgressApiHandler:
    if profile_storage_table is None:
        profile_storage_table = Mock()
        profile_storage_table.for_profile.return_value = InMemoryStorage()
    return PlaygroundProgressApiHandler(
        profile_storage_table=profile_storage_table,
        level_catalog=LevelCatalog.builtin(),
    )


@pytest.fixture
def handler(profile_storage_table: ProfileStorageTable) -> PlaygroundProgressApiHandler:
    return create_handler(profile_storage_table)


def _body(response: dict) -> typing.Any:
    return json.loads(response["body"])


def test_handle_unauthorized_access():
    event = {"requestContext": {"http": {"method": "GET", "path": "/levels/1/progress"}}}

    response = create_handler().handle(event)

    assert response["statusCode"] == 401
    assert _body(response)["errorCode"] == "AUTHENTICATION_FAILED"


@pytest.mark.parametrize(
    "method, path",
    [
        ("GET", "/nowhere"),
        ("GET", "/levels/abc/progress"),
        ("GET", "/levels/1/exercises/1/run"),
    ],
)
def test_handle_unsupported_routes(method, path):
    response = create_handler().handle(create_event(method, path))

    assert response["statusCode"] == 404
    assert _body(response)["errorCode"] == "RESOURCE_NOT_FOUND"


@pytest.mark.parametrize(
    "method, path",
    [
        ("POST", "/levels/1/progress"),
        ("GET", "/levels/1/exercises/1/validate"),
        ("DELETE", "/levels/1/exercises/1/code"),
        ("POST", "/levels/9/export"),
        ("PUT", "/hub"),
    ],
)
def test_handle_unsupported_methods(method, path):
    handler = create_handler()

    response = handler.handle(create_event(method, path))

    assert response["statusCode"] == 405
    assert _body(response)["errorCode"] == "METHOD_NOT_ALLOWED"
    handler.profile_storage_table.for_profile.assert_not_called()


def test_unknown_level():
    response = create_handler().handle(create_event("GET", "/levels/9/progress"))

    assert response["statusCode"] == 404
    assert "Unknown level 9" in _body(response)["message"]


def test_get_progress_for_new_learner(handler: PlaygroundProgressApiHandler):
    response = handler.handle(create_event("GET", "/levels/1/progress"))

    assert response["statusCode"] == 200
    assert response["headers"]["Access-Control-Allow-Origin"] == "http://localhost:5173"
    body = _body(response)
    assert body["progress"]["highestCompletedIndex"] == 0
    assert body["exerciseStates"] == {"1": "UNLOCKED", "2": "LOCKED", "3": "LOCKED", "4": "LOCKED", "5": "LOCKED"}
    assert body["percentComplete"] == 0
    assert body["levelCompleted"] is False


def test_validate_passing_submission(handler: PlaygroundProgressApiHandler):
    response = handler.handle(create_event("POST", "/levels/1/exercises/1/validate", {"content": PASSING_HTML}))

    assert response["statusCode"] == 200
    body = _body(response)
    assert body["result"]["passed"] is True
    assert body["result"]["newlyCompleted"] is True
    assert body["result"]["badgesAwarded"] == ["first-steps"]
    assert body["snapshot"]["exerciseStates"]["2"] == "UNLOCKED"
    assert body["snapshot"]["percentComplete"] == 20

    stored = handler.profile_storage_table.get_value(ProfileId(PROFILE_ID), "level1-progress")
    assert json.loads(stored)["highestCompletedIndex"] == 1


def test_validate_failing_submission(handler: PlaygroundProgressApiHandler):
    response = handler.handle(create_event("POST", "/levels/1/exercises/1/validate", {"content": "<p>hi</p>"}))

    assert response["statusCode"] == 200
    body = _body(response)
    assert body["result"]["passed"] is False
    assert body["result"]["message"].startswith("Try including DOCTYPE")
    assert body["snapshot"]["exerciseStates"]["1"] == "UNLOCKED"


def test_validate_multi_buffer_submission(handler: PlaygroundProgressApiHandler):
    content = {"javascript": "let name = 'Ada'; let list = [1, 2]; console.log(name, list);"}

    response = handler.handle(create_event("POST", "/levels/2/exercises/1/validate", {"content": content}))

    assert response["statusCode"] == 200
    assert _body(response)["result"]["passed"] is True


def test_validate_react_level_reads_jsx_buffer(handler: PlaygroundProgressApiHandler):
    jsx = "function App() { return <h1>Hi</h1>; }\nReactDOM.render(<App />, root);"

    passing = handler.handle(create_event("POST", "/levels/3/exercises/1/validate", {"content": {"jsx": jsx}}))
    failing = handler.handle(create_event("POST", "/levels/3/exercises/2/validate", {"content": {"html": jsx}}))

    assert _body(passing)["result"]["passed"] is True
    assert _body(passing)["snapshot"]["exerciseStates"]["2"] == "UNLOCKED"
    assert _body(failing)["result"]["passed"] is False


def test_validate_locked_exercise(handler: PlaygroundProgressApiHandler):
    response = handler.handle(create_event("POST", "/levels/1/exercises/3/validate", {"content": "x"}))

    assert response["statusCode"] == 409
    assert _body(response)["errorCode"] == "INVALID_TRANSITION"


def test_validate_unknown_exercise(handler: PlaygroundProgressApiHandler):
    response = handler.handle(create_event("POST", "/levels/1/exercises/6/validate", {"content": "x"}))

    assert response["statusCode"] == 404


def test_validate_missing_content():
    response = create_handler().handle(create_event("POST", "/levels/1/exercises/1/validate", {}))

    assert response["statusCode"] == 400
    body = _body(response)
    assert body["errorCode"] == "VALIDATION_ERROR"
    assert body["details"][0]["loc"] == ["content"]


def test_validate_invalid_json():
    event = create_event("POST", "/levels/1/exercises/1/validate")
    event["body"] = "{not json"

    response = create_handler().handle(event)

    assert response["statusCode"] == 400


def test_validate_oversized_submission():
    response = create_handler().handle(
        create_event("POST", "/levels/1/exercises/1/validate", {"content": "a" * 20001})
    )

    assert response["statusCode"] == 400
    assert "exceeds maximum length" in _body(response)["message"]


def test_record_edit_persists_code(handler: PlaygroundProgressApiHandler):
    response = handler.handle(
        create_event("PUT", "/levels/1/exercises/2/code", {"field": "html", "content": "<h1>draft</h1>"})
    )

    assert response["statusCode"] == 200
    assert _body(response) == {"saved": True}

    progress = _body(handler.handle(create_event("GET", "/levels/1/progress")))
    assert progress["progress"]["exercises"]["2"]["userCode"] == {"html": "<h1>draft</h1>"}


def test_record_edit_rejects_bad_field_name():
    response = create_handler().handle(
        create_event("PUT", "/levels/1/exercises/1/code", {"field": "bad field", "content": "x"})
    )

    assert response["statusCode"] == 400


def test_record_edit_reports_unsaved_on_write_failure():
    table = Mock()
    table.get_value.return_value = None
    table.put_value.side_effect = StorageWriteError("quota exceeded")
    table.for_profile.side_effect = lambda profile_id: ProfileStorageTable.for_profile(table, profile_id)
    handler = create_handler(table)

    response = handler.handle(create_event("PUT", "/levels/1/exercises/1/code", {"field": "html", "content": "x"}))

    assert response["statusCode"] == 200
    assert _body(response) == {"saved": False}


def test_get_progress_survives_read_failure():
    table = Mock()
    table.get_value.side_effect = StorageReadError("disabled")
    table.for_profile.side_effect = lambda profile_id: ProfileStorageTable.for_profile(table, profile_id)

    response = create_handler(table).handle(create_event("GET", "/levels/2/progress"))

    assert response["statusCode"] == 200
    assert _body(response)["progress"]["highestCompletedIndex"] == 0


def test_reset_requires_confirmation(handler: PlaygroundProgressApiHandler):
    response = handler.handle(create_event("DELETE", "/levels/1/progress"))

    assert response["statusCode"] == 400
    assert "confirmation" in _body(response)["message"]


def test_reset_with_confirmation(handler: PlaygroundProgressApiHandler):
    handler.handle(create_event("POST", "/levels/1/exercises/1/validate", {"content": PASSING_HTML}))

    response = handler.handle(create_event("DELETE", "/levels/1/progress", {"confirm": True}))

    assert response["statusCode"] == 200
    body = _body(response)
    assert body["progress"]["highestCompletedIndex"] == 0
    assert body["progress"]["badgesEarned"] == []
    assert body["exerciseStates"]["2"] == "LOCKED"


def test_export_then_import(handler: PlaygroundProgressApiHandler):
    handler.handle(create_event("POST", "/levels/1/exercises/1/validate", {"content": PASSING_HTML}))
    exported = _body(handler.handle(create_event("GET", "/levels/1/export")))
    assert exported["levelId"] == 1

    other_learner = create_event("PUT", "/levels/1/import", {"confirm": True, "progress": exported})
    other_learner["requestContext"]["authorizer"]["lambda"]["sub"] = "learner_456"
    response = handler.handle(other_learner)

    assert response["statusCode"] == 200
    assert _body(response)["exerciseStates"]["1"] == "COMPLETED"


def test_import_requires_confirmation():
    response = create_handler().handle(create_event("PUT", "/levels/1/import", {"progress": {"completed": 1}}))

    assert response["statusCode"] == 400


def test_import_rejects_other_level(handler: PlaygroundProgressApiHandler):
    body = {"confirm": True, "progress": {"levelId": 2, "totalExercises": 5}}

    response = handler.handle(create_event("PUT", "/levels/1/import", body))

    assert response["statusCode"] == 400
    assert "level 2" in _body(response)["message"]


def test_import_ignores_unusable_exercise_entries(handler: PlaygroundProgressApiHandler):
    body = {"confirm": True, "progress": {"levelId": 1, "exercises": [{"id": [1], "completed": True}]}}

    response = handler.handle(create_event("PUT", "/levels/1/import", body))

    assert response["statusCode"] == 200
    assert _body(response)["exerciseStates"]["1"] == "UNLOCKED"


@pytest.mark.parametrize(
    "stored",
    [
        '{"levelId": 1, "exercises": [{"id": [1], "completed": true}]}',
        '{"exercises": [{"index": {"a": 1}}]}',
        '{"level": 1, "completed": 3000000}',
    ],
)
def test_malformed_stored_progress_does_not_block_level(stored):
    table = Mock()
    table.for_profile.return_value = InMemoryStorage({"level1-progress": stored})
    handler = create_handler(table)

    assert handler.handle(create_event("GET", "/levels/1/progress"))["statusCode"] == 200

    response = handler.handle(create_event("DELETE", "/levels/1/progress", {"confirm": True}))

    assert response["statusCode"] == 200
    assert _body(response)["exerciseStates"]["1"] == "UNLOCKED"


def test_get_hub(handler: PlaygroundProgressApiHandler):
    for index, content in enumerate(
        [
            PASSING_HTML,
            "<h1>T</h1><p>x</p><ol><li>a</li></ol><a href='#'>l</a>",
            "<style>p { color: red; }</style>",
            "#main-title {} .intro {} .content p {} span.highlight {}",
            "div { margin: 0; padding: 0; width: 10px; }",
        ],
        start=1,
    ):
        response = handler.handle(
            create_event("POST", f"/levels/1/exercises/{index}/validate", {"content": content})
        )
        assert _body(response)["result"]["passed"], index

    response = handler.handle(create_event("GET", "/hub"))

    assert response["statusCode"] == 200
    body = _body(response)
    assert body["hub"]["levels"]["1"]["levelCompleted"] is True
    assert body["hub"]["levels"]["2"]["unlocked"] is True
    assert body["summary"] == {"completedLevels": 1, "totalLevels": 5, "earnedBadges": 2, "overallProgress": 20}


def test_reset_hub(handler: PlaygroundProgressApiHandler):
    handler.handle(create_event("POST", "/levels/1/exercises/1/validate", {"content": PASSING_HTML}))

    assert handler.handle(create_event("DELETE", "/hub"))["statusCode"] == 400

    response = handler.handle(create_event("DELETE", "/hub", {"confirm": True}))

    assert response["statusCode"] == 200
    assert _body(response) == {"clearedLevels": [1, 2, 3, 4, 5]}
    hub = _body(handler.handle(create_event("GET", "/hub")))
    assert hub["hub"]["levels"] == {}
    progress = _body(handler.handle(create_event("GET", "/levels/1/progress")))
    assert progress["progress"]["highestCompletedIndex"] == 0


def test_unexpected_error_returns_500():
    table = Mock()
    table.for_profile.side_effect = RuntimeError("boom")

    response = create_handler(table).handle(create_event("GET", "/levels/1/progress"))

    assert response["statusCode"] == 500
    assert _body(response)["errorCode"] == "INTERNAL_ERROR"


def test_lambda_handler_configuration_error(monkeypatch):
    monkeypatch.delenv("PROFILE_STORAGE_TABLE_NAME")

    response = playground_progress_lambda_handler(create_event("GET", "/hub"), None)

    assert response["statusCode"] == 500
    assert _body(response)["message"] == "Server configuration error"


def test_lambda_handler_routes_request():
    with patch("playground_progress.lambdas.playground_progress_lambda.ProfileStorageTable") as table_class:
        table_class.return_value.for_profile.return_value.get.return_value = None

        response = playground_progress_lambda_handler(create_event("GET", "/levels/1/progress"), None)

    assert response["statusCode"] == 200
    table_class.assert_called_once_with("test-profile-storage-table")
