import typing

from pydantic import BaseModel, Field


class ValidateRequestModel(BaseModel):
    # One buffer, or buffer name -> text for multi-editor exercises
    content: typing.Union[str, dict[str, str]]


class RecordEditRequestModel(BaseModel):
    field: str = Field(..., min_length=1)
    content: str


class ConfirmRequestModel(BaseModel):
    """Body for destructive actions; the playground must have asked the learner first."""

    confirm: bool = False


class ImportRequestModel(ConfirmRequestModel):
    progress: dict[str, typing.Any]
