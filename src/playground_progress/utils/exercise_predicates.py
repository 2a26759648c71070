import logging
import typing

from playground_progress.models.level_definition_models import ExercisePredicate, TokenRule
from playground_progress.models.level_progress_models import ValidationResultModel

_LOGGER = logging.getLogger(__name__)

SubmittedContent = typing.Union[str, typing.Mapping[str, str]]


def _select_text(rule: TokenRule, content: SubmittedContent) -> str:
    if isinstance(content, str):
        return content
    if rule.field is not None:
        return content.get(rule.field, "")
    return "\n".join(content.values())


def _contains(text: str, token: str, case_sensitive: bool) -> bool:
    if case_sensitive:
        return token in text
    return token.lower() in text


def rule_passes(rule: TokenRule, content: SubmittedContent, case_sensitive: bool = False) -> bool:
    text = _select_text(rule, content)
    if not case_sensitive:
        text = text.lower()

    if not all(_contains(text, token, case_sensitive) for token in rule.required):
        return False
    if not all(any(_contains(text, token, case_sensitive) for token in group) for group in rule.anyOf):
        return False
    if any(_contains(text, token, case_sensitive) for token in rule.forbidden):
        return False
    return True


def evaluate_predicate(predicate: ExercisePredicate, content: SubmittedContent) -> ValidationResultModel:
    """
    Checks a submission against an exercise predicate.

    Pure function of the submitted text: the learner's code is never executed.
    A plain string submission is treated as the single buffer for every rule.
    """
    passed = all(rule_passes(rule, content, predicate.caseSensitive) for rule in predicate.rules)
    _LOGGER.debug(f"Predicate evaluated to passed={passed} over {len(predicate.rules)} rule(s).")
    return ValidationResultModel(
        passed=passed,
        message=predicate.successMessage if passed else predicate.failureHint,
    )
