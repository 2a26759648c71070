import logging
import re
import typing

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class SuspiciousInputError(ValueError):
    pass


class InputValidator:
    """
    Validates editor content arriving from the playgrounds using objective, measurable criteria.

    Protection mechanisms:
    - Length limits per buffer
    - Buffer name restrictions
    - Control character restrictions
    """

    # Maximum lengths for the editor buffers a playground can send
    MAX_LENGTHS = {
        "html": 20000,
        "css": 20000,
        "javascript": 20000,
        "code": 20000,
    }

    DEFAULT_MAX_LENGTH = 10000

    MAX_BUFFERS_PER_SUBMISSION = 8

    # Maximum percentage of non-printable/control characters
    MAX_CONTROL_CHAR_PERCENTAGE = 5

    FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,31}$")

    @classmethod
    def validate_submission(cls, content: typing.Union[str, dict[str, str]]) -> None:
        """
        Validate a submission: either one buffer or a mapping of buffer name to text.

        :raises SuspiciousInputError: If input validation fails
        """
        if isinstance(content, str):
            cls.validate_field(content, "code")
            return

        if len(content) > cls.MAX_BUFFERS_PER_SUBMISSION:
            _LOGGER.warning(f"Too many buffers in submission: {len(content)}")
            raise SuspiciousInputError(f"submission has more than {cls.MAX_BUFFERS_PER_SUBMISSION} buffers")

        for field_name, text in content.items():
            cls.validate_field_name(field_name)
            cls.validate_field(text, field_name)

    @classmethod
    def validate_field_name(cls, field_name: str) -> None:
        """
        :raises SuspiciousInputError: If the buffer name is not a short identifier
        """
        if not isinstance(field_name, str) or not cls.FIELD_NAME_PATTERN.match(field_name):
            _LOGGER.warning(f"Rejected buffer name: {cls.sanitize_for_logging(str(field_name), 40)}")
            raise SuspiciousInputError("buffer name must be a short identifier")

    @classmethod
    def validate_field(cls, text: str, field_name: str) -> None:
        """
        Validate a single editor buffer.

        :raises SuspiciousInputError: If input validation fails
        """
        if not isinstance(text, str):
            raise SuspiciousInputError(f"{field_name} must be a string")

        max_length = cls.MAX_LENGTHS.get(field_name, cls.DEFAULT_MAX_LENGTH)
        if len(text) > max_length:
            _LOGGER.warning(f"Length violation: {field_name} is {len(text)} chars (max {max_length})")
            raise SuspiciousInputError(f"{field_name} exceeds maximum length of {max_length} characters")

        # Empty buffers are fine, a learner may clear the editor
        if not text:
            return

        control_chars = sum(1 for c in text if ord(c) < 32 and c not in "\n\r\t")
        if control_chars > 0:
            control_percentage = (control_chars / len(text)) * 100
            if control_percentage > cls.MAX_CONTROL_CHAR_PERCENTAGE:
                _LOGGER.warning(f"Excessive control characters in {field_name}: {control_percentage:.1f}%")
                raise SuspiciousInputError(f"{field_name} contains too many control characters")

    @classmethod
    def sanitize_for_logging(cls, text: str, max_length: int = 100) -> str:
        """
        Sanitize text for safe logging (via truncation).

        :param text: Text to sanitize
        :param max_length: Maximum length to include in logs
        :returns: Sanitized text safe for logging
        """
        if len(text) > max_length:
            return text[:max_length] + "..."
        return text
