"""
Strongly-typed boundary values.

Every scalar a client can send crosses into busybee through one of these
types. The constructor validates the raw input and keeps its canonical
form; a rejected value raises ValidationError with a short machine code
such as ``name: required``. The types plug into pydantic, so request
models declare them directly and invalid input fails during parsing.

Raw values are never logged, only their length.
"""

import re
from typing import Any, ClassVar

from pydantic import GetCoreSchemaHandler, GetJsonSchemaHandler
from pydantic.json_schema import JsonSchemaValue
from pydantic_core import core_schema

from busybee.errors import ValidationError
from busybee.safety.html import sanitize_description
from busybee.utils.logger import setup_logger

logger = setup_logger("safety.values")

HEBREW = "\u0590-\u05FF"


class SafeValue:
    """Base for validated string wrappers."""

    field: ClassVar[str] = "value"

    __slots__ = ("_value",)

    def __init__(self, raw: Any):
        if not isinstance(raw, str):
            raise ValidationError(self.field, "must be a string")
        self._value = self._validate(raw)

    @classmethod
    def _validate(cls, raw: str) -> str:
        raise NotImplementedError

    @classmethod
    def _reject(cls, reason: str, raw: str | None = None) -> ValidationError:
        if raw is not None:
            logger.warning(f"Rejected {cls.__name__}: {reason}; length={len(raw)}")
        return ValidationError(cls.field, reason)

    @classmethod
    def parse(cls, raw: Any) -> "SafeValue":
        if isinstance(raw, cls):
            return raw
        return cls(raw)

    def value(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}(<{len(self._value)} chars>)"

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._value))

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.parse,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda v: v.value()
            ),
        )

    @classmethod
    def __get_pydantic_json_schema__(
        cls, _core_schema: core_schema.CoreSchema, handler: GetJsonSchemaHandler
    ) -> JsonSchemaValue:
        return {"type": "string"}


class Username(SafeValue):
    """A letter followed by letters, digits or spaces; 1-20 chars after trimming."""

    field = "username"
    MIN_LENGTH = 1
    MAX_LENGTH = 20
    PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9 ]*")

    @classmethod
    def _validate(cls, raw: str) -> str:
        trimmed = raw.strip()
        if not trimmed:
            raise cls._reject("cannot be blank")
        if not cls.MIN_LENGTH <= len(trimmed) <= cls.MAX_LENGTH:
            raise cls._reject(
                f"length must be between {cls.MIN_LENGTH} and {cls.MAX_LENGTH}", raw
            )
        if not cls.PATTERN.fullmatch(trimmed):
            raise cls._reject("contains invalid characters", raw)
        return trimmed


class Password(SafeValue):
    field = "password"
    MIN_LENGTH = 8
    MAX_LENGTH = 32
    PATTERN = re.compile(r"[A-Za-z0-9!@#$%^&*()_+=-]+")

    @classmethod
    def _validate(cls, raw: str) -> str:
        if not raw.strip():
            raise cls._reject("cannot be blank")
        if not cls.MIN_LENGTH <= len(raw) <= cls.MAX_LENGTH:
            raise cls._reject(
                f"length must be between {cls.MIN_LENGTH} and {cls.MAX_LENGTH}"
            )
        if not cls.PATTERN.fullmatch(raw):
            raise cls._reject("contains invalid characters")
        return raw

    def __repr__(self) -> str:
        return "Password(***)"


class TaskName(SafeValue):
    """Single-line task title; stored trimmed."""

    field = "name"
    MAX_LENGTH = 100
    PATTERN = re.compile(rf"[A-Za-z0-9 .,!?\-_(){HEBREW}]+")

    @classmethod
    def _validate(cls, raw: str) -> str:
        trimmed = raw.strip()
        if not trimmed:
            raise cls._reject("required")
        if len(trimmed) > cls.MAX_LENGTH:
            raise cls._reject(f"too long (max {cls.MAX_LENGTH})", raw)
        if "\n" in trimmed or "\r" in trimmed:
            raise cls._reject("must be a single line", raw)
        if not cls.PATTERN.fullmatch(trimmed):
            raise cls._reject("contains invalid characters", raw)
        return trimmed

    def normalized(self) -> str:
        """Key used for the case-insensitive uniqueness check."""
        return self._value.strip().casefold()


class TaskDescription(SafeValue):
    """
    Rich-text task description.

    The length cap applies to the text as entered; the stored value is the
    sanitized HTML produced by sanitize_description().
    """

    field = "desc"
    MAX_LENGTH = 2000

    @classmethod
    def _validate(cls, raw: str) -> str:
        if not raw.strip():
            raise cls._reject("required")
        if len(raw) > cls.MAX_LENGTH:
            raise cls._reject(f"too long (max {cls.MAX_LENGTH})", raw)
        return sanitize_description(raw)


class CommentText(SafeValue):
    field = "text"
    MIN_LENGTH = 1
    MAX_LENGTH = 500
    PATTERN = re.compile(rf"[a-zA-Z0-9{HEBREW}\s.,!?\"'():;\-_/]*")

    @classmethod
    def _validate(cls, raw: str) -> str:
        if not raw.strip():
            raise cls._reject("required")
        if not cls.MIN_LENGTH <= len(raw) <= cls.MAX_LENGTH:
            raise cls._reject(
                f"length must be between {cls.MIN_LENGTH} and {cls.MAX_LENGTH}", raw
            )
        if not cls.PATTERN.fullmatch(raw):
            raise cls._reject("contains invalid characters", raw)
        return raw


class ImageName(SafeValue):
    """Relative name of a stored file as requested through /image or /attachment."""

    field = "file"
    MIN_LENGTH = 1
    MAX_LENGTH = 64
    PATTERN = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9._/-]*")

    @classmethod
    def _validate(cls, raw: str) -> str:
        if not raw.strip():
            raise cls._reject("required")
        if not cls.MIN_LENGTH <= len(raw) <= cls.MAX_LENGTH:
            raise cls._reject("length is invalid", raw)
        if "\\" in raw:
            raise cls._reject("contains invalid path separator", raw)
        if ".." in raw:
            raise cls._reject("contains invalid sequence", raw)
        if not cls.PATTERN.fullmatch(raw):
            raise cls._reject("contains invalid characters", raw)
        return raw


class ResponsibilityName(SafeValue):
    """Name used to filter tasks by assignee; the empty string means no filter."""

    field = "responsibilityOf"
    PATTERN = re.compile(rf"[a-zA-Z0-9\s.,!?\-_(){HEBREW}]*")

    @classmethod
    def _validate(cls, raw: str) -> str:
        if not cls.PATTERN.fullmatch(raw):
            raise cls._reject("contains invalid characters", raw)
        return raw.strip()

    def is_empty(self) -> bool:
        return not self._value
