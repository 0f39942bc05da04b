"""
Defensive coercion for untrusted dataset payloads.

Every helper here returns a usable value for any input and never raises: bad
numbers become 0, bad strings become "", unknown enum values become the
field's documented default. Pushes are never rejected because of a single
malformed field.
"""

import logging
import math
import re
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar
from enum import Enum

from schoolsync.models.people import StudentStatus
from schoolsync.models.academic import RoomType, SubjectType, Weekday, CurriculumType
from schoolsync.models.exam import ExamStatus
from schoolsync.models.finance import FeeFrequency, ExpenseCategory, ExpenseStatus
from schoolsync.models.attendance import AttendanceStatus

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

_SEPARATOR_RUN = re.compile(r"[\s\-]+")

# Range of a 32-bit INTEGER column on every supported backend
MIN_INTEGER = -2 ** 31
MAX_INTEGER = 2 ** 31 - 1


def to_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return default
        return str(int(value)) if value.is_integer() else repr(value)
    return default


def to_optional_str(value: Any) -> Optional[str]:
    """Falsy input (None, "", 0, False) is stored as NULL."""
    if not value:
        return None
    return to_str(value) or None


def to_ref(value: Any) -> Optional[str]:
    """A reference to another entity's id; empty references become None."""
    return to_str(value) or None


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return default
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def to_int(value: Any, default: int = 0) -> int:
    """Whole numbers outside the INTEGER column range fall back to ``default``."""
    number = to_float(value, default=float(default))
    if not MIN_INTEGER <= number <= MAX_INTEGER:
        logger.debug(f"Integer {value!r} out of range, using {default}")
        return default
    return int(number)


def to_bool(value: Any) -> bool:
    return bool(value)


def as_mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key that is present and not null."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def canonical_token(value: Any) -> str:
    """'  Fees Due ' -> 'Fees_Due', 'One-time' -> 'One_time'."""
    return _SEPARATOR_RUN.sub("_", to_str(value).strip())


class EnumField(Generic[E]):
    """
    Storage/display mapping for one enumerated field.

    ``parse`` canonicalizes client input and falls back to ``default``;
    ``display`` is its exact inverse for the export side. Matching ignores
    case so 'late' and 'LATE' land on the same token.
    """

    def __init__(
        self,
        name: str,
        enum_class: Type[E],
        default: E,
        display: Optional[Dict[E, str]] = None
    ):
        self.name = name
        self.enum_class = enum_class
        self.default = default
        self._display = dict(display or {})
        self._lookup = {member.value.lower(): member for member in enum_class}

    def parse(self, value: Any) -> E:
        if isinstance(value, self.enum_class):
            return value
        token = canonical_token(value)
        member = self._lookup.get(token.lower())
        if member is None:
            if token:
                logger.debug(f"Unrecognized {self.name} {value!r}, using {self.default.value}")
            return self.default
        return member

    def display(self, value: Any) -> str:
        member = self.parse(value)
        return self._display.get(member, member.value)


STUDENT_STATUS = EnumField(
    "student status", StudentStatus, StudentStatus.ACTIVE,
    display={StudentStatus.FEES_DUE: "Fees Due"}
)
ROOM_TYPE = EnumField("room type", RoomType, RoomType.CLASSROOM)
SUBJECT_TYPE = EnumField("subject type", SubjectType, SubjectType.CORE)
WEEKDAY = EnumField("timetable day", Weekday, Weekday.MONDAY)
CURRICULUM_TYPE = EnumField("curriculum type", CurriculumType, CurriculumType.PUBLIC)
EXAM_STATUS = EnumField("exam status", ExamStatus, ExamStatus.UPCOMING)
FEE_FREQUENCY = EnumField(
    "fee frequency", FeeFrequency, FeeFrequency.MONTHLY,
    display={FeeFrequency.ONE_TIME: "One-time"}
)
EXPENSE_CATEGORY = EnumField("expense category", ExpenseCategory, ExpenseCategory.OTHERS)
EXPENSE_STATUS = EnumField("expense status", ExpenseStatus, ExpenseStatus.PAID)
ATTENDANCE_STATUS = EnumField("attendance status", AttendanceStatus, AttendanceStatus.PRESENT)
