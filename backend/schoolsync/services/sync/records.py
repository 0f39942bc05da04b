"""
Typed records decoded from a client dataset document.

``decode_dataset`` turns an arbitrary JSON value into a ``DecodedDataset``
before anything touches the database. Collections that are missing, null or
not lists decode as empty; entries that are not objects are skipped; every
scalar goes through the coercion helpers. Duplicate ids inside one collection
keep their first occurrence.
"""

import itertools
import logging
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

from schoolsync.models.people import StudentStatus
from schoolsync.models.academic import RoomType, SubjectType, Weekday, CurriculumType
from schoolsync.models.exam import ExamStatus
from schoolsync.models.finance import FeeFrequency, ExpenseCategory, ExpenseStatus
from schoolsync.models.attendance import AttendanceStatus
from .coercion import (
    to_str, to_optional_str, to_ref, to_float, to_int, to_bool,
    as_mapping, as_list, first_present, MAX_INTEGER,
    STUDENT_STATUS, ROOM_TYPE, SUBJECT_TYPE, WEEKDAY, CURRICULUM_TYPE,
    EXAM_STATUS, FEE_FREQUENCY, EXPENSE_CATEGORY, EXPENSE_STATUS, ATTENDANCE_STATUS
)

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Top-level document keys
COLLECTION_KEYS = (
    "students", "staff", "expenses", "exams", "marks", "timetable",
    "classes", "rooms", "subjects", "feeStructures", "payments",
)
ATTENDANCE_KEYS = ("attendance", "staffAttendance")

EXPENSE_COLUMNS = {"id", "category", "description", "amount", "date", "paymentMethod", "status"}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def empty_dataset_document() -> Dict[str, Any]:
    """The shape of a school with no rows at all."""
    document: Dict[str, Any] = {key: [] for key in COLLECTION_KEYS}
    for key in ATTENDANCE_KEYS:
        document[key] = {}
    document["exportDate"] = utc_timestamp()
    return document


def is_dataset_empty(data: Any) -> bool:
    """True when a document holds no entities and no attendance."""
    if not isinstance(data, dict):
        return True
    collections_empty = all(
        not isinstance(data.get(key), list) or not data.get(key)
        for key in COLLECTION_KEYS
    )
    attendance_empty = all(
        not isinstance(data.get(key), dict) or not data.get(key)
        for key in ATTENDANCE_KEYS
    )
    return collections_empty and attendance_empty


def entity_id(raw: Dict[str, Any]) -> str:
    value = to_str(raw.get("id"))
    if not value:
        value = uuid.uuid4().hex
        logger.debug(f"Entry without id received generated id {value}")
    return value


def _row(record: Any, school_id: str, position: int, exclude: tuple = ()) -> Dict[str, Any]:
    values = {name: value for name, value in asdict(record).items() if name not in exclude}
    values["school_id"] = school_id
    values["position"] = position
    return values


@dataclass
class StaffRecord:
    id: str
    name: str = ""
    role: str = ""
    base_salary: float = 0.0
    department: str = ""
    join_date: str = ""

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "StaffRecord":
        return cls(
            id=entity_id(raw),
            name=to_str(raw.get("name")),
            role=to_str(raw.get("role")),
            base_salary=to_float(raw.get("baseSalary")),
            department=to_str(raw.get("department")),
            join_date=to_str(raw.get("joinDate")),
        )

    @classmethod
    def placeholder(cls, staff_id: str) -> "StaffRecord":
        return cls(id=staff_id, name="TBD", role="Teacher", department="Unknown")

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class RoomRecord:
    id: str
    number: str = ""
    building: str = ""
    type: RoomType = RoomType.CLASSROOM
    capacity: int = 0
    is_occupied: bool = False
    facilities: List[Any] = field(default_factory=list)

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "RoomRecord":
        return cls(
            id=entity_id(raw),
            number=to_str(raw.get("number")),
            building=to_str(raw.get("building")),
            type=ROOM_TYPE.parse(raw.get("type")),
            capacity=to_int(raw.get("capacity")),
            is_occupied=to_bool(raw.get("isOccupied")),
            facilities=as_list(raw.get("facilities")),
        )

    @classmethod
    def placeholder(cls, room_id: str) -> "RoomRecord":
        return cls(id=room_id, number=room_id)

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class ClassGroupRecord:
    id: str
    name: str = ""
    grade_level: str = ""
    section: str = ""
    teacher_id: Optional[str] = None
    teacher_name: str = ""
    room_id: Optional[str] = None
    room_name: str = ""
    student_count: int = 0
    max_capacity: int = 0

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "ClassGroupRecord":
        return cls(
            id=entity_id(raw),
            name=to_str(raw.get("name")),
            grade_level=to_str(raw.get("gradeLevel")),
            section=to_str(raw.get("section")),
            teacher_id=to_ref(raw.get("teacherId")),
            teacher_name=to_str(raw.get("teacherName")),
            room_id=to_ref(raw.get("roomId")),
            room_name=to_str(raw.get("roomName")),
            student_count=to_int(raw.get("studentCount")),
            max_capacity=to_int(raw.get("maxCapacity")),
        )

    @classmethod
    def placeholder(cls, class_id: str) -> "ClassGroupRecord":
        return cls(id=class_id, name=class_id, teacher_name="TBD")

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class SubjectRecord:
    id: str
    code: str = ""
    name_en: str = ""
    name_mm: str = ""
    grade_level: str = ""
    type: SubjectType = SubjectType.CORE
    periods_per_week: int = 0
    department: str = ""

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "SubjectRecord":
        return cls(
            id=entity_id(raw),
            code=to_str(raw.get("code")),
            name_en=to_str(raw.get("nameEn")),
            name_mm=to_str(raw.get("nameMm")),
            grade_level=to_str(raw.get("gradeLevel")),
            type=SUBJECT_TYPE.parse(raw.get("type")),
            periods_per_week=to_int(raw.get("periodsPerWeek")),
            department=to_str(raw.get("department")),
        )

    @classmethod
    def placeholder(cls, subject_id: str) -> "SubjectRecord":
        return cls(id=subject_id, code=subject_id, name_en=subject_id, grade_level="All", department="General")

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class StudentRecord:
    id: str
    name_en: str = ""
    name_mm: str = ""
    father_name: str = ""
    grade: str = ""
    nrc: Optional[str] = None
    dob: str = ""
    status: StudentStatus = StudentStatus.ACTIVE
    attendance_rate: float = 0.0
    fees_pending: float = 0.0
    phone: str = ""
    last_payment_date: Optional[str] = None

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "StudentRecord":
        return cls(
            id=entity_id(raw),
            name_en=to_str(raw.get("nameEn")),
            name_mm=to_str(raw.get("nameMm")),
            father_name=to_str(raw.get("fatherName")),
            grade=to_str(raw.get("grade")),
            nrc=to_optional_str(raw.get("nrc")),
            dob=to_str(raw.get("dob")),
            status=STUDENT_STATUS.parse(raw.get("status")),
            attendance_rate=to_float(raw.get("attendanceRate")),
            fees_pending=to_float(raw.get("feesPending")),
            phone=to_str(raw.get("phone")),
            last_payment_date=to_optional_str(raw.get("lastPaymentDate")),
        )

    @classmethod
    def placeholder(cls, student_id: str) -> "StudentRecord":
        return cls(id=student_id, name_en=student_id)

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class TimetableRecord:
    id: str
    class_id: Optional[str] = None
    day: Weekday = Weekday.MONDAY
    period_id: int = 0
    subject_id: Optional[str] = None
    teacher_id: Optional[str] = None
    curriculum_type: CurriculumType = CurriculumType.PUBLIC

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "TimetableRecord":
        return cls(
            id=entity_id(raw),
            class_id=to_ref(raw.get("classId")),
            day=WEEKDAY.parse(raw.get("day")),
            period_id=to_int(raw.get("periodId")),
            subject_id=to_ref(raw.get("subjectId")),
            teacher_id=to_ref(raw.get("teacherId")),
            curriculum_type=CURRICULUM_TYPE.parse(raw.get("curriculumType")),
        )

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class ExamRecord:
    id: str
    name: str = ""
    academic_year: str = ""
    term: str = ""
    start_date: str = ""
    end_date: str = ""
    status: ExamStatus = ExamStatus.UPCOMING
    class_ids: List[str] = field(default_factory=list)

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "ExamRecord":
        class_ids: List[str] = []
        for value in as_list(raw.get("classes")):
            class_id = to_ref(value)
            if class_id and class_id not in class_ids:
                class_ids.append(class_id)
        return cls(
            id=entity_id(raw),
            name=to_str(raw.get("name")),
            academic_year=to_str(raw.get("academicYear")),
            term=to_str(raw.get("term")),
            start_date=to_str(raw.get("startDate")),
            end_date=to_str(raw.get("endDate")),
            status=EXAM_STATUS.parse(raw.get("status")),
            class_ids=class_ids,
        )

    @classmethod
    def placeholder(cls, exam_id: str) -> "ExamRecord":
        return cls(id=exam_id, name=exam_id)

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position, exclude=("class_ids",))


@dataclass
class ExamResultRecord:
    id: str
    exam_id: Optional[str] = None
    student_id: Optional[str] = None
    subject_id: Optional[str] = None
    score: float = 0.0
    grade: str = ""
    remark: Optional[str] = None

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "ExamResultRecord":
        return cls(
            id=entity_id(raw),
            exam_id=to_ref(raw.get("examId")),
            student_id=to_ref(raw.get("studentId")),
            subject_id=to_ref(raw.get("subjectId")),
            score=to_float(raw.get("score")),
            grade=to_str(raw.get("grade")),
            remark=to_optional_str(raw.get("remark")),
        )

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class FeeTypeRecord:
    id: str
    name_en: str = ""
    name_mm: str = ""
    amount: float = 0.0
    frequency: FeeFrequency = FeeFrequency.MONTHLY
    academic_year: str = ""
    applicable_grades: List[Any] = field(default_factory=list)
    description: Optional[str] = None
    due_date: Optional[str] = None
    is_active: bool = False

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "FeeTypeRecord":
        return cls(
            id=entity_id(raw),
            name_en=to_str(raw.get("nameEn")),
            name_mm=to_str(raw.get("nameMm")),
            amount=to_float(raw.get("amount")),
            frequency=FEE_FREQUENCY.parse(raw.get("frequency")),
            academic_year=to_str(raw.get("academicYear")),
            applicable_grades=as_list(raw.get("applicableGrades")),
            description=to_optional_str(raw.get("description")),
            due_date=to_optional_str(raw.get("dueDate")),
            is_active=to_bool(raw.get("isActive")),
        )

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class ExpenseRecord:
    id: str
    category: ExpenseCategory = ExpenseCategory.OTHERS
    description: str = ""
    amount: float = 0.0
    date: str = ""
    payment_method: str = ""
    status: ExpenseStatus = ExpenseStatus.PAID
    meta: Optional[Dict[str, Any]] = None

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "ExpenseRecord":
        extras = {key: value for key, value in raw.items() if key not in EXPENSE_COLUMNS}
        return cls(
            id=entity_id(raw),
            category=EXPENSE_CATEGORY.parse(raw.get("category")),
            description=to_str(raw.get("description")),
            amount=to_float(raw.get("amount")),
            date=to_str(raw.get("date")),
            payment_method=to_str(raw.get("paymentMethod")),
            status=EXPENSE_STATUS.parse(raw.get("status")),
            meta=extras or None,
        )

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position)


@dataclass
class PaymentItemRecord:
    line_no: int
    fee_type_id: Optional[str] = None
    description: Optional[str] = None
    amount: float = 0.0

    def to_row(self, school_id: str, payment_id: str) -> Dict[str, Any]:
        values = asdict(self)
        values["school_id"] = school_id
        values["payment_id"] = payment_id
        return values


def _unique_line_numbers(items: List[PaymentItemRecord]) -> List[PaymentItemRecord]:
    """Colliding or non-positive line numbers move past the current maximum."""
    used = set()
    for item in items:
        if item.line_no < 1 or item.line_no in used:
            item.line_no = max(used, default=0) + 1
            if item.line_no > MAX_INTEGER:
                item.line_no = next(n for n in itertools.count(1) if n not in used)
        used.add(item.line_no)
    return items


def decode_payment_items(raw: Dict[str, Any], total_amount: float) -> List[PaymentItemRecord]:
    """
    Line items from the first shape present:

    1. ``items``: structured lines; ``lineNo`` defaults to the 1-based position.
    2. ``feeIds``: one zero-amount line per fee type id.
    3. neither: a single "Payment" line carrying the payment total.
    """
    items = [
        (index, item) for index, item in enumerate(as_list(raw.get("items")), start=1)
        if isinstance(item, dict)
    ]
    if items:
        return _unique_line_numbers([
            PaymentItemRecord(
                line_no=to_int(item.get("lineNo"), default=index),
                fee_type_id=to_ref(first_present(item, "feeTypeId", "feeId")),
                description=to_optional_str(item.get("description")),
                amount=to_float(item.get("amount")),
            )
            for index, item in items
        ])

    fee_ids = as_list(raw.get("feeIds"))
    if fee_ids:
        return [
            PaymentItemRecord(line_no=index, fee_type_id=to_ref(fee_id), amount=0.0)
            for index, fee_id in enumerate(fee_ids, start=1)
        ]

    return [PaymentItemRecord(line_no=1, description="Payment", amount=total_amount)]


@dataclass
class PaymentRecord:
    id: str
    student_id: Optional[str] = None
    payer_name: Optional[str] = None
    payment_method: str = "Cash"
    remark: Optional[str] = None
    discount: float = 0.0
    total_amount: float = 0.0
    date: str = ""
    meta: Optional[Dict[str, Any]] = None
    items: List[PaymentItemRecord] = field(default_factory=list)

    @classmethod
    def decode(cls, raw: Dict[str, Any]) -> "PaymentRecord":
        total_amount = to_float(first_present(raw, "totalAmount", "amount"))
        meta = raw.get("meta")
        return cls(
            id=entity_id(raw),
            student_id=to_ref(raw.get("studentId")),
            payer_name=to_optional_str(raw.get("payerName")),
            payment_method=to_str(first_present(raw, "paymentMethod", "method"), default="Cash"),
            remark=to_optional_str(raw.get("remark")),
            discount=to_float(raw.get("discount")),
            total_amount=total_amount,
            date=to_str(raw.get("date"), default=datetime.now(timezone.utc).date().isoformat()),
            meta=meta if isinstance(meta, dict) and meta else None,
            items=decode_payment_items(raw, total_amount),
        )

    def to_row(self, school_id: str, position: int) -> Dict[str, Any]:
        return _row(self, school_id, position, exclude=("items",))


@dataclass
class StudentAttendanceEntry:
    student_id: str
    status: AttendanceStatus = AttendanceStatus.PRESENT
    remark: Optional[str] = None


@dataclass
class StudentAttendanceSheet:
    """All marks for one class on one date."""
    date: str
    class_id: str
    entries: List[StudentAttendanceEntry] = field(default_factory=list)


@dataclass
class StaffAttendanceEntry:
    staff_id: str
    status: AttendanceStatus = AttendanceStatus.PRESENT
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    remark: Optional[str] = None


@dataclass
class StaffAttendanceSheet:
    date: str
    entries: List[StaffAttendanceEntry] = field(default_factory=list)


def decode_student_attendance(raw: Any) -> List[StudentAttendanceSheet]:
    sheets = []
    for date, by_class in as_mapping(raw).items():
        if not isinstance(by_class, dict):
            continue
        for class_id, by_student in by_class.items():
            if not isinstance(by_student, dict):
                continue
            entries = []
            for student_id, cell in by_student.items():
                cell = as_mapping(cell)
                entries.append(StudentAttendanceEntry(
                    student_id=str(student_id),
                    status=ATTENDANCE_STATUS.parse(cell.get("status")),
                    remark=to_optional_str(cell.get("remark")),
                ))
            sheets.append(StudentAttendanceSheet(date=str(date), class_id=str(class_id), entries=entries))
    return sheets


def decode_staff_attendance(raw: Any) -> List[StaffAttendanceSheet]:
    sheets = []
    for date, by_staff in as_mapping(raw).items():
        if not isinstance(by_staff, dict):
            continue
        entries = []
        for staff_id, cell in by_staff.items():
            cell = as_mapping(cell)
            entries.append(StaffAttendanceEntry(
                staff_id=str(staff_id),
                status=ATTENDANCE_STATUS.parse(cell.get("status")),
                check_in=to_optional_str(cell.get("checkIn")),
                check_out=to_optional_str(cell.get("checkOut")),
                remark=to_optional_str(cell.get("remark")),
            ))
        sheets.append(StaffAttendanceSheet(date=str(date), entries=entries))
    return sheets


def decode_collection(raw: Any, decoder: Callable[[Dict[str, Any]], R], name: str) -> List[R]:
    records: List[R] = []
    seen = set()
    for entry in as_list(raw):
        if not isinstance(entry, dict):
            logger.debug(f"Skipping non-object entry in {name}")
            continue
        record = decoder(entry)
        if record.id in seen:
            logger.debug(f"Duplicate id {record.id} in {name}, keeping the first occurrence")
            continue
        seen.add(record.id)
        records.append(record)
    return records


@dataclass
class DecodedDataset:
    staff: List[StaffRecord] = field(default_factory=list)
    rooms: List[RoomRecord] = field(default_factory=list)
    classes: List[ClassGroupRecord] = field(default_factory=list)
    subjects: List[SubjectRecord] = field(default_factory=list)
    students: List[StudentRecord] = field(default_factory=list)
    timetable: List[TimetableRecord] = field(default_factory=list)
    exams: List[ExamRecord] = field(default_factory=list)
    marks: List[ExamResultRecord] = field(default_factory=list)
    fee_types: List[FeeTypeRecord] = field(default_factory=list)
    expenses: List[ExpenseRecord] = field(default_factory=list)
    payments: List[PaymentRecord] = field(default_factory=list)
    attendance: List[StudentAttendanceSheet] = field(default_factory=list)
    staff_attendance: List[StaffAttendanceSheet] = field(default_factory=list)


def decode_dataset(document: Any) -> DecodedDataset:
    """Decode a pushed document; anything that is not an object decodes as empty."""
    doc = as_mapping(document)
    return DecodedDataset(
        staff=decode_collection(doc.get("staff"), StaffRecord.decode, "staff"),
        rooms=decode_collection(doc.get("rooms"), RoomRecord.decode, "rooms"),
        classes=decode_collection(doc.get("classes"), ClassGroupRecord.decode, "classes"),
        subjects=decode_collection(doc.get("subjects"), SubjectRecord.decode, "subjects"),
        students=decode_collection(doc.get("students"), StudentRecord.decode, "students"),
        timetable=decode_collection(doc.get("timetable"), TimetableRecord.decode, "timetable"),
        exams=decode_collection(doc.get("exams"), ExamRecord.decode, "exams"),
        marks=decode_collection(doc.get("marks"), ExamResultRecord.decode, "marks"),
        fee_types=decode_collection(doc.get("feeStructures"), FeeTypeRecord.decode, "feeStructures"),
        expenses=decode_collection(doc.get("expenses"), ExpenseRecord.decode, "expenses"),
        payments=decode_collection(doc.get("payments"), PaymentRecord.decode, "payments"),
        attendance=decode_student_attendance(doc.get("attendance")),
        staff_attendance=decode_staff_attendance(doc.get("staffAttendance")),
    )
