"""Shared fixtures: in-memory database, tokens and a sample school dataset."""

import copy

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

import schoolsync.models  # noqa: F401
from schoolsync.core.database import Base, enable_sqlite_foreign_keys
from schoolsync.core.security import jwt_manager


SCHOOL_ID = "school-1"
OTHER_SCHOOL_ID = "school-2"

SAMPLE_DOCUMENT = {
    "students": [
        {
            "id": "S001",
            "nameEn": "Aung Aung",
            "nameMm": "အောင်အောင်",
            "fatherName": "U Ba",
            "grade": "Grade 10",
            "nrc": "12/ABC(N)123456",
            "dob": "2009-04-12",
            "status": "Active",
            "attendanceRate": 95.5,
            "feesPending": 0.0,
            "phone": "09-123456",
            "lastPaymentDate": "2024-06-01",
        },
        {
            "id": "S002",
            "nameEn": "Hla Hla",
            "nameMm": "လှလှ",
            "fatherName": "U Mya",
            "grade": "Grade 10",
            "nrc": None,
            "dob": "2009-09-30",
            "status": "Fees Due",
            "attendanceRate": 88.0,
            "feesPending": 45000.0,
            "phone": "",
            "lastPaymentDate": None,
        },
    ],
    "staff": [
        {
            "id": "T001",
            "name": "Daw Khin",
            "role": "Teacher",
            "baseSalary": 350000.0,
            "department": "Mathematics",
            "joinDate": "2019-06-01",
        },
    ],
    "expenses": [
        {
            "id": "E001",
            "category": "Utilities",
            "description": "Electricity bill",
            "amount": 120000.0,
            "date": "2024-06-05",
            "paymentMethod": "Bank Transfer",
            "status": "Pending",
            "vendor": "YESB",
            "invoiceNo": "INV-77",
        },
    ],
    "exams": [
        {
            "id": "EX1",
            "name": "First Term",
            "academicYear": "2024-2025",
            "term": "Term 1",
            "startDate": "2024-08-01",
            "endDate": "2024-08-07",
            "status": "Completed",
            "classes": ["C10A", "C10B"],
        },
    ],
    "marks": [
        {
            "id": "M1",
            "examId": "EX1",
            "studentId": "S001",
            "subjectId": "SUB-M",
            "score": 88.5,
            "grade": "A",
            "remark": "Good",
        },
    ],
    "timetable": [
        {
            "id": "TT1",
            "classId": "C10A",
            "day": "Tuesday",
            "periodId": 2,
            "subjectId": "SUB-M",
            "teacherId": "T001",
            "curriculumType": "Private",
        },
    ],
    "classes": [
        {
            "id": "C10A",
            "name": "Grade 10 (A)",
            "gradeLevel": "Grade 10",
            "section": "A",
            "teacherId": "T001",
            "teacherName": "Daw Khin",
            "roomId": "R101",
            "roomName": "101",
            "studentCount": 2,
            "maxCapacity": 40,
        },
        {
            "id": "C10B",
            "name": "Grade 10 (B)",
            "gradeLevel": "Grade 10",
            "section": "B",
            "teacherId": "",
            "teacherName": "",
            "roomId": "",
            "roomName": "",
            "studentCount": 0,
            "maxCapacity": 40,
        },
    ],
    "rooms": [
        {
            "id": "R101",
            "number": "101",
            "building": "Main",
            "type": "Laboratory",
            "capacity": 40,
            "isOccupied": True,
            "facilities": ["Projector", "Fan"],
        },
    ],
    "subjects": [
        {
            "id": "SUB-M",
            "code": "MATH10",
            "nameEn": "Mathematics",
            "nameMm": "သင်္ချာ",
            "gradeLevel": "Grade 10",
            "type": "Core",
            "periodsPerWeek": 6,
            "department": "Mathematics",
        },
    ],
    "feeStructures": [
        {
            "id": "FEE-TUI",
            "nameEn": "Tuition",
            "nameMm": "ကျောင်းလခ",
            "amount": 45000.0,
            "frequency": "One-time",
            "academicYear": "2024-2025",
            "applicableGrades": ["Grade 10"],
            "description": "Annual tuition",
            "dueDate": "2024-06-30",
            "isActive": True,
        },
    ],
    "attendance": {
        "2024-06-03": {
            "C10A": {
                "S001": {"status": "PRESENT", "remark": ""},
                "S002": {"status": "LATE", "remark": "Bus delay"},
            },
        },
        "2024-06-04": {
            "C10A": {
                "S001": {"status": "ABSENT", "remark": "Sick"},
            },
        },
    },
    "staffAttendance": {
        "2024-06-03": {
            "T001": {"status": "PRESENT", "checkIn": "08:00", "checkOut": "15:30", "remark": ""},
        },
    },
    "payments": [
        {
            "id": "P001",
            "studentId": "S001",
            "payerName": "U Ba",
            "paymentMethod": "KBZPay",
            "remark": None,
            "discount": 0.0,
            "totalAmount": 45000.0,
            "date": "2024-06-01",
            "items": [
                {"lineNo": 1, "feeTypeId": "FEE-TUI", "description": "Tuition", "amount": 45000.0},
            ],
        },
    ],
    "exportDate": "2024-06-05T10:00:00.000Z",
}


@pytest.fixture
def sample_document():
    """A fully consistent dataset document in export form."""
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine shared across sessions of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_token():
    """Create a signed access token for a school."""
    def _make_token(school_id: str = SCHOOL_ID, username: str = "admin"):
        return jwt_manager.create_access_token(
            subject=username,
            username=username,
            role="admin",
            school_id=school_id
        )
    return _make_token
