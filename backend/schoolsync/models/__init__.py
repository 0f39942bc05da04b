from .school import School
from .dataset import Dataset
from .people import Student, StudentStatus, Staff
from .academic import (
    Room, RoomType, ClassGroup, Subject, SubjectType,
    TimetableEntry, Weekday, CurriculumType
)
from .exam import Exam, ExamClass, ExamResult, ExamStatus
from .finance import (
    FeeType, FeeFrequency, Expense, ExpenseCategory, ExpenseStatus,
    Payment, PaymentItem
)
from .attendance import (
    AttendanceStatus,
    StudentAttendanceSession, StudentAttendanceRecord,
    StaffAttendanceSession, StaffAttendanceRecord
)

__all__ = [
    "School",
    "Dataset",
    "Student",
    "StudentStatus",
    "Staff",
    "Room",
    "RoomType",
    "ClassGroup",
    "Subject",
    "SubjectType",
    "TimetableEntry",
    "Weekday",
    "CurriculumType",
    "Exam",
    "ExamClass",
    "ExamResult",
    "ExamStatus",
    "FeeType",
    "FeeFrequency",
    "Expense",
    "ExpenseCategory",
    "ExpenseStatus",
    "Payment",
    "PaymentItem",
    "AttendanceStatus",
    "StudentAttendanceSession",
    "StudentAttendanceRecord",
    "StaffAttendanceSession",
    "StaffAttendanceRecord",
]
