from sqlalchemy import (
    Column, Integer, String, ForeignKey, ForeignKeyConstraint, UniqueConstraint, Enum as SQLEnum
)
import enum
import uuid

from schoolsync.core.database import Base


class AttendanceStatus(str, enum.Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LEAVE = "LEAVE"
    LATE = "LATE"


def _status_column():
    return Column(
        SQLEnum(AttendanceStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AttendanceStatus.PRESENT
    )


class StudentAttendanceSession(Base):
    """
    One register for a class on a date.

    Sessions are recreated on every import, so ``id`` is never exposed; the
    public identity of a cell is (date, class_id, student_id).
    """
    __tablename__ = "student_attendance_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id = Column(String(36), nullable=False, index=True)
    date = Column(String(50), nullable=False)
    class_id = Column(String(100), nullable=False)

    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("school_id", "date", "class_id", name="uq_student_attendance_session"),
        ForeignKeyConstraint(["school_id", "class_id"], ["class_groups.school_id", "class_groups.id"]),
    )


class StudentAttendanceRecord(Base):
    __tablename__ = "student_attendance_records"

    session_id = Column(String(36), ForeignKey("student_attendance_sessions.id"), primary_key=True)
    student_id = Column(String(100), primary_key=True)
    school_id = Column(String(36), nullable=False, index=True)

    status = _status_column()
    remark = Column(String(500), nullable=True)


class StaffAttendanceSession(Base):
    __tablename__ = "staff_attendance_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id = Column(String(36), nullable=False, index=True)
    date = Column(String(50), nullable=False)

    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("school_id", "date", name="uq_staff_attendance_session"),
    )


class StaffAttendanceRecord(Base):
    __tablename__ = "staff_attendance_records"

    session_id = Column(String(36), ForeignKey("staff_attendance_sessions.id"), primary_key=True)
    staff_id = Column(String(100), primary_key=True)
    school_id = Column(String(36), nullable=False, index=True)

    status = _status_column()
    check_in = Column(String(50), nullable=True)
    check_out = Column(String(50), nullable=True)
    remark = Column(String(500), nullable=True)

    __table_args__ = (
        ForeignKeyConstraint(["school_id", "staff_id"], ["staff.school_id", "staff.id"]),
    )
