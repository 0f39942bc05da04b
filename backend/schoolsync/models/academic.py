from sqlalchemy import (
    Column, Integer, String, Boolean, JSON, ForeignKeyConstraint, Index, Enum as SQLEnum
)
import enum

from schoolsync.core.database import Base


def _values(enum_class):
    return [member.value for member in enum_class]


class RoomType(str, enum.Enum):
    CLASSROOM = "Classroom"
    LABORATORY = "Laboratory"
    HALL = "Hall"
    OFFICE = "Office"


class SubjectType(str, enum.Enum):
    CORE = "Core"
    ELECTIVE = "Elective"
    ACTIVITY = "Activity"


class Weekday(str, enum.Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"


class CurriculumType(str, enum.Enum):
    PUBLIC = "Public"
    PRIVATE = "Private"


class Room(Base):
    __tablename__ = "rooms"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    number = Column(String(100), nullable=False, default="")
    building = Column(String(255), nullable=False, default="")
    type = Column(
        SQLEnum(RoomType, native_enum=False, values_callable=_values),
        nullable=False,
        default=RoomType.CLASSROOM
    )
    capacity = Column(Integer, nullable=False, default=0)
    is_occupied = Column(Boolean, nullable=False, default=False)
    facilities = Column(JSON, nullable=False, default=list)

    position = Column(Integer, nullable=False, default=0)


class ClassGroup(Base):
    """A class/section, e.g. Grade 10 (A)."""
    __tablename__ = "class_groups"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    name = Column(String(255), nullable=False, default="")
    grade_level = Column(String(100), nullable=False, default="")
    section = Column(String(50), nullable=False, default="")
    teacher_id = Column(String(100), nullable=True)
    teacher_name = Column(String(255), nullable=False, default="")
    room_id = Column(String(100), nullable=True)
    room_name = Column(String(255), nullable=False, default="")
    student_count = Column(Integer, nullable=False, default=0)
    max_capacity = Column(Integer, nullable=False, default=0)

    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["school_id", "teacher_id"], ["staff.school_id", "staff.id"]),
        ForeignKeyConstraint(["school_id", "room_id"], ["rooms.school_id", "rooms.id"]),
    )


class Subject(Base):
    __tablename__ = "subjects"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    code = Column(String(100), nullable=False, default="")
    name_en = Column(String(255), nullable=False, default="")
    name_mm = Column(String(255), nullable=False, default="")
    grade_level = Column(String(100), nullable=False, default="")
    type = Column(
        SQLEnum(SubjectType, native_enum=False, values_callable=_values),
        nullable=False,
        default=SubjectType.CORE
    )
    periods_per_week = Column(Integer, nullable=False, default=0)
    department = Column(String(255), nullable=False, default="")

    position = Column(Integer, nullable=False, default=0)


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    class_id = Column(String(100), nullable=True)
    day = Column(
        SQLEnum(Weekday, native_enum=False, values_callable=_values),
        nullable=False,
        default=Weekday.MONDAY
    )
    period_id = Column(Integer, nullable=False, default=0)
    subject_id = Column(String(100), nullable=True)
    teacher_id = Column(String(100), nullable=True)
    curriculum_type = Column(
        SQLEnum(CurriculumType, native_enum=False, values_callable=_values),
        nullable=False,
        default=CurriculumType.PUBLIC
    )

    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["school_id", "class_id"], ["class_groups.school_id", "class_groups.id"]),
        ForeignKeyConstraint(["school_id", "subject_id"], ["subjects.school_id", "subjects.id"]),
        ForeignKeyConstraint(["school_id", "teacher_id"], ["staff.school_id", "staff.id"]),
        # A class's weekly grid
        Index("idx_timetable_class_day", "school_id", "class_id", "day"),
    )
