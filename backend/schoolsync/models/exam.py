from sqlalchemy import Column, Integer, String, Float, ForeignKeyConstraint, Enum as SQLEnum
import enum

from schoolsync.core.database import Base


class ExamStatus(str, enum.Enum):
    UPCOMING = "Upcoming"
    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    PUBLISHED = "Published"


class Exam(Base):
    __tablename__ = "exams"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    name = Column(String(255), nullable=False, default="")
    academic_year = Column(String(50), nullable=False, default="")
    term = Column(String(100), nullable=False, default="")
    start_date = Column(String(50), nullable=False, default="")
    end_date = Column(String(50), nullable=False, default="")
    status = Column(
        SQLEnum(ExamStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ExamStatus.UPCOMING
    )

    position = Column(Integer, nullable=False, default=0)


class ExamClass(Base):
    """Junction between an exam and the classes sitting it."""
    __tablename__ = "exam_classes"

    school_id = Column(String(36), primary_key=True)
    exam_id = Column(String(100), primary_key=True)
    class_id = Column(String(100), primary_key=True)

    # Order of the class id inside the exam's ``classes`` list
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["school_id", "exam_id"], ["exams.school_id", "exams.id"]),
        ForeignKeyConstraint(["school_id", "class_id"], ["class_groups.school_id", "class_groups.id"]),
    )


class ExamResult(Base):
    """A single mark: one student's score for one subject in one exam."""
    __tablename__ = "exam_results"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    exam_id = Column(String(100), nullable=True)
    student_id = Column(String(100), nullable=True)
    subject_id = Column(String(100), nullable=True)
    score = Column(Float, nullable=False, default=0)
    grade = Column(String(20), nullable=False, default="")
    remark = Column(String(500), nullable=True)

    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["school_id", "exam_id"], ["exams.school_id", "exams.id"]),
        ForeignKeyConstraint(["school_id", "student_id"], ["students.school_id", "students.id"]),
        ForeignKeyConstraint(["school_id", "subject_id"], ["subjects.school_id", "subjects.id"]),
    )
