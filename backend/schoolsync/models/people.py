from sqlalchemy import Column, Integer, String, Float, Enum as SQLEnum
import enum

from schoolsync.core.database import Base


class StudentStatus(str, enum.Enum):
    ACTIVE = "Active"
    GRADUATED = "Graduated"
    SUSPENDED = "Suspended"
    FEES_DUE = "Fees_Due"


class Student(Base):
    __tablename__ = "students"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    name_en = Column(String(255), nullable=False, default="")
    name_mm = Column(String(255), nullable=False, default="")
    father_name = Column(String(255), nullable=False, default="")
    grade = Column(String(100), nullable=False, default="")
    nrc = Column(String(100), nullable=True)
    dob = Column(String(50), nullable=False, default="")
    status = Column(
        SQLEnum(StudentStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=StudentStatus.ACTIVE
    )
    attendance_rate = Column(Float, nullable=False, default=0)
    fees_pending = Column(Float, nullable=False, default=0)
    phone = Column(String(100), nullable=False, default="")
    last_payment_date = Column(String(50), nullable=True)

    # Array position in the last imported document
    position = Column(Integer, nullable=False, default=0)


class Staff(Base):
    __tablename__ = "staff"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    name = Column(String(255), nullable=False, default="")
    role = Column(String(100), nullable=False, default="")
    base_salary = Column(Float, nullable=False, default=0)
    department = Column(String(255), nullable=False, default="")
    join_date = Column(String(50), nullable=False, default="")

    position = Column(Integer, nullable=False, default=0)
