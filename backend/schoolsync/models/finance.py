from sqlalchemy import (
    Column, Integer, String, Boolean, Float, JSON, Text, ForeignKeyConstraint, Enum as SQLEnum
)
import enum

from schoolsync.core.database import Base


def _values(enum_class):
    return [member.value for member in enum_class]


class FeeFrequency(str, enum.Enum):
    MONTHLY = "Monthly"
    YEARLY = "Yearly"
    ONE_TIME = "One_time"
    TERMLY = "Termly"


class ExpenseCategory(str, enum.Enum):
    SALARIES = "Salaries"
    UTILITIES = "Utilities"
    SUPPLIES = "Supplies"
    MAINTENANCE = "Maintenance"
    TRANSPORTATION = "Transportation"
    OTHERS = "Others"


class ExpenseStatus(str, enum.Enum):
    PAID = "Paid"
    PENDING = "Pending"


class FeeType(Base):
    """A fee structure (tuition, exam fee, ...)."""
    __tablename__ = "fee_types"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    name_en = Column(String(255), nullable=False, default="")
    name_mm = Column(String(255), nullable=False, default="")
    amount = Column(Float, nullable=False, default=0)
    frequency = Column(
        SQLEnum(FeeFrequency, native_enum=False, values_callable=_values),
        nullable=False,
        default=FeeFrequency.MONTHLY
    )
    academic_year = Column(String(50), nullable=False, default="")
    applicable_grades = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)
    due_date = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)

    position = Column(Integer, nullable=False, default=0)


class Expense(Base):
    __tablename__ = "expenses"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    category = Column(
        SQLEnum(ExpenseCategory, native_enum=False, values_callable=_values),
        nullable=False,
        default=ExpenseCategory.OTHERS
    )
    description = Column(Text, nullable=False, default="")
    amount = Column(Float, nullable=False, default=0)
    date = Column(String(50), nullable=False, default="")
    payment_method = Column(String(100), nullable=False, default="")
    status = Column(
        SQLEnum(ExpenseStatus, native_enum=False, values_callable=_values),
        nullable=False,
        default=ExpenseStatus.PAID
    )
    # Client fields outside the fixed columns, spread back onto the export
    meta = Column(JSON, nullable=True)

    position = Column(Integer, nullable=False, default=0)


class Payment(Base):
    """A receipt; its line items live in PaymentItem."""
    __tablename__ = "payments"

    school_id = Column(String(36), primary_key=True)
    id = Column(String(100), primary_key=True)

    student_id = Column(String(100), nullable=True)
    payer_name = Column(String(255), nullable=True)
    payment_method = Column(String(100), nullable=False, default="Cash")
    remark = Column(Text, nullable=True)
    discount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)
    date = Column(String(50), nullable=False, default="")
    meta = Column(JSON, nullable=True)

    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["school_id", "student_id"], ["students.school_id", "students.id"]),
    )


class PaymentItem(Base):
    __tablename__ = "payment_items"

    school_id = Column(String(36), primary_key=True)
    payment_id = Column(String(100), primary_key=True)
    line_no = Column(Integer, primary_key=True)

    fee_type_id = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["school_id", "payment_id"], ["payments.school_id", "payments.id"]),
        ForeignKeyConstraint(["school_id", "fee_type_id"], ["fee_types.school_id", "fee_types.id"]),
    )
