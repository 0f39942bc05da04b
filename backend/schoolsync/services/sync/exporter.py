"""
Dataset Exporter

Reads one school's entities and assembles the denormalized dataset document
the client works with.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsync.models import (
    Student, Staff, Room, ClassGroup, Subject, TimetableEntry,
    Exam, ExamClass, ExamResult, FeeType, Expense, Payment, PaymentItem,
    StudentAttendanceSession, StudentAttendanceRecord,
    StaffAttendanceSession, StaffAttendanceRecord
)
from .coercion import (
    STUDENT_STATUS, ROOM_TYPE, SUBJECT_TYPE, WEEKDAY, CURRICULUM_TYPE,
    EXAM_STATUS, FEE_FREQUENCY, EXPENSE_CATEGORY, EXPENSE_STATUS, ATTENDANCE_STATUS
)
from .records import utc_timestamp

logger = logging.getLogger(__name__)


def _ref(value):
    return value or ""


def export_student(s: Student) -> Dict[str, Any]:
    return {
        "id": s.id,
        "nameEn": s.name_en,
        "nameMm": s.name_mm,
        "fatherName": s.father_name,
        "grade": s.grade,
        "nrc": s.nrc,
        "dob": s.dob,
        "status": STUDENT_STATUS.display(s.status),
        "attendanceRate": s.attendance_rate,
        "feesPending": s.fees_pending,
        "phone": s.phone,
        "lastPaymentDate": s.last_payment_date,
    }


def export_staff(m: Staff) -> Dict[str, Any]:
    return {
        "id": m.id,
        "name": m.name,
        "role": m.role,
        "baseSalary": m.base_salary,
        "department": m.department,
        "joinDate": m.join_date,
    }


def export_expense(e: Expense) -> Dict[str, Any]:
    out = {
        "id": e.id,
        "category": EXPENSE_CATEGORY.display(e.category),
        "description": e.description,
        "amount": e.amount,
        "date": e.date,
        "paymentMethod": e.payment_method,
        "status": EXPENSE_STATUS.display(e.status),
    }
    if isinstance(e.meta, dict):
        out.update(e.meta)
    return out


def export_room(r: Room) -> Dict[str, Any]:
    return {
        "id": r.id,
        "number": r.number,
        "building": r.building,
        "type": ROOM_TYPE.display(r.type),
        "capacity": r.capacity,
        "isOccupied": r.is_occupied,
        "facilities": r.facilities if isinstance(r.facilities, list) else [],
    }


def export_class(c: ClassGroup) -> Dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "gradeLevel": c.grade_level,
        "section": c.section,
        "teacherId": _ref(c.teacher_id),
        "teacherName": c.teacher_name,
        "roomId": _ref(c.room_id),
        "roomName": c.room_name,
        "studentCount": c.student_count,
        "maxCapacity": c.max_capacity,
    }


def export_subject(s: Subject) -> Dict[str, Any]:
    return {
        "id": s.id,
        "code": s.code,
        "nameEn": s.name_en,
        "nameMm": s.name_mm,
        "gradeLevel": s.grade_level,
        "type": SUBJECT_TYPE.display(s.type),
        "periodsPerWeek": s.periods_per_week,
        "department": s.department,
    }


def export_timetable_entry(t: TimetableEntry) -> Dict[str, Any]:
    return {
        "id": t.id,
        "classId": _ref(t.class_id),
        "day": WEEKDAY.display(t.day),
        "periodId": t.period_id,
        "subjectId": _ref(t.subject_id),
        "teacherId": _ref(t.teacher_id),
        "curriculumType": CURRICULUM_TYPE.display(t.curriculum_type),
    }


def export_mark(m: ExamResult) -> Dict[str, Any]:
    return {
        "id": m.id,
        "examId": _ref(m.exam_id),
        "studentId": _ref(m.student_id),
        "subjectId": _ref(m.subject_id),
        "score": m.score,
        "grade": m.grade,
        "remark": m.remark,
    }


def export_fee_type(f: FeeType) -> Dict[str, Any]:
    return {
        "id": f.id,
        "nameEn": f.name_en,
        "nameMm": f.name_mm,
        "amount": f.amount,
        "frequency": FEE_FREQUENCY.display(f.frequency),
        "academicYear": f.academic_year,
        "applicableGrades": f.applicable_grades if isinstance(f.applicable_grades, list) else [],
        "description": f.description,
        "dueDate": f.due_date,
        "isActive": f.is_active,
    }


class DatasetExporter:
    """
    Builds the dataset document for one school.

    Tables are read one after another inside the caller's session so the
    document reflects a single consistent view of the school. Rows come back
    in their imported array order.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _rows(self, model, school_id: str, *order_by) -> List[Any]:
        query = select(model).where(model.school_id == school_id)
        query = query.order_by(*(order_by or (model.position,))).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def export(self, school_id: str) -> Dict[str, Any]:
        students = await self._rows(Student, school_id)
        staff = await self._rows(Staff, school_id)
        expenses = await self._rows(Expense, school_id)
        rooms = await self._rows(Room, school_id)
        classes = await self._rows(ClassGroup, school_id)
        subjects = await self._rows(Subject, school_id)
        timetable = await self._rows(TimetableEntry, school_id)
        exams = await self._rows(Exam, school_id)
        exam_classes = await self._rows(ExamClass, school_id, ExamClass.exam_id, ExamClass.position)
        marks = await self._rows(ExamResult, school_id)
        fee_types = await self._rows(FeeType, school_id)
        payments = await self._rows(Payment, school_id)
        payment_items = await self._rows(PaymentItem, school_id, PaymentItem.payment_id, PaymentItem.line_no)
        student_sessions = await self._rows(StudentAttendanceSession, school_id)
        student_records = await self._rows(
            StudentAttendanceRecord, school_id,
            StudentAttendanceRecord.session_id, StudentAttendanceRecord.student_id
        )
        staff_sessions = await self._rows(StaffAttendanceSession, school_id)
        staff_records = await self._rows(
            StaffAttendanceRecord, school_id,
            StaffAttendanceRecord.session_id, StaffAttendanceRecord.staff_id
        )

        document = {
            "students": [export_student(s) for s in students],
            "staff": [export_staff(m) for m in staff],
            "expenses": [export_expense(e) for e in expenses],
            "exams": self._stitch_exams(exams, exam_classes),
            "marks": [export_mark(m) for m in marks],
            "timetable": [export_timetable_entry(t) for t in timetable],
            "classes": [export_class(c) for c in classes],
            "rooms": [export_room(r) for r in rooms],
            "subjects": [export_subject(s) for s in subjects],
            "feeStructures": [export_fee_type(f) for f in fee_types],
            "attendance": self._student_attendance(student_sessions, student_records),
            "staffAttendance": self._staff_attendance(staff_sessions, staff_records),
            "payments": self._stitch_payments(payments, payment_items),
            "exportDate": utc_timestamp(),
        }

        logger.debug(
            f"Exported school {school_id}: {len(students)} students, {len(staff)} staff, "
            f"{len(payments)} payments, {len(student_sessions)} attendance sessions"
        )
        return document

    @staticmethod
    def _stitch_exams(exams: List[Exam], exam_classes: List[ExamClass]) -> List[Dict[str, Any]]:
        class_ids: Dict[str, List[str]] = {}
        for link in exam_classes:
            class_ids.setdefault(link.exam_id, []).append(link.class_id)

        return [
            {
                "id": e.id,
                "name": e.name,
                "academicYear": e.academic_year,
                "term": e.term,
                "startDate": e.start_date,
                "endDate": e.end_date,
                "status": EXAM_STATUS.display(e.status),
                "classes": class_ids.get(e.id, []),
            }
            for e in exams
        ]

    @staticmethod
    def _stitch_payments(payments: List[Payment], items: List[PaymentItem]) -> List[Dict[str, Any]]:
        items_by_payment: Dict[str, List[Dict[str, Any]]] = {}
        for item in items:
            items_by_payment.setdefault(item.payment_id, []).append({
                "lineNo": item.line_no,
                "feeTypeId": item.fee_type_id,
                "description": item.description,
                "amount": item.amount,
            })

        out = []
        for p in payments:
            payment = {
                "id": p.id,
                "studentId": p.student_id,
                "payerName": p.payer_name,
                "paymentMethod": p.payment_method,
                "remark": p.remark,
                "discount": p.discount,
                "totalAmount": p.total_amount,
                "date": p.date,
                "items": items_by_payment.get(p.id, []),
            }
            if p.meta:
                payment["meta"] = p.meta
            out.append(payment)
        return out

    @staticmethod
    def _student_attendance(
        sessions: List[StudentAttendanceSession],
        records: List[StudentAttendanceRecord]
    ) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """date -> classId -> studentId -> {status, remark}"""
        attendance: Dict[str, Dict[str, Dict[str, Any]]] = {}
        by_session = {}
        for session in sessions:
            by_session[session.id] = attendance.setdefault(session.date, {}).setdefault(session.class_id, {})

        for record in records:
            cells = by_session.get(record.session_id)
            if cells is None:
                continue
            cells[record.student_id] = {
                "status": ATTENDANCE_STATUS.display(record.status),
                "remark": record.remark or "",
            }
        return attendance

    @staticmethod
    def _staff_attendance(
        sessions: List[StaffAttendanceSession],
        records: List[StaffAttendanceRecord]
    ) -> Dict[str, Dict[str, Any]]:
        """date -> staffId -> {status, checkIn, checkOut, remark}"""
        attendance: Dict[str, Dict[str, Any]] = {}
        by_session = {session.id: attendance.setdefault(session.date, {}) for session in sessions}

        for record in records:
            cells = by_session.get(record.session_id)
            if cells is None:
                continue
            cells[record.staff_id] = {
                "status": ATTENDANCE_STATUS.display(record.status),
                "checkIn": record.check_in or "",
                "checkOut": record.check_out or "",
                "remark": record.remark or "",
            }
        return attendance
