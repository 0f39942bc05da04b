"""
Dataset Importer

Replaces one school's relational state with the content of a client dataset
document. The caller owns the transaction: nothing here commits, so a failure
anywhere leaves the session ready to be rolled back as a whole.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Set

from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsync.models import (
    Student, Staff, Room, ClassGroup, Subject, TimetableEntry,
    Exam, ExamClass, ExamResult, FeeType, Expense, Payment, PaymentItem,
    StudentAttendanceSession, StudentAttendanceRecord,
    StaffAttendanceSession, StaffAttendanceRecord
)
from .records import (
    DecodedDataset, decode_dataset,
    StaffRecord, RoomRecord, ClassGroupRecord, SubjectRecord, StudentRecord, ExamRecord
)

logger = logging.getLogger(__name__)

# Children before parents
DELETE_ORDER = (
    PaymentItem,
    Payment,
    ExamResult,
    ExamClass,
    Exam,
    TimetableEntry,
    StudentAttendanceRecord,
    StudentAttendanceSession,
    StaffAttendanceRecord,
    StaffAttendanceSession,
    Student,
    ClassGroup,
    Room,
    Subject,
    Staff,
    FeeType,
    Expense,
)


def _missing(wanted: Iterable[Any], known: Iterable[Any]) -> List[str]:
    """Referenced ids absent from ``known``, in first-seen order."""
    known_ids = set(known)
    missing: List[str] = []
    for ref in wanted:
        if ref is not None and ref not in known_ids and ref not in missing:
            missing.append(ref)
    return missing


def backfill_references(dataset: DecodedDataset) -> Dict[str, int]:
    """
    Append placeholder rows for every id referenced but not supplied.

    Returns the number of placeholders added per collection.
    """
    added: Dict[str, int] = {}

    def extend(name, records, factory, wanted):
        ids = _missing(wanted, (record.id for record in records))
        records.extend(factory(ref) for ref in ids)
        if ids:
            added[name] = len(ids)
            logger.debug(f"Backfilled {len(ids)} placeholder {name}: {ids}")

    class_refs = [entry.class_id for entry in dataset.timetable]
    class_refs += [class_id for exam in dataset.exams for class_id in exam.class_ids]
    class_refs += [sheet.class_id for sheet in dataset.attendance]
    extend("classes", dataset.classes, ClassGroupRecord.placeholder, class_refs)

    staff_refs = [group.teacher_id for group in dataset.classes]
    staff_refs += [entry.teacher_id for entry in dataset.timetable]
    staff_refs += [entry.staff_id for sheet in dataset.staff_attendance for entry in sheet.entries]
    extend("staff", dataset.staff, StaffRecord.placeholder, staff_refs)

    extend("rooms", dataset.rooms, RoomRecord.placeholder, (group.room_id for group in dataset.classes))

    subject_refs = [entry.subject_id for entry in dataset.timetable]
    subject_refs += [mark.subject_id for mark in dataset.marks]
    extend("subjects", dataset.subjects, SubjectRecord.placeholder, subject_refs)

    extend("exams", dataset.exams, ExamRecord.placeholder, (mark.exam_id for mark in dataset.marks))

    student_refs = [mark.student_id for mark in dataset.marks]
    student_refs += [payment.student_id for payment in dataset.payments]
    extend("students", dataset.students, StudentRecord.placeholder, student_refs)

    fee_type_ids: Set[str] = {fee_type.id for fee_type in dataset.fee_types}
    for payment in dataset.payments:
        for item in payment.items:
            if item.fee_type_id is not None and item.fee_type_id not in fee_type_ids:
                logger.debug(f"Payment {payment.id} line {item.line_no} references unknown fee type {item.fee_type_id}")
                item.fee_type_id = None

    return added


class DatasetImporter:
    """
    Wholesale delete-then-insert of a school's entities.

    Args:
        db: Session whose transaction the import joins
        batch_size: Maximum rows per INSERT statement
    """

    def __init__(self, db: AsyncSession, batch_size: int = 500):
        self.db = db
        self.batch_size = max(1, batch_size)

    async def import_dataset(self, school_id: str, document: Any) -> Dict[str, int]:
        """
        Replace every row owned by ``school_id`` with the document's content.

        Returns:
            Inserted row counts keyed by table name
        """
        dataset = decode_dataset(document)
        placeholders = backfill_references(dataset)
        if placeholders:
            logger.info(f"School {school_id}: added placeholder references {placeholders}")

        await self._delete_all(school_id)
        counts = await self._insert_all(school_id, dataset)

        logger.info(f"School {school_id}: imported {sum(counts.values())} rows")
        return counts

    async def _delete_all(self, school_id: str) -> None:
        for model in DELETE_ORDER:
            await self.db.execute(delete(model).where(model.school_id == school_id))

    async def _insert_all(self, school_id: str, dataset: DecodedDataset) -> Dict[str, int]:
        counts: Dict[str, int] = {}

        async def put(model, rows):
            await self._bulk_insert(model, rows)
            counts[model.__tablename__] = len(rows)

        def positioned(records):
            return [record.to_row(school_id, index) for index, record in enumerate(records)]

        await put(Staff, positioned(dataset.staff))
        await put(Room, positioned(dataset.rooms))
        await put(ClassGroup, positioned(dataset.classes))
        await put(Subject, positioned(dataset.subjects))
        await put(Student, positioned(dataset.students))
        await put(TimetableEntry, positioned(dataset.timetable))
        await put(Exam, positioned(dataset.exams))
        await put(ExamClass, [
            {"school_id": school_id, "exam_id": exam.id, "class_id": class_id, "position": index}
            for exam in dataset.exams
            for index, class_id in enumerate(exam.class_ids)
        ])
        await put(ExamResult, positioned(dataset.marks))
        await put(FeeType, positioned(dataset.fee_types))
        await put(Expense, positioned(dataset.expenses))
        await put(Payment, positioned(dataset.payments))
        await put(PaymentItem, [
            item.to_row(school_id, payment.id)
            for payment in dataset.payments
            for item in payment.items
        ])

        sessions, records = [], []
        for index, sheet in enumerate(dataset.attendance):
            session_id = str(uuid.uuid4())
            sessions.append({
                "id": session_id, "school_id": school_id,
                "date": sheet.date, "class_id": sheet.class_id, "position": index
            })
            records.extend({
                "session_id": session_id, "school_id": school_id, "student_id": entry.student_id,
                "status": entry.status, "remark": entry.remark
            } for entry in sheet.entries)
        await put(StudentAttendanceSession, sessions)
        await put(StudentAttendanceRecord, records)

        sessions, records = [], []
        for index, sheet in enumerate(dataset.staff_attendance):
            session_id = str(uuid.uuid4())
            sessions.append({"id": session_id, "school_id": school_id, "date": sheet.date, "position": index})
            records.extend({
                "session_id": session_id, "school_id": school_id, "staff_id": entry.staff_id,
                "status": entry.status, "check_in": entry.check_in,
                "check_out": entry.check_out, "remark": entry.remark
            } for entry in sheet.entries)
        await put(StaffAttendanceSession, sessions)
        await put(StaffAttendanceRecord, records)

        return counts

    async def _bulk_insert(self, model, rows: List[Dict[str, Any]]) -> None:
        for start in range(0, len(rows), self.batch_size):
            await self.db.execute(insert(model), rows[start:start + self.batch_size])
