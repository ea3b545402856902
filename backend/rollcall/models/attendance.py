"""Attendance record model."""
from datetime import timezone

from rollcall import db
from rollcall.models.base import BaseModel
from rollcall.services.attendance_ledger import AttendanceEntry


class AttendanceRecord(BaseModel):
    """One verified scan. Rows are inserted once and never updated."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'student_id', name='uq_attendance_session_student'),
    )

    session_id = db.Column(db.String(64), nullable=False, index=True)
    student_id = db.Column(db.String(128), nullable=False)
    subject_ref = db.Column(db.String(128), nullable=True, index=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False)

    @classmethod
    def find(cls, session_id: str, student_id: str):
        return cls.query.filter_by(session_id=session_id, student_id=student_id).first()

    def to_entry(self) -> AttendanceEntry:
        recorded_at = self.recorded_at
        # SQLite hands back naive datetimes; stored values are always UTC
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)

        return AttendanceEntry(
            session_id=self.session_id,
            student_id=self.student_id,
            recorded_at=recorded_at,
            subject_ref=self.subject_ref
        )

    def __repr__(self):
        return f'<AttendanceRecord {self.session_id}-{self.student_id}>'
