"""
Leave Management Models
Teacher leave requests and their review state
"""

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Date, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from models import Base, enum_column, iso


class LeaveStatusEnum(enum.Enum):
    """Leave request status enumeration"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TeacherLeaveRequest(Base):
    """Leave applied for by a teacher; reviewed once by an admin"""
    __tablename__ = 'teacher_leave_requests'
    __table_args__ = (
        Index('idx_leave_teacher', 'teacher_id'),
        Index('idx_leave_status', 'status'),
    )

    id = Column(Integer, primary_key=True)
    teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=False)
    status = enum_column(LeaveStatusEnum, nullable=False, default=LeaveStatusEnum.PENDING)
    requested_at = Column(DateTime, default=datetime.utcnow)
    reviewed_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    teacher = relationship("Teacher")

    @property
    def total_days(self):
        return (self.end_date - self.start_date).days + 1

    def to_dict(self):
        """Convert to dictionary for JSON responses"""
        return {
            'id': self.id,
            'teacherId': self.teacher_id,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'totalDays': self.total_days,
            'reason': self.reason,
            'status': self.status.value if self.status else None,
            'requestedAt': iso(self.requested_at),
            'reviewedBy': self.reviewed_by,
            'reviewedAt': iso(self.reviewed_at),
        }

    def __repr__(self):
        return f"<TeacherLeaveRequest teacher={self.teacher_id} {self.start_date}..{self.end_date} {self.status.value if self.status else None}>"
