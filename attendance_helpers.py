"""
Attendance Helper Functions
Marking student/staff attendance and the parent WhatsApp alert
"""

import logging
from datetime import datetime, date
from sqlalchemy.orm import Session

from models import Attendance, StaffAttendance, AttendanceStatusEnum, Student, StudentParent, Setting
from notification_models import RecipientTypeEnum
from whatsapp_helper import send_whatsapp_message

logger = logging.getLogger(__name__)

ATTENDANCE_TEMPLATE_KEY = 'whatsapp_attendance_template'

DEFAULT_ATTENDANCE_TEMPLATE = (
    "🎓 School Attendance Alert\n\n"
    "Your ward [Student Name] ([Admission No]) has been marked [Status].\n\n"
    "⏰ Time: [HH:MM AM/PM]\n"
    "📅 Date: [DD/MM/YYYY]\n"
    "✅ Status: [Status]\n\n"
    "Thank you!\n- School Management"
)


# ===== MARKING =====

def mark_student_attendance(session: Session, student: Student, on_date: date,
                            status: AttendanceStatusEnum, marked_by: int,
                            notes: str = None, device_id: str = None, marked_at: datetime = None):
    """
    Mark attendance once per (student, date).

    Returns:
        tuple: (attendance record, created) - created is False when the
        existing record was returned unchanged
    """
    existing = session.query(Attendance).filter_by(student_id=student.id, date=on_date).first()
    if existing:
        logger.info(f"Attendance already marked for student {student.admission_number} on {on_date}")
        return existing, False

    record = Attendance(
        student_id=student.id,
        date=on_date,
        status=status,
        marked_by=marked_by,
        marked_at=marked_at or datetime.utcnow(),
        notes=notes,
        biometric_device_id=device_id,
    )
    session.add(record)
    session.flush()
    logger.info(f"Attendance {status.value} marked for student {student.admission_number} on {on_date}")
    return record, True


def mark_staff_attendance(session: Session, teacher_id: int, on_date: date,
                          status: AttendanceStatusEnum, marked_by: int, notes: str = None):
    existing = session.query(StaffAttendance).filter_by(teacher_id=teacher_id, date=on_date).first()
    if existing:
        return existing, False

    record = StaffAttendance(
        teacher_id=teacher_id,
        date=on_date,
        status=status,
        marked_by=marked_by,
        marked_at=datetime.utcnow(),
        notes=notes,
    )
    session.add(record)
    session.flush()
    return record, True


# ===== PARENT ALERT =====

def resolve_parent_contact(session: Session, student: Student):
    """
    Phone of the primary (else any) linked parent, falling back to the
    number stored on the student.

    Returns:
        tuple: (phone or None, parent user id or None)
    """
    link = session.query(StudentParent).filter_by(
        student_id=student.id
    ).order_by(StudentParent.is_primary.desc(), StudentParent.id).first()

    parent_user_id = None
    if link and link.parent and link.parent.user:
        parent_user_id = link.parent.user.id
        if link.parent.user.phone:
            return link.parent.user.phone, parent_user_id

    return student.parent_mobile_number or None, parent_user_id


def get_attendance_template(session: Session) -> str:
    setting = session.query(Setting).filter_by(key=ATTENDANCE_TEMPLATE_KEY).first()
    if setting and setting.value:
        return setting.value
    return DEFAULT_ATTENDANCE_TEMPLATE


def render_attendance_message(template: str, student_name: str, admission_number: str,
                              marked_at: datetime, status: str) -> str:
    """Fill the attendance placeholders; a literal PRESENT also takes the status"""
    status_text = status.upper()
    replacements = [
        ('[Student Name]', student_name or 'Student'),
        ('[Admission No]', admission_number),
        ('[HH:MM AM/PM]', marked_at.strftime('%I:%M %p')),
        ('[DD/MM/YYYY]', marked_at.strftime('%d/%m/%Y')),
        ('[Status]', status_text),
        ('PRESENT', status_text),
    ]
    message = template
    for placeholder, value in replacements:
        message = message.replace(placeholder, value)
    return message


def send_attendance_alert(session: Session, student: Student, attendance: Attendance,
                          sent_by: int, marked_at: datetime = None) -> dict:
    """Queue the parent WhatsApp alert; returns the notification summary for the response"""
    phone, parent_user_id = resolve_parent_contact(session, student)
    if not phone:
        logger.warning(f"No parent phone for student {student.admission_number}, alert skipped")
        return {'sent': False, 'method': 'WhatsApp', 'recipient': 'Parent', 'phone': None, 'message': None}

    marked_at = marked_at or datetime.now()
    message = render_attendance_message(
        get_attendance_template(session),
        student.full_name,
        student.admission_number,
        marked_at,
        attendance.status.value,
    )
    record = send_whatsapp_message(
        session, phone, message, sent_by,
        recipient_type=RecipientTypeEnum.INDIVIDUAL,
        recipient_id=parent_user_id,
    )
    return {
        'sent': record.status.value == 'sent',
        'method': 'WhatsApp',
        'recipient': 'Parent',
        'phone': phone,
        'message': message,
    }
