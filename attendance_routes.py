"""
Attendance Routes
Manual student attendance, biometric device marks and staff attendance
"""

import logging
from datetime import datetime

from flask import request, jsonify, current_app

from database import get_session
from models import Attendance, StaffAttendance, AttendanceStatusEnum, Student, Teacher, User
from attendance_helpers import mark_student_attendance, mark_staff_attendance, send_attendance_alert
from api_helpers import (
    api_endpoint, get_json_body, query_id, get_or_404, ensure_exists, paginate, list_response, deleted_response
)
from validators import (
    ValidationError, NotFoundError, require_fields, parse_id, parse_date, parse_enum, parse_timestamp
)

logger = logging.getLogger(__name__)


def _status(value):
    return parse_enum(AttendanceStatusEnum, value, 'status', 'INVALID_STATUS')


def create_attendance_routes(api_bp):
    """Add attendance routes to the API blueprint"""

    # ===== STUDENT ATTENDANCE =====

    @api_bp.route('/attendance', methods=['GET'])
    @api_endpoint
    def get_attendance():
        session = get_session()
        try:
            if request.args.get('id'):
                record = get_or_404(session, Attendance, query_id(), 'attendance')
                return jsonify(record.to_dict()), 200

            query = session.query(Attendance)
            if request.args.get('studentId'):
                query = query.filter(Attendance.student_id == parse_id(request.args['studentId'], 'INVALID_STUDENT_ID'))
            if request.args.get('date'):
                query = query.filter(Attendance.date == parse_date(request.args['date']))
            if request.args.get('startDate'):
                query = query.filter(Attendance.date >= parse_date(request.args['startDate'], 'startDate'))
            if request.args.get('endDate'):
                query = query.filter(Attendance.date <= parse_date(request.args['endDate'], 'endDate'))
            if request.args.get('status'):
                query = query.filter(Attendance.status == _status(request.args['status']))

            return list_response(paginate(query, Attendance.id))
        finally:
            session.close()

    @api_bp.route('/attendance', methods=['POST'])
    @api_endpoint
    def create_attendance():
        """Mark attendance; an existing (student, date) record is returned with 200"""
        data = get_json_body()
        require_fields(data, 'studentId', 'date', 'status', 'markedBy')

        student_id = parse_id(data['studentId'], 'INVALID_STUDENT_ID', 'student ID')
        marked_by = parse_id(data['markedBy'], 'INVALID_MARKED_BY', 'markedBy')
        on_date = parse_date(data['date'])
        status = _status(data['status'])

        session = get_session()
        try:
            student = ensure_exists(session, Student, student_id, 'student')
            ensure_exists(session, User, marked_by, 'user')

            record, created = mark_student_attendance(
                session, student, on_date, status, marked_by, notes=data.get('notes')
            )
            if not created:
                return jsonify({
                    'message': 'Attendance already marked for this date',
                    'attendance': record.to_dict(),
                }), 200

            notification = send_attendance_alert(session, student, record, marked_by)
            session.commit()
            return jsonify({
                'success': True,
                'attendance': record.to_dict(),
                'notification': notification,
            }), 201
        finally:
            session.close()

    @api_bp.route('/attendance', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_attendance():
        record_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            record = get_or_404(session, Attendance, record_id, 'attendance')
            updated = False

            if 'status' in data:
                record.status = _status(data['status'])
                updated = True
            if 'notes' in data:
                record.notes = data['notes']
                updated = True
            if 'date' in data:
                new_date = parse_date(data['date'])
                clash = session.query(Attendance).filter(
                    Attendance.student_id == record.student_id,
                    Attendance.date == new_date,
                    Attendance.id != record.id,
                ).first()
                if clash:
                    raise ValidationError("Attendance already marked for this date", 'DUPLICATE_ATTENDANCE')
                record.date = new_date
                updated = True
            if 'markedBy' in data:
                record.marked_by = ensure_exists(
                    session, User, parse_id(data['markedBy'], 'INVALID_MARKED_BY'), 'user'
                ).id
                updated = True

            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')

            record.marked_at = datetime.utcnow()
            session.commit()
            return jsonify(record.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/attendance', methods=['DELETE'])
    @api_endpoint
    def delete_attendance():
        record_id = query_id()
        session = get_session()
        try:
            record = get_or_404(session, Attendance, record_id, 'attendance')
            snapshot = record.to_dict()
            session.delete(record)
            session.commit()
            return deleted_response('Attendance', snapshot)
        finally:
            session.close()

    # ===== BIOMETRIC DEVICES =====

    @api_bp.route('/biometric/attendance', methods=['POST'])
    @api_endpoint
    def biometric_attendance():
        """Attendance punch from a biometric device, followed by a WhatsApp alert to the parent"""
        data = get_json_body()
        device_id = str(data.get('deviceId') or '').strip()
        admission_number = str(data.get('studentAdmissionNumber') or '').strip()
        if not device_id or not admission_number:
            raise ValidationError("Device ID and student admission number are required", 'MISSING_REQUIRED_FIELDS')

        status = _status(data.get('status') or 'present')
        punched_at = parse_timestamp(data.get('timestamp'))
        system_user_id = current_app.config.get('SYSTEM_USER_ID', 1)

        session = get_session()
        try:
            student = session.query(Student).filter_by(admission_number=admission_number).first()
            if not student:
                raise NotFoundError("Student not found with this admission number", 'STUDENT_NOT_FOUND')

            record, created = mark_student_attendance(
                session, student, punched_at.date(), status, system_user_id,
                notes='Marked via biometric device', device_id=device_id, marked_at=punched_at,
            )
            if not created:
                return jsonify({
                    'message': 'Attendance already marked for today',
                    'attendance': record.to_dict(),
                }), 200

            notification = send_attendance_alert(session, student, record, system_user_id, marked_at=punched_at)
            session.commit()
            logger.info(f"Biometric attendance from device {device_id} for {admission_number}")
            return jsonify({
                'success': True,
                'message': 'Attendance marked successfully',
                'attendance': record.to_dict(),
                'notification': notification,
            }), 201
        finally:
            session.close()

    @api_bp.route('/biometric/attendance', methods=['GET'])
    def biometric_health():
        return jsonify({
            'status': 'active',
            'endpoint': '/api/biometric/attendance',
            'method': 'POST',
            'requiredFields': ['deviceId', 'studentAdmissionNumber'],
            'optionalFields': ['timestamp', 'status'],
        }), 200

    # ===== STAFF ATTENDANCE =====

    @api_bp.route('/staff-attendance', methods=['GET'])
    @api_endpoint
    def get_staff_attendance():
        session = get_session()
        try:
            if request.args.get('id'):
                record = get_or_404(session, StaffAttendance, query_id(), 'staff_attendance')
                return jsonify(record.to_dict()), 200

            query = session.query(StaffAttendance)
            if request.args.get('teacherId'):
                query = query.filter(StaffAttendance.teacher_id == parse_id(request.args['teacherId'], 'INVALID_TEACHER_ID'))
            if request.args.get('date'):
                query = query.filter(StaffAttendance.date == parse_date(request.args['date'], 'date', 'INVALID_DATE_FORMAT'))
            if request.args.get('status'):
                query = query.filter(StaffAttendance.status == _status(request.args['status']))

            return list_response(paginate(query, StaffAttendance.id))
        finally:
            session.close()

    @api_bp.route('/staff-attendance', methods=['POST'])
    @api_endpoint
    def create_staff_attendance():
        data = get_json_body()
        require_fields(data, 'teacherId', 'date', 'status', 'markedBy')

        teacher_id = parse_id(data['teacherId'], 'INVALID_TEACHER_ID', 'teacher ID')
        marked_by = parse_id(data['markedBy'], 'INVALID_MARKED_BY', 'markedBy')
        on_date = parse_date(data['date'], 'date', 'INVALID_DATE_FORMAT')
        status = _status(data['status'])

        session = get_session()
        try:
            ensure_exists(session, Teacher, teacher_id, 'teacher')
            ensure_exists(session, User, marked_by, 'user')

            record, created = mark_staff_attendance(session, teacher_id, on_date, status, marked_by, data.get('notes'))
            if not created:
                return jsonify({
                    'message': 'Attendance already marked for this date',
                    'attendance': record.to_dict(),
                }), 200

            session.commit()
            return jsonify(record.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/staff-attendance', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_staff_attendance():
        record_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            record = get_or_404(session, StaffAttendance, record_id, 'staff_attendance')
            updated = False

            if 'status' in data:
                record.status = _status(data['status'])
                updated = True
            if 'date' in data:
                record.date = parse_date(data['date'], 'date', 'INVALID_DATE_FORMAT')
                updated = True
            if 'notes' in data:
                record.notes = data['notes']
                updated = True
            if 'teacherId' in data:
                record.teacher_id = ensure_exists(
                    session, Teacher, parse_id(data['teacherId'], 'INVALID_TEACHER_ID'), 'teacher'
                ).id
                updated = True

            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')

            if 'date' in data or 'teacherId' in data:
                with session.no_autoflush:
                    clash = session.query(StaffAttendance).filter(
                        StaffAttendance.teacher_id == record.teacher_id,
                        StaffAttendance.date == record.date,
                        StaffAttendance.id != record.id,
                    ).first()
                if clash:
                    raise ValidationError("Attendance already marked for this date", 'DUPLICATE_ATTENDANCE')

            session.commit()
            return jsonify(record.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/staff-attendance', methods=['DELETE'])
    @api_endpoint
    def delete_staff_attendance():
        record_id = query_id()
        session = get_session()
        try:
            record = get_or_404(session, StaffAttendance, record_id, 'staff_attendance')
            snapshot = record.to_dict()
            session.delete(record)
            session.commit()
            return deleted_response('Staff attendance', snapshot)
        finally:
            session.close()
