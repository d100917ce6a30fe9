"""
Teacher Leave Routes
Leave applications, admin review and withdrawal of pending requests
"""

import logging
from datetime import datetime

from flask import request, jsonify

from database import get_session
from models import Teacher, User
from leave_models import TeacherLeaveRequest, LeaveStatusEnum
from notification_models import NotificationTypeEnum
from fee_helpers import notify_admins, notify_user
from api_helpers import (
    api_endpoint, get_json_body, query_id, get_or_404, ensure_exists, paginate, list_response, deleted_response
)
from validators import ValidationError, parse_id, parse_date, parse_enum

logger = logging.getLogger(__name__)

REVIEWED_STATUSES = (LeaveStatusEnum.APPROVED, LeaveStatusEnum.REJECTED)


def _leave_status(value):
    return parse_enum(LeaveStatusEnum, value, 'status', 'INVALID_STATUS')


def _reviewer(session, value):
    reviewer_id = parse_id(value, 'INVALID_REVIEWER_ID', 'reviewer ID')
    return ensure_exists(session, User, reviewer_id, 'reviewer').id


def _check_range(start_date, end_date):
    if end_date < start_date:
        raise ValidationError("endDate cannot be before startDate", 'INVALID_DATE_RANGE')


def create_leave_routes(api_bp):
    """Add teacher leave request routes to the API blueprint"""

    @api_bp.route('/teacher-leave-requests', methods=['GET'])
    @api_endpoint
    def get_leave_requests():
        session = get_session()
        try:
            if request.args.get('id'):
                leave = get_or_404(session, TeacherLeaveRequest, query_id(), 'leave_request')
                return jsonify(leave.to_dict()), 200

            query = session.query(TeacherLeaveRequest)
            if request.args.get('status'):
                query = query.filter(TeacherLeaveRequest.status == _leave_status(request.args['status']))
            if request.args.get('teacherId'):
                query = query.filter(TeacherLeaveRequest.teacher_id == parse_id(request.args['teacherId'], 'INVALID_TEACHER_ID'))
            if request.args.get('startDate'):
                query = query.filter(TeacherLeaveRequest.start_date >= parse_date(
                    request.args['startDate'], 'startDate', 'INVALID_START_DATE'))
            if request.args.get('endDate'):
                query = query.filter(TeacherLeaveRequest.end_date <= parse_date(
                    request.args['endDate'], 'endDate', 'INVALID_END_DATE'))
            return list_response(paginate(query, TeacherLeaveRequest.requested_at))
        finally:
            session.close()

    @api_bp.route('/teacher-leave-requests', methods=['POST'])
    @api_endpoint
    def apply_leave():
        data = get_json_body()
        for field, code in (('teacherId', 'MISSING_TEACHER_ID'), ('startDate', 'MISSING_START_DATE'),
                            ('endDate', 'MISSING_END_DATE'), ('reason', 'MISSING_REASON')):
            value = data.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{field} is required", code)

        teacher_id = parse_id(data['teacherId'], 'INVALID_TEACHER_ID', 'teacher ID')
        start_date = parse_date(data['startDate'], 'startDate', 'INVALID_START_DATE')
        end_date = parse_date(data['endDate'], 'endDate', 'INVALID_END_DATE')
        _check_range(start_date, end_date)

        session = get_session()
        try:
            teacher = ensure_exists(session, Teacher, teacher_id, 'teacher')
            leave = TeacherLeaveRequest(
                teacher_id=teacher_id,
                start_date=start_date,
                end_date=end_date,
                reason=str(data['reason']).strip(),
                status=LeaveStatusEnum.PENDING,
                requested_at=datetime.utcnow(),
            )
            session.add(leave)
            session.flush()

            teacher_name = teacher.user.full_name if teacher.user else teacher.employee_id
            notify_admins(
                session, 'Leave Request',
                f"{teacher_name} requested leave from {start_date.isoformat()} to {end_date.isoformat()} "
                f"({leave.total_days} days)",
                NotificationTypeEnum.GENERAL,
            )
            session.commit()
            logger.info(f"Leave applied: teacher_id={teacher_id}, {start_date}..{end_date}")
            return jsonify(leave.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/teacher-leave-requests', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_leave_request():
        leave_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            leave = get_or_404(session, TeacherLeaveRequest, leave_id, 'leave_request')
            updated = False
            reviewed = False

            if 'status' in data:
                status = _leave_status(data['status'])
                if status in REVIEWED_STATUSES:
                    if data.get('reviewedBy') in (None, ''):
                        raise ValidationError("Reviewer ID is required when approving or rejecting", 'MISSING_REVIEWER')
                    leave.reviewed_by = _reviewer(session, data['reviewedBy'])
                    leave.reviewed_at = datetime.utcnow()
                    reviewed = status != leave.status
                leave.status = status
                updated = True
            elif data.get('reviewedBy') not in (None, ''):
                leave.reviewed_by = _reviewer(session, data['reviewedBy'])
                updated = True

            if 'startDate' in data:
                leave.start_date = parse_date(data['startDate'], 'startDate', 'INVALID_START_DATE')
                updated = True
            if 'endDate' in data:
                leave.end_date = parse_date(data['endDate'], 'endDate', 'INVALID_END_DATE')
                updated = True
            if 'reason' in data:
                reason = str(data['reason'] or '').strip()
                if not reason:
                    raise ValidationError("reason cannot be empty", 'EMPTY_REASON')
                leave.reason = reason
                updated = True

            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            _check_range(leave.start_date, leave.end_date)

            if reviewed:
                teacher = session.get(Teacher, leave.teacher_id)
                notify_user(
                    session, teacher.user_id if teacher else None, f"Leave {leave.status.value.capitalize()}",
                    f"Your leave from {leave.start_date.isoformat()} to {leave.end_date.isoformat()} "
                    f"has been {leave.status.value}",
                    NotificationTypeEnum.GENERAL,
                )
                logger.info(f"Leave {leave.status.value}: leave_id={leave.id} by user={leave.reviewed_by}")

            session.commit()
            return jsonify(leave.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/teacher-leave-requests', methods=['DELETE'])
    @api_endpoint
    def delete_leave_request():
        leave_id = query_id()
        session = get_session()
        try:
            leave = get_or_404(session, TeacherLeaveRequest, leave_id, 'leave_request')
            if leave.status != LeaveStatusEnum.PENDING:
                raise ValidationError("Cannot delete leave request that has been approved or rejected",
                                      'CANNOT_DELETE_PROCESSED_REQUEST')
            snapshot = leave.to_dict()
            session.delete(leave)
            session.commit()
            return deleted_response('Leave request', snapshot)
        finally:
            session.close()
