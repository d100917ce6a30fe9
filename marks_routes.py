"""
Student Record Routes
Exam marks and teacher remarks
"""

import logging
from datetime import date

from flask import request, jsonify

from database import get_session
from models import Mark, TeacherRemark, RemarkTypeEnum, Student, Subject, Teacher
from api_helpers import (
    api_endpoint, get_json_body, query_id, get_or_404, ensure_exists, paginate, list_response, deleted_response
)
from validators import ValidationError, parse_id, parse_amount, parse_date, parse_enum

logger = logging.getLogger(__name__)


def _require(data, field, code):
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", code)
    return value


def _marks(value, field, code, allow_zero=True):
    return parse_amount(value, field, code, allow_zero=allow_zero)


def _check_marks(obtained, total):
    if obtained > total:
        raise ValidationError("marksObtained cannot be greater than totalMarks", 'MARKS_EXCEED_TOTAL')


def _remark_type(value):
    return parse_enum(RemarkTypeEnum, value, 'remarkType', 'INVALID_REMARK_TYPE')


def create_marks_routes(api_bp):
    """Add marks and teacher remark routes to the API blueprint"""

    # ===== MARKS =====

    @api_bp.route('/marks', methods=['GET'])
    @api_endpoint
    def get_marks():
        session = get_session()
        try:
            if request.args.get('id'):
                mark = get_or_404(session, Mark, query_id(), 'mark')
                return jsonify(mark.to_dict()), 200

            query = session.query(Mark)
            if request.args.get('studentId'):
                query = query.filter(Mark.student_id == parse_id(request.args['studentId'], 'INVALID_STUDENT_ID'))
            if request.args.get('subjectId'):
                query = query.filter(Mark.subject_id == parse_id(request.args['subjectId'], 'INVALID_SUBJECT_ID'))
            if request.args.get('examType'):
                query = query.filter(Mark.exam_type == request.args['examType'].strip())
            return list_response(paginate(query, Mark.id))
        finally:
            session.close()

    @api_bp.route('/marks', methods=['POST'])
    @api_endpoint
    def create_mark():
        data = get_json_body()
        _require(data, 'studentId', 'MISSING_STUDENT_ID')
        _require(data, 'subjectId', 'MISSING_SUBJECT_ID')
        _require(data, 'examType', 'MISSING_EXAM_TYPE')
        _require(data, 'marksObtained', 'MISSING_MARKS_OBTAINED')
        _require(data, 'totalMarks', 'MISSING_TOTAL_MARKS')
        _require(data, 'examDate', 'MISSING_EXAM_DATE')

        student_id = parse_id(data['studentId'], 'INVALID_STUDENT_ID', 'studentId')
        subject_id = parse_id(data['subjectId'], 'INVALID_SUBJECT_ID', 'subjectId')
        obtained = _marks(data['marksObtained'], 'marksObtained', 'INVALID_MARKS_OBTAINED')
        total = _marks(data['totalMarks'], 'totalMarks', 'INVALID_TOTAL_MARKS', allow_zero=False)
        _check_marks(obtained, total)
        exam_date = parse_date(data['examDate'], 'examDate', 'INVALID_EXAM_DATE')

        session = get_session()
        try:
            ensure_exists(session, Student, student_id, 'student')
            ensure_exists(session, Subject, subject_id, 'subject')

            mark = Mark(
                student_id=student_id,
                subject_id=subject_id,
                exam_type=str(data['examType']).strip(),
                marks_obtained=obtained,
                total_marks=total,
                exam_date=exam_date,
                remarks=str(data['remarks']).strip() if data.get('remarks') else None,
            )
            session.add(mark)
            session.commit()
            logger.info(f"Marks {obtained}/{total} recorded for student {student_id}, subject {subject_id}")
            return jsonify(mark.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/marks', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_mark():
        mark_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            mark = get_or_404(session, Mark, mark_id, 'mark')
            updated = False

            if 'studentId' in data:
                mark.student_id = ensure_exists(
                    session, Student, parse_id(data['studentId'], 'INVALID_STUDENT_ID', 'studentId'), 'student'
                ).id
                updated = True
            if 'subjectId' in data:
                mark.subject_id = ensure_exists(
                    session, Subject, parse_id(data['subjectId'], 'INVALID_SUBJECT_ID', 'subjectId'), 'subject'
                ).id
                updated = True
            if 'examType' in data:
                exam_type = str(data['examType'] or '').strip()
                if not exam_type:
                    raise ValidationError("examType cannot be empty", 'INVALID_EXAM_TYPE')
                mark.exam_type = exam_type
                updated = True
            if 'marksObtained' in data:
                mark.marks_obtained = _marks(data['marksObtained'], 'marksObtained', 'INVALID_MARKS_OBTAINED')
                updated = True
            if 'totalMarks' in data:
                mark.total_marks = _marks(data['totalMarks'], 'totalMarks', 'INVALID_TOTAL_MARKS', allow_zero=False)
                updated = True
            if 'examDate' in data:
                mark.exam_date = parse_date(data['examDate'], 'examDate', 'INVALID_EXAM_DATE')
                updated = True
            if 'remarks' in data:
                mark.remarks = str(data['remarks']).strip() if data['remarks'] else None
                updated = True

            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            _check_marks(mark.marks_obtained, mark.total_marks)

            session.commit()
            return jsonify(mark.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/marks', methods=['DELETE'])
    @api_endpoint
    def delete_mark():
        mark_id = query_id()
        session = get_session()
        try:
            mark = get_or_404(session, Mark, mark_id, 'mark')
            snapshot = mark.to_dict()
            session.delete(mark)
            session.commit()
            return deleted_response('Mark entry', snapshot)
        finally:
            session.close()

    # ===== TEACHER REMARKS =====

    @api_bp.route('/teacher-remarks', methods=['GET'])
    @api_endpoint
    def get_teacher_remarks():
        session = get_session()
        try:
            if request.args.get('id'):
                remark = get_or_404(session, TeacherRemark, query_id(), 'remark')
                return jsonify(remark.to_dict()), 200

            query = session.query(TeacherRemark)
            if request.args.get('teacherId'):
                query = query.filter(TeacherRemark.teacher_id == parse_id(request.args['teacherId'], 'INVALID_TEACHER_ID'))
            if request.args.get('studentId'):
                query = query.filter(TeacherRemark.student_id == parse_id(request.args['studentId'], 'INVALID_STUDENT_ID'))
            if request.args.get('remarkType'):
                query = query.filter(TeacherRemark.remark_type == _remark_type(request.args['remarkType']))
            if request.args.get('date'):
                query = query.filter(TeacherRemark.date == parse_date(request.args['date']))
            if request.args.get('startDate'):
                query = query.filter(TeacherRemark.date >= parse_date(request.args['startDate'], 'startDate'))
            if request.args.get('endDate'):
                query = query.filter(TeacherRemark.date <= parse_date(request.args['endDate'], 'endDate'))
            return list_response(paginate(query, TeacherRemark.id))
        finally:
            session.close()

    @api_bp.route('/teacher-remarks', methods=['POST'])
    @api_endpoint
    def create_teacher_remark():
        data = get_json_body()
        _require(data, 'teacherId', 'MISSING_TEACHER_ID')
        _require(data, 'studentId', 'MISSING_STUDENT_ID')
        _require(data, 'remarkText', 'MISSING_REMARK_TEXT')
        _require(data, 'remarkType', 'MISSING_REMARK_TYPE')

        teacher_id = parse_id(data['teacherId'], 'INVALID_TEACHER_ID', 'teacherId')
        student_id = parse_id(data['studentId'], 'INVALID_STUDENT_ID', 'studentId')
        remark_type = _remark_type(data['remarkType'])
        remark_date = parse_date(data['date']) if data.get('date') else date.today()

        session = get_session()
        try:
            ensure_exists(session, Teacher, teacher_id, 'teacher')
            ensure_exists(session, Student, student_id, 'student')
            subject_id = None
            if data.get('subjectId') is not None:
                subject_id = ensure_exists(
                    session, Subject, parse_id(data['subjectId'], 'INVALID_SUBJECT_ID', 'subjectId'), 'subject'
                ).id

            remark = TeacherRemark(
                teacher_id=teacher_id,
                student_id=student_id,
                subject_id=subject_id,
                remark_text=str(data['remarkText']).strip(),
                remark_type=remark_type,
                date=remark_date,
            )
            session.add(remark)
            session.commit()
            return jsonify(remark.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/teacher-remarks', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_teacher_remark():
        remark_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            remark = get_or_404(session, TeacherRemark, remark_id, 'remark')
            updated = False

            if 'remarkText' in data:
                text = str(data['remarkText'] or '').strip()
                if not text:
                    raise ValidationError("remarkText cannot be empty", 'INVALID_REMARK_TEXT')
                remark.remark_text = text
                updated = True
            if 'remarkType' in data:
                remark.remark_type = _remark_type(data['remarkType'])
                updated = True
            if 'date' in data:
                remark.date = parse_date(data['date'])
                updated = True
            if 'subjectId' in data:
                remark.subject_id = None if data['subjectId'] is None else ensure_exists(
                    session, Subject, parse_id(data['subjectId'], 'INVALID_SUBJECT_ID', 'subjectId'), 'subject'
                ).id
                updated = True

            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(remark.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/teacher-remarks', methods=['DELETE'])
    @api_endpoint
    def delete_teacher_remark():
        remark_id = query_id()
        session = get_session()
        try:
            remark = get_or_404(session, TeacherRemark, remark_id, 'remark')
            snapshot = remark.to_dict()
            session.delete(remark)
            session.commit()
            return deleted_response('Remark', snapshot)
        finally:
            session.close()
