"""
Academic Structure Routes
Academic years, classes, sections and subjects
"""

import logging

from flask import request, jsonify

from database import get_session
from models import AcademicYear, Class, Section, Subject, Teacher, Mark, TeacherRemark
from api_helpers import (
    api_endpoint, get_json_body, query_id, get_or_404, ensure_exists, paginate, list_response, deleted_response,
    ensure_unreferenced
)
from validators import ValidationError, require_fields, parse_id, parse_date, parse_bool

logger = logging.getLogger(__name__)


def _text(data, field):
    value = str(data.get(field) or '').strip()
    if not value:
        raise ValidationError(f"{field} cannot be empty", f"INVALID_{field.upper()}")
    return value


def _unset_other_current_years(session, keep_id):
    session.query(AcademicYear).filter(
        AcademicYear.id != keep_id, AcademicYear.is_current.is_(True)
    ).update({AcademicYear.is_current: False}, synchronize_session=False)


def create_academic_routes(api_bp):
    """Add academic structure routes to the API blueprint"""

    # ===== ACADEMIC YEARS =====

    @api_bp.route('/academic-years', methods=['GET'])
    @api_endpoint
    def get_academic_years():
        session = get_session()
        try:
            if request.args.get('id'):
                year = get_or_404(session, AcademicYear, query_id(), 'academic_year')
                return jsonify(year.to_dict()), 200

            query = session.query(AcademicYear)
            if request.args.get('isCurrent'):
                query = query.filter(AcademicYear.is_current == parse_bool(request.args['isCurrent'], 'isCurrent'))
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(AcademicYear.year_name.ilike(f'%{search}%'))
            return list_response(paginate(query, AcademicYear.id))
        finally:
            session.close()

    @api_bp.route('/academic-years', methods=['POST'])
    @api_endpoint
    def create_academic_year():
        data = get_json_body()
        require_fields(data, 'yearName', 'startDate', 'endDate')
        start = parse_date(data['startDate'], 'startDate')
        end = parse_date(data['endDate'], 'endDate')
        if end <= start:
            raise ValidationError("endDate must be after startDate", 'INVALID_DATE_RANGE')
        is_current = parse_bool(data.get('isCurrent', False), 'isCurrent')

        session = get_session()
        try:
            year = AcademicYear(year_name=_text(data, 'yearName'), start_date=start, end_date=end, is_current=is_current)
            session.add(year)
            session.flush()
            if is_current:
                _unset_other_current_years(session, year.id)
            session.commit()
            return jsonify(year.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/academic-years', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_academic_year():
        year_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            year = get_or_404(session, AcademicYear, year_id, 'academic_year')
            updated = False
            if 'yearName' in data:
                year.year_name = _text(data, 'yearName')
                updated = True
            if 'startDate' in data:
                year.start_date = parse_date(data['startDate'], 'startDate')
                updated = True
            if 'endDate' in data:
                year.end_date = parse_date(data['endDate'], 'endDate')
                updated = True
            if 'isCurrent' in data:
                year.is_current = parse_bool(data['isCurrent'], 'isCurrent')
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            if year.end_date <= year.start_date:
                raise ValidationError("endDate must be after startDate", 'INVALID_DATE_RANGE')
            if year.is_current:
                _unset_other_current_years(session, year.id)
            session.commit()
            return jsonify(year.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/academic-years', methods=['DELETE'])
    @api_endpoint
    def delete_academic_year():
        year_id = query_id()
        session = get_session()
        try:
            year = get_or_404(session, AcademicYear, year_id, 'academic_year')
            if session.query(Class).filter_by(academic_year_id=year.id).first():
                raise ValidationError("Academic year has classes and cannot be deleted", 'ACADEMIC_YEAR_IN_USE')
            snapshot = year.to_dict()
            session.delete(year)
            session.commit()
            return deleted_response('Academic year', snapshot)
        finally:
            session.close()

    # ===== CLASSES =====

    @api_bp.route('/classes', methods=['GET'])
    @api_endpoint
    def get_classes():
        session = get_session()
        try:
            if request.args.get('id'):
                school_class = get_or_404(session, Class, query_id(), 'class')
                return jsonify(school_class.to_dict()), 200

            query = session.query(Class)
            if request.args.get('academicYearId'):
                query = query.filter(Class.academic_year_id == parse_id(request.args['academicYearId'], 'INVALID_ACADEMIC_YEAR_ID'))
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(Class.class_name.ilike(f'%{search}%'))
            return list_response(paginate(query, Class.id))
        finally:
            session.close()

    @api_bp.route('/classes', methods=['POST'])
    @api_endpoint
    def create_class():
        data = get_json_body()
        require_fields(data, 'className', 'academicYearId')
        academic_year_id = parse_id(data['academicYearId'], 'INVALID_ACADEMIC_YEAR_ID', 'academic year ID')

        session = get_session()
        try:
            ensure_exists(session, AcademicYear, academic_year_id, 'academic_year')
            class_name = _text(data, 'className')
            if session.query(Class).filter_by(class_name=class_name, academic_year_id=academic_year_id).first():
                raise ValidationError("Class already exists for this academic year", 'DUPLICATE_CLASS')
            school_class = Class(class_name=class_name, academic_year_id=academic_year_id)
            session.add(school_class)
            session.commit()
            return jsonify(school_class.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/classes', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_class():
        class_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            school_class = get_or_404(session, Class, class_id, 'class')
            updated = False
            if 'className' in data:
                school_class.class_name = _text(data, 'className')
                updated = True
            if 'academicYearId' in data:
                school_class.academic_year_id = ensure_exists(
                    session, AcademicYear, parse_id(data['academicYearId'], 'INVALID_ACADEMIC_YEAR_ID'), 'academic_year'
                ).id
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(school_class.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/classes', methods=['DELETE'])
    @api_endpoint
    def delete_class():
        class_id = query_id()
        session = get_session()
        try:
            school_class = get_or_404(session, Class, class_id, 'class')
            if session.query(Section).filter_by(class_id=school_class.id).first():
                raise ValidationError("Class has sections and cannot be deleted", 'CLASS_IN_USE')
            snapshot = school_class.to_dict()
            session.delete(school_class)
            session.commit()
            return deleted_response('Class', snapshot)
        finally:
            session.close()

    # ===== SECTIONS =====

    @api_bp.route('/sections', methods=['GET'])
    @api_endpoint
    def get_sections():
        session = get_session()
        try:
            if request.args.get('id'):
                section = get_or_404(session, Section, query_id(), 'section')
                return jsonify(section.to_dict()), 200

            query = session.query(Section)
            if request.args.get('classId'):
                query = query.filter(Section.class_id == parse_id(request.args['classId'], 'INVALID_CLASS_ID'))
            if request.args.get('classTeacherId'):
                query = query.filter(Section.class_teacher_id == parse_id(request.args['classTeacherId'], 'INVALID_TEACHER_ID'))
            return list_response(paginate(query, Section.id))
        finally:
            session.close()

    @api_bp.route('/sections', methods=['POST'])
    @api_endpoint
    def create_section():
        data = get_json_body()
        require_fields(data, 'sectionName', 'classId')
        class_id = parse_id(data['classId'], 'INVALID_CLASS_ID', 'class ID')

        session = get_session()
        try:
            ensure_exists(session, Class, class_id, 'class')
            teacher_id = None
            if data.get('classTeacherId') is not None:
                teacher_id = ensure_exists(
                    session, Teacher, parse_id(data['classTeacherId'], 'INVALID_TEACHER_ID'), 'teacher'
                ).id
            section_name = _text(data, 'sectionName')
            if session.query(Section).filter_by(section_name=section_name, class_id=class_id).first():
                raise ValidationError("Section already exists in this class", 'DUPLICATE_SECTION')

            section = Section(section_name=section_name, class_id=class_id, class_teacher_id=teacher_id)
            session.add(section)
            session.commit()
            return jsonify(section.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/sections', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_section():
        section_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            section = get_or_404(session, Section, section_id, 'section')
            updated = False
            if 'sectionName' in data:
                section.section_name = _text(data, 'sectionName')
                updated = True
            if 'classId' in data:
                section.class_id = ensure_exists(
                    session, Class, parse_id(data['classId'], 'INVALID_CLASS_ID'), 'class'
                ).id
                updated = True
            if 'classTeacherId' in data:
                section.class_teacher_id = None if data['classTeacherId'] is None else ensure_exists(
                    session, Teacher, parse_id(data['classTeacherId'], 'INVALID_TEACHER_ID'), 'teacher'
                ).id
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(section.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/sections', methods=['DELETE'])
    @api_endpoint
    def delete_section():
        section_id = query_id()
        session = get_session()
        try:
            section = get_or_404(session, Section, section_id, 'section')
            snapshot = section.to_dict()
            session.delete(section)
            session.commit()
            return deleted_response('Section', snapshot)
        finally:
            session.close()

    # ===== SUBJECTS =====

    @api_bp.route('/subjects', methods=['GET'])
    @api_endpoint
    def get_subjects():
        session = get_session()
        try:
            if request.args.get('id'):
                subject = get_or_404(session, Subject, query_id(), 'subject')
                return jsonify(subject.to_dict()), 200

            query = session.query(Subject)
            if request.args.get('classId'):
                query = query.filter(Subject.class_id == parse_id(request.args['classId'], 'INVALID_CLASS_ID'))
            if request.args.get('teacherId'):
                query = query.filter(Subject.teacher_id == parse_id(request.args['teacherId'], 'INVALID_TEACHER_ID'))
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(Subject.subject_name.ilike(f'%{search}%') | Subject.subject_code.ilike(f'%{search}%'))
            return list_response(paginate(query, Subject.id))
        finally:
            session.close()

    @api_bp.route('/subjects', methods=['POST'])
    @api_endpoint
    def create_subject():
        data = get_json_body()
        require_fields(data, 'subjectName', 'subjectCode', 'classId')
        class_id = parse_id(data['classId'], 'INVALID_CLASS_ID', 'class ID')
        code = _text(data, 'subjectCode').upper()

        session = get_session()
        try:
            ensure_exists(session, Class, class_id, 'class')
            teacher_id = None
            if data.get('teacherId') is not None:
                teacher_id = ensure_exists(
                    session, Teacher, parse_id(data['teacherId'], 'INVALID_TEACHER_ID'), 'teacher'
                ).id
            if session.query(Subject).filter_by(subject_code=code).first():
                raise ValidationError("Subject code already exists", 'DUPLICATE_SUBJECT_CODE')

            subject = Subject(subject_name=_text(data, 'subjectName'), subject_code=code,
                              class_id=class_id, teacher_id=teacher_id)
            session.add(subject)
            session.commit()
            return jsonify(subject.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/subjects', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_subject():
        subject_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            subject = get_or_404(session, Subject, subject_id, 'subject')
            updated = False
            if 'subjectName' in data:
                subject.subject_name = _text(data, 'subjectName')
                updated = True
            if 'subjectCode' in data:
                code = _text(data, 'subjectCode').upper()
                clash = session.query(Subject).filter(Subject.subject_code == code, Subject.id != subject.id).first()
                if clash:
                    raise ValidationError("Subject code already exists", 'DUPLICATE_SUBJECT_CODE')
                subject.subject_code = code
                updated = True
            if 'classId' in data:
                subject.class_id = ensure_exists(
                    session, Class, parse_id(data['classId'], 'INVALID_CLASS_ID'), 'class'
                ).id
                updated = True
            if 'teacherId' in data:
                subject.teacher_id = None if data['teacherId'] is None else ensure_exists(
                    session, Teacher, parse_id(data['teacherId'], 'INVALID_TEACHER_ID'), 'teacher'
                ).id
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(subject.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/subjects', methods=['DELETE'])
    @api_endpoint
    def delete_subject():
        subject_id = query_id()
        session = get_session()
        try:
            subject = get_or_404(session, Subject, subject_id, 'subject')
            ensure_unreferenced(session, 'Subject', 'SUBJECT_IN_USE', (
                ('marks', Mark, Mark.subject_id == subject.id),
                ('teacher remarks', TeacherRemark, TeacherRemark.subject_id == subject.id),
            ))
            snapshot = subject.to_dict()
            session.delete(subject)
            session.commit()
            return deleted_response('Subject', snapshot)
        finally:
            session.close()
