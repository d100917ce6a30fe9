"""
People Routes
Users, teachers, students, parents and student-parent links
"""

import logging

from flask import request, jsonify

from database import get_session
from models import (
    User, Teacher, Student, Parent, StudentParent, Section, Subject, Attendance, StaffAttendance, Mark,
    TeacherRemark, RoleEnum
)
from fee_models import FeeInvoice, FeeConcession
from notification_models import Notification, WhatsAppMessage
from leave_models import TeacherLeaveRequest
from api_helpers import (
    api_endpoint, get_json_body, query_id, get_or_404, ensure_exists, paginate, list_response, deleted_response,
    ensure_unreferenced
)
from validators import (
    ValidationError, require_fields, parse_id, parse_date, parse_bool, parse_enum, parse_amount,
    validate_email, validate_phone
)

logger = logging.getLogger(__name__)

STUDENT_TEXT_FIELDS = {
    'rollNumber': 'roll_number',
    'gender': 'gender',
    'bloodGroup': 'blood_group',
    'address': 'address',
    'parentName': 'parent_name',
}
STUDENT_PHONE_FIELDS = {
    'parentMobileNumber': 'parent_mobile_number',
    'studentMobileNumber': 'student_mobile_number',
}
STUDENT_DATE_FIELDS = {
    'dateOfBirth': 'date_of_birth',
    'admissionDate': 'admission_date',
}


def _role(value):
    return parse_enum(RoleEnum, value, 'role', 'INVALID_ROLE')


def create_people_routes(api_bp):
    """Add user, teacher, student and parent routes to the API blueprint"""

    # ===== USERS =====

    @api_bp.route('/users', methods=['GET'])
    @api_endpoint
    def get_users():
        session = get_session()
        try:
            if request.args.get('id'):
                user = get_or_404(session, User, query_id(), 'user')
                return jsonify(user.to_dict()), 200

            query = session.query(User)
            if request.args.get('role'):
                query = query.filter(User.role == _role(request.args['role']))
            if request.args.get('isActive'):
                query = query.filter(User.is_active == parse_bool(request.args['isActive'], 'isActive'))
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(User.full_name.ilike(f'%{search}%') | User.email.ilike(f'%{search}%'))
            return list_response(paginate(query, User.id))
        finally:
            session.close()

    @api_bp.route('/users', methods=['POST'])
    @api_endpoint
    def create_user():
        data = get_json_body()
        require_fields(data, 'email', 'password', 'role', 'fullName')
        email = validate_email(data['email'])
        if len(str(data['password'])) < 6:
            raise ValidationError("Password must be at least 6 characters", 'INVALID_PASSWORD')

        session = get_session()
        try:
            if session.query(User).filter_by(email=email).first():
                raise ValidationError("Email already exists", 'DUPLICATE_EMAIL')
            user = User(
                email=email,
                role=_role(data['role']),
                full_name=str(data['fullName']).strip(),
                phone=validate_phone(data.get('phone')),
                is_active=parse_bool(data.get('isActive', True), 'isActive'),
            )
            user.set_password(str(data['password']))
            session.add(user)
            session.commit()
            logger.info(f"User {email} created ({user.role.value})")
            return jsonify(user.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/users', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_user():
        user_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            user = get_or_404(session, User, user_id, 'user')
            updated = False
            if 'email' in data:
                email = validate_email(data['email'])
                clash = session.query(User).filter(User.email == email, User.id != user.id).first()
                if clash:
                    raise ValidationError("Email already exists", 'DUPLICATE_EMAIL')
                user.email = email
                updated = True
            if 'password' in data:
                if len(str(data['password'] or '')) < 6:
                    raise ValidationError("Password must be at least 6 characters", 'INVALID_PASSWORD')
                user.set_password(str(data['password']))
                updated = True
            if 'role' in data:
                user.role = _role(data['role'])
                updated = True
            if 'fullName' in data:
                name = str(data['fullName'] or '').strip()
                if not name:
                    raise ValidationError("fullName cannot be empty", 'INVALID_FULL_NAME')
                user.full_name = name
                updated = True
            if 'phone' in data:
                user.phone = validate_phone(data['phone'])
                updated = True
            if 'isActive' in data:
                user.is_active = parse_bool(data['isActive'], 'isActive')
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(user.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/users', methods=['DELETE'])
    @api_endpoint
    def delete_user():
        user_id = query_id()
        session = get_session()
        try:
            user = get_or_404(session, User, user_id, 'user')
            ensure_unreferenced(session, 'User', 'USER_IN_USE', (
                ('a teacher profile', Teacher, Teacher.user_id == user.id),
                ('a student profile', Student, Student.user_id == user.id),
                ('a parent profile', Parent, Parent.user_id == user.id),
                ('attendance records', Attendance, Attendance.marked_by == user.id),
                ('staff attendance records', StaffAttendance, StaffAttendance.marked_by == user.id),
                ('WhatsApp messages', WhatsAppMessage, WhatsAppMessage.sent_by == user.id),
                ('approved concessions', FeeConcession, FeeConcession.approved_by == user.id),
                ('reviewed leave requests', TeacherLeaveRequest, TeacherLeaveRequest.reviewed_by == user.id),
            ))
            snapshot = user.to_dict()
            session.query(Notification).filter_by(recipient_id=user.id).delete(synchronize_session=False)
            session.delete(user)
            session.commit()
            return deleted_response('User', snapshot)
        finally:
            session.close()

    # ===== TEACHERS =====

    @api_bp.route('/teachers', methods=['GET'])
    @api_endpoint
    def get_teachers():
        session = get_session()
        try:
            if request.args.get('id'):
                teacher = get_or_404(session, Teacher, query_id(), 'teacher')
                return jsonify(teacher.to_dict()), 200

            query = session.query(Teacher)
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(Teacher.employee_id.ilike(f'%{search}%') | Teacher.specialization.ilike(f'%{search}%'))
            return list_response(paginate(query, Teacher.id))
        finally:
            session.close()

    @api_bp.route('/teachers', methods=['POST'])
    @api_endpoint
    def create_teacher():
        data = get_json_body()
        require_fields(data, 'userId', 'employeeId')
        user_id = parse_id(data['userId'], 'INVALID_USER_ID', 'user ID')
        employee_id = str(data['employeeId']).strip()

        session = get_session()
        try:
            ensure_exists(session, User, user_id, 'user')
            if session.query(Teacher).filter_by(employee_id=employee_id).first():
                raise ValidationError("Employee ID already exists", 'DUPLICATE_EMPLOYEE_ID')
            teacher = Teacher(
                user_id=user_id,
                employee_id=employee_id,
                qualification=data.get('qualification'),
                specialization=data.get('specialization'),
                joining_date=parse_date(data['joiningDate'], 'joiningDate') if data.get('joiningDate') else None,
                salary=parse_amount(data['salary'], 'salary', 'INVALID_SALARY') if data.get('salary') is not None else None,
            )
            session.add(teacher)
            session.commit()
            return jsonify(teacher.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/teachers', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_teacher():
        teacher_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            teacher = get_or_404(session, Teacher, teacher_id, 'teacher')
            updated = False
            if 'employeeId' in data:
                employee_id = str(data['employeeId'] or '').strip()
                if not employee_id:
                    raise ValidationError("employeeId cannot be empty", 'INVALID_EMPLOYEE_ID')
                clash = session.query(Teacher).filter(Teacher.employee_id == employee_id, Teacher.id != teacher.id).first()
                if clash:
                    raise ValidationError("Employee ID already exists", 'DUPLICATE_EMPLOYEE_ID')
                teacher.employee_id = employee_id
                updated = True
            for field, attr in (('qualification', 'qualification'), ('specialization', 'specialization')):
                if field in data:
                    setattr(teacher, attr, data[field])
                    updated = True
            if 'joiningDate' in data:
                teacher.joining_date = parse_date(data['joiningDate'], 'joiningDate') if data['joiningDate'] else None
                updated = True
            if 'salary' in data:
                teacher.salary = parse_amount(data['salary'], 'salary', 'INVALID_SALARY') if data['salary'] is not None else None
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(teacher.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/teachers', methods=['DELETE'])
    @api_endpoint
    def delete_teacher():
        teacher_id = query_id()
        session = get_session()
        try:
            teacher = get_or_404(session, Teacher, teacher_id, 'teacher')
            ensure_unreferenced(session, 'Teacher', 'TEACHER_IN_USE', (
                ('staff attendance records', StaffAttendance, StaffAttendance.teacher_id == teacher.id),
                ('remarks', TeacherRemark, TeacherRemark.teacher_id == teacher.id),
                ('leave requests', TeacherLeaveRequest, TeacherLeaveRequest.teacher_id == teacher.id),
                ('class teacher sections', Section, Section.class_teacher_id == teacher.id),
                ('subjects', Subject, Subject.teacher_id == teacher.id),
            ))
            snapshot = teacher.to_dict()
            session.delete(teacher)
            session.commit()
            return deleted_response('Teacher', snapshot)
        finally:
            session.close()

    # ===== STUDENTS =====

    @api_bp.route('/students', methods=['GET'])
    @api_endpoint
    def get_students():
        session = get_session()
        try:
            if request.args.get('id'):
                student = get_or_404(session, Student, query_id(), 'student')
                return jsonify(student.to_dict()), 200

            query = session.query(Student)
            if request.args.get('sectionId'):
                query = query.filter(Student.section_id == parse_id(request.args['sectionId'], 'INVALID_SECTION_ID'))
            if request.args.get('admissionNumber'):
                query = query.filter(Student.admission_number == request.args['admissionNumber'].strip())
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(Student.admission_number.ilike(f'%{search}%') | Student.parent_name.ilike(f'%{search}%'))
            return list_response(paginate(query, Student.id))
        finally:
            session.close()

    @api_bp.route('/students', methods=['POST'])
    @api_endpoint
    def create_student():
        data = get_json_body()
        require_fields(data, 'userId', 'admissionNumber')
        user_id = parse_id(data['userId'], 'INVALID_USER_ID', 'user ID')
        admission_number = str(data['admissionNumber']).strip()

        session = get_session()
        try:
            ensure_exists(session, User, user_id, 'user')
            if session.query(Student).filter_by(admission_number=admission_number).first():
                raise ValidationError("Admission number already exists", 'DUPLICATE_ADMISSION_NUMBER')

            student = Student(user_id=user_id, admission_number=admission_number)
            if data.get('sectionId') is not None:
                student.section_id = ensure_exists(
                    session, Section, parse_id(data['sectionId'], 'INVALID_SECTION_ID'), 'section'
                ).id
            for field, attr in STUDENT_TEXT_FIELDS.items():
                if data.get(field) is not None:
                    setattr(student, attr, str(data[field]).strip())
            for field, attr in STUDENT_PHONE_FIELDS.items():
                setattr(student, attr, validate_phone(data.get(field), field))
            for field, attr in STUDENT_DATE_FIELDS.items():
                if data.get(field):
                    setattr(student, attr, parse_date(data[field], field))

            session.add(student)
            session.commit()
            logger.info(f"Student {admission_number} created")
            return jsonify(student.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/students', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_student():
        student_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            student = get_or_404(session, Student, student_id, 'student')
            updated = False
            if 'admissionNumber' in data:
                number = str(data['admissionNumber'] or '').strip()
                if not number:
                    raise ValidationError("admissionNumber cannot be empty", 'INVALID_ADMISSION_NUMBER')
                clash = session.query(Student).filter(Student.admission_number == number, Student.id != student.id).first()
                if clash:
                    raise ValidationError("Admission number already exists", 'DUPLICATE_ADMISSION_NUMBER')
                student.admission_number = number
                updated = True
            if 'sectionId' in data:
                student.section_id = None if data['sectionId'] is None else ensure_exists(
                    session, Section, parse_id(data['sectionId'], 'INVALID_SECTION_ID'), 'section'
                ).id
                updated = True
            for field, attr in STUDENT_TEXT_FIELDS.items():
                if field in data:
                    setattr(student, attr, None if data[field] is None else str(data[field]).strip())
                    updated = True
            for field, attr in STUDENT_PHONE_FIELDS.items():
                if field in data:
                    setattr(student, attr, validate_phone(data[field], field))
                    updated = True
            for field, attr in STUDENT_DATE_FIELDS.items():
                if field in data:
                    setattr(student, attr, parse_date(data[field], field) if data[field] else None)
                    updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(student.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/students', methods=['DELETE'])
    @api_endpoint
    def delete_student():
        student_id = query_id()
        session = get_session()
        try:
            student = get_or_404(session, Student, student_id, 'student')
            ensure_unreferenced(session, 'Student', 'STUDENT_IN_USE', (
                ('fee invoices', FeeInvoice, FeeInvoice.student_id == student.id),
                ('fee concessions', FeeConcession, FeeConcession.student_id == student.id),
                ('attendance records', Attendance, Attendance.student_id == student.id),
                ('marks', Mark, Mark.student_id == student.id),
                ('teacher remarks', TeacherRemark, TeacherRemark.student_id == student.id),
            ))
            snapshot = student.to_dict()
            session.delete(student)
            session.commit()
            return deleted_response('Student', snapshot)
        finally:
            session.close()

    # ===== PARENTS =====

    @api_bp.route('/parents', methods=['GET'])
    @api_endpoint
    def get_parents():
        session = get_session()
        try:
            if request.args.get('id'):
                parent = get_or_404(session, Parent, query_id(), 'parent')
                return jsonify(parent.to_dict()), 200

            query = session.query(Parent)
            if request.args.get('userId'):
                query = query.filter(Parent.user_id == parse_id(request.args['userId'], 'INVALID_USER_ID'))
            if request.args.get('relation'):
                query = query.filter(Parent.relation == request.args['relation'].strip().lower())
            return list_response(paginate(query, Parent.id))
        finally:
            session.close()

    @api_bp.route('/parents', methods=['POST'])
    @api_endpoint
    def create_parent():
        data = get_json_body()
        require_fields(data, 'userId')
        user_id = parse_id(data['userId'], 'INVALID_USER_ID', 'user ID')

        session = get_session()
        try:
            ensure_exists(session, User, user_id, 'user')
            if session.query(Parent).filter_by(user_id=user_id).first():
                raise ValidationError("Parent profile already exists for this user", 'DUPLICATE_PARENT')
            parent = Parent(
                user_id=user_id,
                relation=str(data.get('relation') or '').strip().lower() or None,
                occupation=data.get('occupation'),
            )
            session.add(parent)
            session.commit()
            return jsonify(parent.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/parents', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_parent():
        parent_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            parent = get_or_404(session, Parent, parent_id, 'parent')
            updated = False
            if 'relation' in data:
                parent.relation = str(data['relation'] or '').strip().lower() or None
                updated = True
            if 'occupation' in data:
                parent.occupation = data['occupation']
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(parent.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/parents', methods=['DELETE'])
    @api_endpoint
    def delete_parent():
        parent_id = query_id()
        session = get_session()
        try:
            parent = get_or_404(session, Parent, parent_id, 'parent')
            snapshot = parent.to_dict()
            session.query(StudentParent).filter_by(parent_id=parent.id).delete(synchronize_session=False)
            session.delete(parent)
            session.commit()
            return deleted_response('Parent', snapshot)
        finally:
            session.close()

    # ===== STUDENT-PARENT LINKS =====

    @api_bp.route('/student-parents', methods=['GET'])
    @api_endpoint
    def get_student_parents():
        session = get_session()
        try:
            if request.args.get('id'):
                link = get_or_404(session, StudentParent, query_id(), 'student_parent')
                return jsonify(link.to_dict()), 200

            query = session.query(StudentParent)
            if request.args.get('studentId'):
                query = query.filter(StudentParent.student_id == parse_id(request.args['studentId'], 'INVALID_STUDENT_ID'))
            if request.args.get('parentId'):
                query = query.filter(StudentParent.parent_id == parse_id(request.args['parentId'], 'INVALID_PARENT_ID'))
            return list_response(paginate(query, StudentParent.id))
        finally:
            session.close()

    @api_bp.route('/student-parents', methods=['POST'])
    @api_endpoint
    def create_student_parent():
        data = get_json_body()
        require_fields(data, 'studentId', 'parentId')
        student_id = parse_id(data['studentId'], 'INVALID_STUDENT_ID', 'student ID')
        parent_id = parse_id(data['parentId'], 'INVALID_PARENT_ID', 'parent ID')
        is_primary = parse_bool(data.get('isPrimary', False), 'isPrimary')

        session = get_session()
        try:
            ensure_exists(session, Student, student_id, 'student')
            ensure_exists(session, Parent, parent_id, 'parent')
            if session.query(StudentParent).filter_by(student_id=student_id, parent_id=parent_id).first():
                raise ValidationError("Parent is already linked to this student", 'DUPLICATE_STUDENT_PARENT')
            if is_primary:
                session.query(StudentParent).filter_by(student_id=student_id, is_primary=True).update(
                    {StudentParent.is_primary: False}, synchronize_session=False
                )
            link = StudentParent(student_id=student_id, parent_id=parent_id, is_primary=is_primary)
            session.add(link)
            session.commit()
            return jsonify(link.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/student-parents', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_student_parent():
        link_id = query_id()
        data = get_json_body()
        if 'isPrimary' not in data:
            raise ValidationError("No valid fields to update", 'NO_UPDATES')

        session = get_session()
        try:
            link = get_or_404(session, StudentParent, link_id, 'student_parent')
            link.is_primary = parse_bool(data['isPrimary'], 'isPrimary')
            if link.is_primary:
                session.query(StudentParent).filter(
                    StudentParent.student_id == link.student_id,
                    StudentParent.id != link.id,
                ).update({StudentParent.is_primary: False}, synchronize_session=False)
            session.commit()
            return jsonify(link.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/student-parents', methods=['DELETE'])
    @api_endpoint
    def delete_student_parent():
        link_id = query_id()
        session = get_session()
        try:
            link = get_or_404(session, StudentParent, link_id, 'student_parent')
            snapshot = link.to_dict()
            session.delete(link)
            session.commit()
            return deleted_response('Student-parent link', snapshot)
        finally:
            session.close()
