"""
Core School Models
Users, academic structure, people and attendance records
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Numeric, Date, Enum, Index
from sqlalchemy.orm import declarative_base, relationship
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
import enum

Base = declarative_base()


def iso(value):
    """ISO string for date/datetime columns, None passes through"""
    return value.isoformat() if value else None


def money(value):
    """Numeric column to float for JSON responses"""
    return float(value) if value is not None else None


# ===== ENUMS =====

class RoleEnum(enum.Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


class AttendanceStatusEnum(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    HALF_DAY = "half_day"


class RemarkTypeEnum(enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


def enum_column(enum_cls, **kwargs):
    """Enum column stored by value ('present', not 'PRESENT')"""
    return Column(Enum(enum_cls, values_callable=lambda obj: [e.value for e in obj]), **kwargs)


# ===== USER MODEL =====
class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(120), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = enum_column(RoleEnum, nullable=False, default=RoleEnum.STUDENT)
    full_name = Column(String(150), nullable=False)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        # password_hash is never serialized
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role.value if self.role else None,
            'fullName': self.full_name,
            'phone': self.phone,
            'isActive': self.is_active,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email} ({self.role.value if self.role else None})>'


# ===== ACADEMIC STRUCTURE =====
class AcademicYear(Base):
    __tablename__ = 'academic_years'

    id = Column(Integer, primary_key=True)
    year_name = Column(String(20), nullable=False)  # e.g. 2024-2025
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'yearName': self.year_name,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'isCurrent': self.is_current,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f'<AcademicYear {self.year_name}>'


class Class(Base):
    __tablename__ = 'classes'

    id = Column(Integer, primary_key=True)
    class_name = Column(String(50), nullable=False)
    academic_year_id = Column(Integer, ForeignKey('academic_years.id'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    academic_year = relationship("AcademicYear")
    sections = relationship("Section", back_populates="school_class")

    def to_dict(self):
        return {
            'id': self.id,
            'className': self.class_name,
            'academicYearId': self.academic_year_id,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Class {self.class_name}>'


class Section(Base):
    __tablename__ = 'sections'

    id = Column(Integer, primary_key=True)
    section_name = Column(String(10), nullable=False)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=False)
    class_teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    school_class = relationship("Class", back_populates="sections")
    class_teacher = relationship("Teacher")

    def to_dict(self):
        return {
            'id': self.id,
            'sectionName': self.section_name,
            'classId': self.class_id,
            'classTeacherId': self.class_teacher_id,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Section {self.section_name} class={self.class_id}>'


class Subject(Base):
    __tablename__ = 'subjects'

    id = Column(Integer, primary_key=True)
    subject_name = Column(String(100), nullable=False)
    subject_code = Column(String(20), unique=True, nullable=False)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=False)
    teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'subjectName': self.subject_name,
            'subjectCode': self.subject_code,
            'classId': self.class_id,
            'teacherId': self.teacher_id,
            'createdAt': iso(self.created_at),
        }


# ===== PEOPLE =====
class Teacher(Base):
    __tablename__ = 'teachers'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    employee_id = Column(String(30), unique=True, nullable=False)
    qualification = Column(String(200), nullable=True)
    specialization = Column(String(200), nullable=True)
    joining_date = Column(Date, nullable=True)
    salary = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'employeeId': self.employee_id,
            'qualification': self.qualification,
            'specialization': self.specialization,
            'joiningDate': iso(self.joining_date),
            'salary': money(self.salary),
            'fullName': self.user.full_name if self.user else None,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Teacher {self.employee_id}>'


class Student(Base):
    __tablename__ = 'students'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    admission_number = Column(String(30), unique=True, nullable=False)
    roll_number = Column(String(20), nullable=True)
    section_id = Column(Integer, ForeignKey('sections.id'), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(10), nullable=True)
    blood_group = Column(String(5), nullable=True)
    address = Column(Text, nullable=True)
    parent_name = Column(String(150), nullable=True)
    parent_mobile_number = Column(String(20), nullable=True)
    student_mobile_number = Column(String(20), nullable=True)
    admission_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")
    section = relationship("Section")
    parent_links = relationship("StudentParent", back_populates="student", cascade="all, delete-orphan")

    @property
    def full_name(self):
        return self.user.full_name if self.user else self.admission_number

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'admissionNumber': self.admission_number,
            'rollNumber': self.roll_number,
            'sectionId': self.section_id,
            'dateOfBirth': iso(self.date_of_birth),
            'gender': self.gender,
            'bloodGroup': self.blood_group,
            'address': self.address,
            'parentName': self.parent_name,
            'parentMobileNumber': self.parent_mobile_number,
            'studentMobileNumber': self.student_mobile_number,
            'admissionDate': iso(self.admission_date),
            'fullName': self.full_name,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Student {self.admission_number}>'


class Parent(Base):
    __tablename__ = 'parents'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    relation = Column(String(30), nullable=True)  # father, mother, guardian
    occupation = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'relation': self.relation,
            'occupation': self.occupation,
            'fullName': self.user.full_name if self.user else None,
            'phone': self.user.phone if self.user else None,
            'createdAt': iso(self.created_at),
        }


class StudentParent(Base):
    __tablename__ = 'student_parents'
    __table_args__ = (
        Index('idx_student_parent', 'student_id', 'parent_id'),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    parent_id = Column(Integer, ForeignKey('parents.id'), nullable=False)
    is_primary = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    student = relationship("Student", back_populates="parent_links")
    parent = relationship("Parent")

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'parentId': self.parent_id,
            'isPrimary': self.is_primary,
            'createdAt': iso(self.created_at),
        }


# ===== ATTENDANCE =====
class Attendance(Base):
    """Daily student attendance; one row per (student, date) checked in code"""
    __tablename__ = 'attendance'
    __table_args__ = (
        Index('idx_attendance_student_date', 'student_id', 'date'),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    date = Column(Date, nullable=False)
    status = enum_column(AttendanceStatusEnum, nullable=False)
    marked_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    marked_at = Column(DateTime, default=datetime.utcnow)
    notes = Column(Text, nullable=True)
    biometric_device_id = Column(String(100), nullable=True)

    student = relationship("Student")

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'date': iso(self.date),
            'status': self.status.value if self.status else None,
            'markedBy': self.marked_by,
            'markedAt': iso(self.marked_at),
            'notes': self.notes,
            'biometricDeviceId': self.biometric_device_id,
        }

    def __repr__(self):
        return f'<Attendance student={self.student_id} {self.date} {self.status.value if self.status else None}>'


class StaffAttendance(Base):
    __tablename__ = 'staff_attendance'
    __table_args__ = (
        Index('idx_staff_attendance_teacher_date', 'teacher_id', 'date'),
    )

    id = Column(Integer, primary_key=True)
    teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=False)
    date = Column(Date, nullable=False)
    status = enum_column(AttendanceStatusEnum, nullable=False)
    marked_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    marked_at = Column(DateTime, default=datetime.utcnow)
    notes = Column(Text, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'teacherId': self.teacher_id,
            'date': iso(self.date),
            'status': self.status.value if self.status else None,
            'markedBy': self.marked_by,
            'markedAt': iso(self.marked_at),
            'notes': self.notes,
        }


# ===== ACADEMIC RECORDS =====
class Mark(Base):
    """Marks scored by a student in one subject for one exam"""
    __tablename__ = 'marks'
    __table_args__ = (
        Index('idx_marks_student', 'student_id'),
        Index('idx_marks_subject', 'subject_id'),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    subject_id = Column(Integer, ForeignKey('subjects.id'), nullable=False)
    exam_type = Column(String(50), nullable=False)  # unit_test, midterm, final
    marks_obtained = Column(Numeric(6, 2), nullable=False)
    total_marks = Column(Numeric(6, 2), nullable=False)
    exam_date = Column(Date, nullable=False)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'subjectId': self.subject_id,
            'examType': self.exam_type,
            'marksObtained': money(self.marks_obtained),
            'totalMarks': money(self.total_marks),
            'examDate': iso(self.exam_date),
            'remarks': self.remarks,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Mark student={self.student_id} subject={self.subject_id} {self.marks_obtained}/{self.total_marks}>'


class TeacherRemark(Base):
    __tablename__ = 'teacher_remarks'
    __table_args__ = (
        Index('idx_remark_student', 'student_id'),
        Index('idx_remark_teacher', 'teacher_id'),
    )

    id = Column(Integer, primary_key=True)
    teacher_id = Column(Integer, ForeignKey('teachers.id'), nullable=False)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    subject_id = Column(Integer, ForeignKey('subjects.id'), nullable=True)
    remark_text = Column(Text, nullable=False)
    remark_type = enum_column(RemarkTypeEnum, nullable=False)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'teacherId': self.teacher_id,
            'studentId': self.student_id,
            'subjectId': self.subject_id,
            'remarkText': self.remark_text,
            'remarkType': self.remark_type.value if self.remark_type else None,
            'date': iso(self.date),
            'createdAt': iso(self.created_at),
        }


# ===== SETTINGS =====
class Setting(Base):
    __tablename__ = 'settings'

    id = Column(Integer, primary_key=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'key': self.key,
            'value': self.value,
            'updatedAt': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Setting {self.key}>'
