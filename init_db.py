"""
Database Initialization and Integrity Checker
Creates missing tables and the system admin user that device-created
records are attributed to
"""

import logging
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

import database
from database import get_session, create_tables
from models import Base, User, RoleEnum
# Import all models to register them with Base.metadata
from models import AcademicYear, Class, Section, Subject, Teacher, Student, Parent, StudentParent  # noqa: F401
from models import Attendance, StaffAttendance, Setting, Mark, TeacherRemark  # noqa: F401
from fee_models import FeeInvoice, PaymentInstallment, FeePayment, FeeTemplate, FeeConcession  # noqa: F401
from notification_models import Notification, WhatsAppMessage  # noqa: F401
from leave_models import TeacherLeaveRequest  # noqa: F401

logger = logging.getLogger(__name__)


def check_tables():
    """Return the names of mapped tables missing from the database"""
    inspector = inspect(database.ENGINE)
    existing = set(inspector.get_table_names())
    return [name for name in Base.metadata.tables if name not in existing]


def create_default_admin_user(email, password, full_name='System Administrator', user_id=None):
    """Create the admin user if no user with this email exists; returns the user id"""
    session = get_session()
    try:
        user = session.query(User).filter_by(email=email).first()
        if user:
            return user.id

        if user_id is not None and session.get(User, user_id) is not None:
            # The id is taken by someone else; keep that row as the system user
            logger.warning(f"User id {user_id} already in use, admin {email} gets a new id")
            user_id = None

        user = User(
            id=user_id,
            email=email,
            full_name=full_name,
            role=RoleEnum.ADMIN,
            is_active=True,
        )
        user.set_password(password)
        session.add(user)
        session.commit()
        logger.info(f"Created admin user {email} (id={user.id})")
        return user.id
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()


def run_on_startup(app_config=None):
    """Create missing tables and make sure the system user exists"""
    try:
        missing = check_tables()
        create_tables()
        if missing:
            logger.info(f"Created tables: {', '.join(sorted(missing))}")

        if app_config is not None:
            create_default_admin_user(
                app_config.get('SYSTEM_ADMIN_EMAIL', 'system@school.local'),
                app_config.get('SYSTEM_ADMIN_PASSWORD', 'admin123'),
                user_id=app_config.get('SYSTEM_USER_ID', 1),
            )
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        return False
