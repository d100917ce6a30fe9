import hashlib
import hmac
import os
import sys
from datetime import date, timedelta
from decimal import Decimal

import pytest
import razorpay

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database  # noqa: E402
from database import get_session  # noqa: E402
from main import create_app  # noqa: E402
from models import User, Student, Parent, StudentParent, Teacher, AcademicYear, Class, Subject, RoleEnum  # noqa: E402
from fee_models import FeeInvoice, InvoiceStatusEnum  # noqa: E402

SYSTEM_USER_ID = 1
KEY_ID = 'rzp_test_key'
KEY_SECRET = 'test_key_secret'
WEBHOOK_SECRET = 'test_webhook_secret'


@pytest.fixture
def app():
    app = create_app('testing')
    yield app
    database.drop_tables()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role=RoleEnum.STUDENT, full_name='Test User', phone=None, email=None):
        counter['n'] += 1
        session = get_session()
        try:
            user = User(
                email=email or f"{role.value}{counter['n']}@school.test",
                full_name=full_name,
                role=role,
                phone=phone,
            )
            user.set_password('secret123')
            session.add(user)
            session.commit()
            return user.id
        finally:
            session.close()
    return _make


@pytest.fixture
def make_student(app, make_user):
    def _make(admission_number='ADM001', full_name='Asha Verma', parent_mobile_number='9876543210'):
        user_id = make_user(RoleEnum.STUDENT, full_name=full_name)
        session = get_session()
        try:
            student = Student(
                user_id=user_id,
                admission_number=admission_number,
                parent_mobile_number=parent_mobile_number,
            )
            session.add(student)
            session.commit()
            return student.id
        finally:
            session.close()
    return _make


@pytest.fixture
def link_parent(app, make_user):
    def _link(student_id, phone, is_primary=True, full_name='Ravi Verma'):
        user_id = make_user(RoleEnum.PARENT, full_name=full_name, phone=phone)
        session = get_session()
        try:
            parent = Parent(user_id=user_id, relation='father')
            session.add(parent)
            session.flush()
            session.add(StudentParent(student_id=student_id, parent_id=parent.id, is_primary=is_primary))
            session.commit()
            return parent.id
        finally:
            session.close()
    return _link


@pytest.fixture
def make_teacher(app, make_user):
    counter = {'n': 0}

    def _make(full_name='Neha Iyer'):
        counter['n'] += 1
        user_id = make_user(RoleEnum.TEACHER, full_name=full_name)
        session = get_session()
        try:
            teacher = Teacher(user_id=user_id, employee_id=f"EMP-{counter['n']:02d}")
            session.add(teacher)
            session.commit()
            return teacher.id
        finally:
            session.close()
    return _make


@pytest.fixture
def make_subject(app):
    counter = {'n': 0}

    def _make(subject_name='Mathematics'):
        counter['n'] += 1
        session = get_session()
        try:
            year = AcademicYear(year_name='2024-2025', start_date=date(2024, 4, 1), end_date=date(2025, 3, 31))
            session.add(year)
            session.flush()
            school_class = Class(class_name='Grade 5', academic_year_id=year.id)
            session.add(school_class)
            session.flush()
            subject = Subject(subject_name=subject_name, subject_code=f"SUB{counter['n']}", class_id=school_class.id)
            session.add(subject)
            session.commit()
            return subject.id
        finally:
            session.close()
    return _make


@pytest.fixture
def make_invoice(app, make_student):
    counter = {'n': 0}

    def _make(total='7500.00', student_id=None, due_date=None, paid='0.00'):
        counter['n'] += 1
        if student_id is None:
            student_id = make_student(admission_number=f"ADM{counter['n']:03d}")
        session = get_session()
        try:
            invoice = FeeInvoice(
                student_id=student_id,
                invoice_number=f"INV-2024-{counter['n']:04d}",
                total_amount=Decimal(total),
                paid_amount=Decimal(paid),
                due_amount=Decimal(total) - Decimal(paid),
                due_date=due_date or date.today() + timedelta(days=15),
                status=InvoiceStatusEnum.PARTIAL if Decimal(paid) > 0 else InvoiceStatusEnum.PENDING,
            )
            session.add(invoice)
            session.commit()
            return invoice.id
        finally:
            session.close()
    return _make


def load(model, record_id):
    """Fresh read of a row after a request"""
    session = get_session()
    try:
        record = session.get(model, record_id)
        if record is not None:
            session.expunge(record)
        return record
    finally:
        session.close()


# ===== FAKE RAZORPAY CLIENT =====

class FakeOrders:
    def __init__(self):
        self.created = []
        self.fail = False

    def create(self, data=None, **kwargs):
        if self.fail:
            raise razorpay.errors.ServerError('gateway down')
        self.created.append(data)
        return {
            'id': f"order_{len(self.created):04d}",
            'amount': data['amount'],
            'currency': data['currency'],
            'receipt': data['receipt'],
            'notes': data['notes'],
            'status': 'created',
        }

    def fetch(self, order_id, data=None, **kwargs):
        for index, order in enumerate(self.created, start=1):
            if order_id == f"order_{index:04d}":
                return {'id': order_id, 'amount': order['amount'], 'notes': order['notes'], 'status': 'paid'}
        raise razorpay.errors.BadRequestError('The id provided does not exist')


class FakePayments:
    def __init__(self):
        self.payments = {}

    def add(self, payment_id, amount_paise, status='captured', invoice_id=None, order_id=None):
        self.payments[payment_id] = {
            'id': payment_id,
            'order_id': order_id,
            'amount': amount_paise,
            'status': status,
            'notes': {'invoiceId': str(invoice_id)} if invoice_id else {},
        }

    def fetch(self, payment_id, data=None, **kwargs):
        if payment_id not in self.payments:
            raise razorpay.errors.BadRequestError('The id provided does not exist')
        return self.payments[payment_id]


class FakeQrCodes:
    def __init__(self):
        self.created = []

    def create(self, data=None, **kwargs):
        self.created.append(data)
        return dict(data, id='qr_0001', image_url='https://rzp.io/qr_0001.png', status='active', created_at=1700000000)

    def fetch(self, qr_id, data=None, **kwargs):
        if qr_id != 'qr_0001':
            raise razorpay.errors.BadRequestError('The id provided does not exist')
        return {
            'id': qr_id,
            'name': 'School Fee Payment',
            'usage': 'multiple_use',
            'fixed_amount': False,
            'status': 'active',
            'payments_amount_received': 250000,
            'payments_count_received': 1,
        }

    def fetch_all_payments(self, qr_id, data=None, **kwargs):
        return {'count': 1, 'items': [{'id': 'pay_qr1', 'amount': 250000, 'status': 'captured', 'method': 'upi'}]}


class FakeRazorpayClient:
    def __init__(self):
        self.auth = (KEY_ID, KEY_SECRET)
        self.utility = razorpay.Utility(self)
        self.order = FakeOrders()
        self.payment = FakePayments()
        self.qrcode = FakeQrCodes()


@pytest.fixture
def gateway(app, monkeypatch):
    fake = FakeRazorpayClient()
    monkeypatch.setattr('payment_routes.get_razorpay_client', lambda: fake)
    return fake


def sign(message, secret):
    """HMAC-SHA256 hex digest, as Razorpay signs checkout responses and webhooks"""
    if isinstance(message, str):
        message = message.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def checkout_signature(order_id, payment_id, secret=KEY_SECRET):
    return sign(f"{order_id}|{payment_id}", secret)
