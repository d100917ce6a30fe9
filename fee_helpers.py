"""
Fee Ledger Helper Functions
Business logic for invoice balances, EMI plans and payment application.

Helpers only add/flush on the caller's session; the route owning the session
commits once, so an installment update, the invoice update and the payment
row either all land or none do.
"""

import logging
from datetime import datetime, date, timedelta
from decimal import Decimal, ROUND_DOWN
from sqlalchemy.orm import Session
from fee_models import (
    FeeInvoice, PaymentInstallment, FeePayment,
    InvoiceStatusEnum, InstallmentStatusEnum, PaymentMethodEnum, PaymentStatusEnum
)
from models import User, RoleEnum
from notification_models import Notification, NotificationTypeEnum
from validators import ValidationError, PAISE

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
EMI_INSTALLMENTS = 2
EMI_INTERVAL_DAYS = 30
OUTSTANDING_INSTALLMENT_STATUSES = (InstallmentStatusEnum.PENDING, InstallmentStatusEnum.OVERDUE)


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


# ===== STATUS =====

def derive_invoice_status(invoice: FeeInvoice) -> InvoiceStatusEnum:
    """paid when nothing is due, partial when something is paid, else unchanged"""
    paid = _dec(invoice.paid_amount)
    due = _dec(invoice.due_amount)
    if due <= 0:
        return InvoiceStatusEnum.PAID
    if paid > 0:
        return InvoiceStatusEnum.PARTIAL
    return invoice.status or InvoiceStatusEnum.PENDING


def check_invoice_payable(invoice: FeeInvoice):
    """Block a gateway order for an invoice with nothing left to pay"""
    if invoice.status == InvoiceStatusEnum.PAID:
        raise ValidationError("Invoice is already paid", 'INVOICE_ALREADY_PAID')
    if _dec(invoice.due_amount) <= 0:
        raise ValidationError("No amount due on this invoice", 'NO_AMOUNT_DUE')


def _apply_amount(invoice: FeeInvoice, amount: Decimal):
    invoice.paid_amount = _dec(invoice.paid_amount) + amount
    invoice.due_amount = _dec(invoice.total_amount) - invoice.paid_amount
    if invoice.due_amount < 0:
        logger.warning(f"Invoice {invoice.invoice_number} overpaid by {-invoice.due_amount}")
    invoice.status = derive_invoice_status(invoice)


# ===== INSTALLMENTS =====

def get_installments(session: Session, invoice_id: int):
    return session.query(PaymentInstallment).filter_by(
        invoice_id=invoice_id
    ).order_by(PaymentInstallment.installment_number).all()


def _outstanding_query(session: Session, invoice_id: int):
    return session.query(PaymentInstallment).filter(
        PaymentInstallment.invoice_id == invoice_id,
        PaymentInstallment.status.in_(OUTSTANDING_INSTALLMENT_STATUSES)
    ).order_by(PaymentInstallment.installment_number)


def has_installment_plan(session: Session, invoice_id: int) -> bool:
    return session.query(PaymentInstallment).filter_by(invoice_id=invoice_id).count() > 0


def outstanding_installments(session: Session, invoice_id: int):
    return _outstanding_query(session, invoice_id).all()


def oldest_outstanding_installment(session: Session, invoice_id: int):
    """Lowest-numbered installment still waiting for money"""
    return _outstanding_query(session, invoice_id).first()


def outstanding_installment_total(session: Session, invoice_id: int) -> Decimal:
    return sum((_dec(i.amount) for i in outstanding_installments(session, invoice_id)), ZERO)


def split_emi_amounts(total: Decimal, parts: int = EMI_INSTALLMENTS):
    """Equal split rounded down to paise; the last part absorbs the remainder"""
    total = _dec(total)
    share = (total / parts).quantize(PAISE, rounding=ROUND_DOWN)
    amounts = [share] * (parts - 1)
    amounts.append(total - share * (parts - 1))
    return amounts


def setup_emi_plan(session: Session, invoice: FeeInvoice, today: date = None):
    """Create the two-part EMI plan once per invoice; returns the installments"""
    existing = session.query(PaymentInstallment).filter_by(invoice_id=invoice.id).count()
    if existing:
        raise ValidationError("EMI plan already exists for this invoice", 'EMI_ALREADY_EXISTS')
    if _dec(invoice.paid_amount) > 0:
        raise ValidationError("EMI is only available for invoices with no payments", 'EMI_NOT_AVAILABLE')

    today = today or date.today()
    installments = []
    for index, amount in enumerate(split_emi_amounts(invoice.total_amount)):
        installment = PaymentInstallment(
            invoice_id=invoice.id,
            installment_number=index + 1,
            amount=amount,
            due_date=today + timedelta(days=EMI_INTERVAL_DAYS * index),
            paid_amount=ZERO,
            status=InstallmentStatusEnum.PENDING,
        )
        session.add(installment)
        installments.append(installment)

    session.flush()
    logger.info(f"EMI plan created for invoice {invoice.invoice_number}: {[str(i.amount) for i in installments]}")
    return installments


def installment_summary(installments) -> dict:
    paid = [i for i in installments if i.status == InstallmentStatusEnum.PAID]
    outstanding = [i for i in installments if i.status != InstallmentStatusEnum.PAID]
    return {
        'totalInstallments': len(installments),
        'paidInstallments': len(paid),
        'pendingInstallments': len(outstanding),
        'totalPaid': float(sum((_dec(i.paid_amount) for i in paid), ZERO)),
        'totalPending': float(sum((_dec(i.amount) for i in outstanding), ZERO)),
    }


# ===== PAYMENT APPLICATION =====

def find_payment_by_transaction(session: Session, transaction_id: str):
    if not transaction_id:
        return None
    return session.query(FeePayment).filter_by(transaction_id=transaction_id).first()


def apply_captured_payment(session: Session, invoice: FeeInvoice, amount, transaction_id: str = None,
                           payment_method: PaymentMethodEnum = PaymentMethodEnum.ONLINE,
                           payment_date: datetime = None, remarks: str = None):
    """
    Record a completed payment and move the invoice balance.

    With an installment plan the oldest outstanding installment is settled,
    followed by each later one the remaining amount fully covers. The last
    settled installment takes whatever is left of the payment. A plan with
    nothing outstanding raises NO_PENDING_INSTALLMENTS before anything is
    written.

    Returns:
        tuple: (payment, first settled installment or None, next installment or None)
    """
    amount = _dec(amount).quantize(PAISE)
    settled = []
    if has_installment_plan(session, invoice.id):
        outstanding = outstanding_installments(session, invoice.id)
        if not outstanding:
            raise ValidationError("No pending installments found", 'NO_PENDING_INSTALLMENTS')
        settled.append(outstanding[0])
        remaining = amount - _dec(outstanding[0].amount)
        for installment in outstanding[1:]:
            if remaining < _dec(installment.amount):
                break
            settled.append(installment)
            remaining -= _dec(installment.amount)

    payment = FeePayment(
        invoice_id=invoice.id,
        amount=amount,
        payment_method=payment_method,
        payment_date=payment_date or datetime.utcnow(),
        transaction_id=transaction_id,
        payment_status=PaymentStatusEnum.COMPLETED,
        remarks=remarks,
    )
    session.add(payment)
    session.flush()

    next_installment = None
    if settled:
        paid_at = datetime.utcnow()
        left = amount
        for index, installment in enumerate(settled):
            share = left if index == len(settled) - 1 else _dec(installment.amount)
            left -= share
            installment.paid_amount = share
            installment.status = InstallmentStatusEnum.PAID
            installment.payment_id = payment.id
            installment.paid_at = paid_at
        session.flush()
        next_installment = oldest_outstanding_installment(session, invoice.id)

    _apply_amount(invoice, amount)
    session.flush()

    logger.info(
        f"Payment {transaction_id or payment.id} of {amount} applied to invoice {invoice.invoice_number}: "
        f"paid={invoice.paid_amount} due={invoice.due_amount} status={invoice.status.value}"
        + (f" installments={[i.installment_number for i in settled]}" if settled else '')
    )
    return payment, (settled[0] if settled else None), next_installment


def record_failed_payment(session: Session, invoice: FeeInvoice, amount, transaction_id: str,
                          remarks: str = None) -> FeePayment:
    """Failed gateway attempt; balances are untouched"""
    payment = FeePayment(
        invoice_id=invoice.id,
        amount=_dec(amount).quantize(PAISE),
        payment_method=PaymentMethodEnum.ONLINE,
        payment_date=datetime.utcnow(),
        transaction_id=transaction_id,
        payment_status=PaymentStatusEnum.FAILED,
        remarks=remarks,
    )
    session.add(payment)
    session.flush()
    logger.info(f"Failed payment {transaction_id} recorded for invoice {invoice.invoice_number}")
    return payment


def record_manual_payment(session: Session, invoice: FeeInvoice, amount: Decimal,
                          payment_method: PaymentMethodEnum, payment_date: datetime,
                          payment_status: PaymentStatusEnum, transaction_id: str = None,
                          remarks: str = None) -> FeePayment:
    """Office-recorded payment; only completed payments move the balance"""
    if transaction_id and find_payment_by_transaction(session, transaction_id):
        raise ValidationError("A payment with this transaction ID already exists", 'DUPLICATE_TRANSACTION_ID')

    if payment_status == PaymentStatusEnum.COMPLETED:
        payment, _, _ = apply_captured_payment(
            session, invoice, amount,
            transaction_id=transaction_id,
            payment_method=payment_method,
            payment_date=payment_date,
            remarks=remarks,
        )
        return payment

    payment = FeePayment(
        invoice_id=invoice.id,
        amount=amount,
        payment_method=payment_method,
        payment_date=payment_date,
        transaction_id=transaction_id,
        payment_status=payment_status,
        remarks=remarks,
    )
    session.add(payment)
    session.flush()
    return payment


# ===== OVERDUE =====

def refresh_overdue(session: Session, today: date = None) -> dict:
    """Flag unpaid invoices and installments whose due date has passed"""
    today = today or date.today()

    invoices = session.query(FeeInvoice).filter(
        FeeInvoice.status == InvoiceStatusEnum.PENDING,
        FeeInvoice.due_date < today,
        FeeInvoice.due_amount > 0,
    ).all()
    for invoice in invoices:
        if _dec(invoice.paid_amount) == 0:
            invoice.status = InvoiceStatusEnum.OVERDUE

    installments = session.query(PaymentInstallment).filter(
        PaymentInstallment.status == InstallmentStatusEnum.PENDING,
        PaymentInstallment.due_date < today,
    ).all()
    for installment in installments:
        installment.status = InstallmentStatusEnum.OVERDUE

    session.flush()
    counts = {
        'invoices': sum(1 for i in invoices if i.status == InvoiceStatusEnum.OVERDUE),
        'installments': len(installments),
    }
    logger.info(f"Overdue refresh for {today}: {counts}")
    return counts


# ===== NOTIFICATIONS =====

def _insert_notifications(session: Session, notifications):
    """Savepoint so a failed insert never undoes the ledger write"""
    try:
        with session.begin_nested():
            session.add_all(notifications)
        return len(notifications)
    except Exception as e:
        logger.error(f"Notification insert failed, ledger write kept: {e}")
        return 0


def notify_admins(session: Session, title: str, message: str,
                  notification_type: NotificationTypeEnum = NotificationTypeEnum.FEE) -> int:
    admins = session.query(User).filter_by(role=RoleEnum.ADMIN, is_active=True).all()
    return _insert_notifications(session, [
        Notification(recipient_id=admin.id, title=title, message=message, type=notification_type)
        for admin in admins
    ])


def notify_user(session: Session, user_id: int, title: str, message: str,
                notification_type: NotificationTypeEnum = NotificationTypeEnum.FEE) -> int:
    if not user_id:
        return 0
    return _insert_notifications(session, [
        Notification(recipient_id=user_id, title=title, message=message, type=notification_type)
    ])
