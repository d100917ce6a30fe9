from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from database import get_session
from fee_models import (
    FeeInvoice, PaymentInstallment, InvoiceStatusEnum, InstallmentStatusEnum,
    PaymentMethodEnum, PaymentStatusEnum
)
from fee_helpers import (
    split_emi_amounts, setup_emi_plan, apply_captured_payment, derive_invoice_status,
    record_manual_payment, refresh_overdue, check_invoice_payable
)
from validators import ValidationError


@pytest.fixture
def session(app):
    session = get_session()
    yield session
    session.close()


def test_split_even_amount():
    assert split_emi_amounts(Decimal('6200.00')) == [Decimal('3100.00'), Decimal('3100.00')]


def test_split_odd_paise_goes_to_last_installment():
    parts = split_emi_amounts(Decimal('1000.01'))
    assert parts == [Decimal('500.00'), Decimal('500.01')]
    assert sum(parts) == Decimal('1000.01')


def test_derive_status():
    invoice = FeeInvoice(total_amount=Decimal('100'), paid_amount=Decimal('0'), due_amount=Decimal('100'),
                         status=InvoiceStatusEnum.OVERDUE)
    assert derive_invoice_status(invoice) == InvoiceStatusEnum.OVERDUE

    invoice.paid_amount, invoice.due_amount = Decimal('40'), Decimal('60')
    assert derive_invoice_status(invoice) == InvoiceStatusEnum.PARTIAL

    invoice.paid_amount, invoice.due_amount = Decimal('100'), Decimal('0')
    assert derive_invoice_status(invoice) == InvoiceStatusEnum.PAID


def test_nothing_due_is_not_payable():
    invoice = FeeInvoice(total_amount=Decimal('100'), paid_amount=Decimal('100'), due_amount=Decimal('0'),
                         status=InvoiceStatusEnum.PARTIAL)
    with pytest.raises(ValidationError) as exc:
        check_invoice_payable(invoice)
    assert exc.value.code == 'NO_AMOUNT_DUE'


def test_emi_plan_due_dates(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('6200.00'))

    installments = setup_emi_plan(session, invoice, today=date(2024, 4, 1))

    assert [i.installment_number for i in installments] == [1, 2]
    assert [i.due_date for i in installments] == [date(2024, 4, 1), date(2024, 5, 1)]
    assert invoice.status == InvoiceStatusEnum.PENDING


def test_emi_refused_after_partial_payment(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('6200.00', paid='200.00'))

    with pytest.raises(ValidationError) as exc:
        setup_emi_plan(session, invoice)
    assert exc.value.code == 'EMI_NOT_AVAILABLE'


def test_payment_without_plan_moves_balance(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('7500.00'))

    payment, installment, next_installment = apply_captured_payment(session, invoice, Decimal('2500'), 'pay_1')
    session.commit()

    assert installment is None and next_installment is None
    assert payment.payment_status == PaymentStatusEnum.COMPLETED
    assert invoice.paid_amount == Decimal('2500.00')
    assert invoice.due_amount == Decimal('5000.00')
    assert invoice.status == InvoiceStatusEnum.PARTIAL


def test_overdue_installment_is_settled_first(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('6200.00'))
    first, second = setup_emi_plan(session, invoice, today=date.today() - timedelta(days=40))
    first.status = InstallmentStatusEnum.OVERDUE
    session.flush()

    _, installment, next_installment = apply_captured_payment(session, invoice, Decimal('3100'), 'pay_1')

    assert installment.id == first.id
    assert installment.status == InstallmentStatusEnum.PAID
    assert installment.payment_id is not None
    assert next_installment.id == second.id


def test_payment_covering_whole_plan_settles_every_installment(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('1000.01'))
    first, second = setup_emi_plan(session, invoice)

    payment, installment, next_installment = apply_captured_payment(session, invoice, Decimal('1000.01'), 'pay_1')

    assert installment.id == first.id
    assert next_installment is None
    assert [first.status, second.status] == [InstallmentStatusEnum.PAID, InstallmentStatusEnum.PAID]
    assert [first.paid_amount, second.paid_amount] == [Decimal('500.00'), Decimal('500.01')]
    assert first.payment_id == second.payment_id == payment.id
    assert invoice.status == InvoiceStatusEnum.PAID


def test_payment_short_of_next_installment_settles_one(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('6200.00'))
    first, second = setup_emi_plan(session, invoice)

    _, installment, next_installment = apply_captured_payment(session, invoice, Decimal('4000'), 'pay_1')

    assert installment.id == first.id
    assert first.paid_amount == Decimal('4000.00')
    assert second.status == InstallmentStatusEnum.PENDING
    assert next_installment.id == second.id
    assert invoice.due_amount == Decimal('2200.00')


def test_fully_paid_plan_rejects_further_payments(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('6200.00'))
    setup_emi_plan(session, invoice)
    apply_captured_payment(session, invoice, Decimal('3100'), 'pay_1')
    apply_captured_payment(session, invoice, Decimal('3100'), 'pay_2')

    with pytest.raises(ValidationError) as exc:
        apply_captured_payment(session, invoice, Decimal('1'), 'pay_3')
    assert exc.value.code == 'NO_PENDING_INSTALLMENTS'
    assert invoice.status == InvoiceStatusEnum.PAID


def test_pending_manual_payment_leaves_balance(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('7500.00'))

    payment = record_manual_payment(
        session, invoice, Decimal('500.00'), PaymentMethodEnum.CHEQUE, datetime.now(),
        PaymentStatusEnum.PENDING, transaction_id='CHQ-1',
    )

    assert payment.payment_status == PaymentStatusEnum.PENDING
    assert invoice.paid_amount == Decimal('0.00')


def test_manual_payment_duplicate_transaction(session, make_invoice):
    invoice = session.get(FeeInvoice, make_invoice('7500.00'))
    record_manual_payment(session, invoice, Decimal('500.00'), PaymentMethodEnum.CASH, datetime.now(),
                          PaymentStatusEnum.COMPLETED, transaction_id='RCPT-9')

    with pytest.raises(ValidationError) as exc:
        record_manual_payment(session, invoice, Decimal('500.00'), PaymentMethodEnum.CASH, datetime.now(),
                              PaymentStatusEnum.COMPLETED, transaction_id='RCPT-9')
    assert exc.value.code == 'DUPLICATE_TRANSACTION_ID'


def test_refresh_overdue(session, make_invoice):
    ids = [
        make_invoice('1000.00', due_date=date(2024, 1, 10)),
        make_invoice('1000.00', due_date=date(2024, 1, 10), paid='100.00'),
        make_invoice('1000.00', due_date=date(2024, 3, 1)),
        make_invoice('2000.00', due_date=date(2024, 3, 1)),
    ]
    late, partial, current, emi_invoice = [session.get(FeeInvoice, i) for i in ids]
    setup_emi_plan(session, emi_invoice, today=date(2024, 1, 15))
    session.commit()

    counts = refresh_overdue(session, today=date(2024, 2, 1))
    session.commit()

    assert counts == {'invoices': 1, 'installments': 1}
    assert late.status == InvoiceStatusEnum.OVERDUE
    assert partial.status == InvoiceStatusEnum.PARTIAL
    assert current.status == InvoiceStatusEnum.PENDING
    statuses = [i.status for i in session.query(PaymentInstallment).filter_by(invoice_id=emi_invoice.id)
                .order_by(PaymentInstallment.installment_number)]
    assert statuses == [InstallmentStatusEnum.OVERDUE, InstallmentStatusEnum.PENDING]
