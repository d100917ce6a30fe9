"""
Fee Management Routes
Invoice CRUD, office-recorded fee payments, fee templates and concessions
"""

import logging
from datetime import datetime, time
from decimal import Decimal

from flask import request, jsonify
from sqlalchemy.exc import IntegrityError

from database import get_session
from models import Student, AcademicYear, Class, User
from fee_models import (
    FeeInvoice, FeePayment, PaymentInstallment, FeeTemplate, FeeConcession,
    InvoiceStatusEnum, PaymentMethodEnum, PaymentStatusEnum, FeeFrequencyEnum
)
from fee_helpers import derive_invoice_status, record_manual_payment
from api_helpers import (
    api_endpoint, get_json_body, query_id, get_or_404, ensure_exists, paginate, list_response, deleted_response
)
from validators import (
    ValidationError, require_fields, parse_id, parse_amount, parse_date, parse_enum, parse_timestamp
)

logger = logging.getLogger(__name__)


def create_fee_routes(api_bp):
    """Add fee invoice and fee payment routes to the API blueprint"""

    # ===== FEE INVOICES =====

    @api_bp.route('/fee-invoices', methods=['GET'])
    @api_endpoint
    def get_fee_invoices():
        session = get_session()
        try:
            if request.args.get('id'):
                invoice = get_or_404(session, FeeInvoice, query_id(), 'invoice')
                return jsonify(invoice.to_dict()), 200

            query = session.query(FeeInvoice)
            if request.args.get('studentId'):
                query = query.filter(FeeInvoice.student_id == parse_id(request.args['studentId'], 'INVALID_STUDENT_ID'))
            if request.args.get('status'):
                query = query.filter(FeeInvoice.status == parse_enum(InvoiceStatusEnum, request.args['status']))
            if request.args.get('academicYearId'):
                query = query.filter(FeeInvoice.academic_year_id == parse_id(request.args['academicYearId'], 'INVALID_ACADEMIC_YEAR_ID'))
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(FeeInvoice.invoice_number.ilike(f'%{search}%'))

            return list_response(paginate(query, FeeInvoice.id))
        finally:
            session.close()

    @api_bp.route('/fee-invoices', methods=['POST'])
    @api_endpoint
    def create_fee_invoice():
        data = get_json_body()
        require_fields(data, 'studentId', 'invoiceNumber', 'totalAmount', 'dueDate')

        student_id = parse_id(data['studentId'], 'INVALID_STUDENT_ID', 'student ID')
        invoice_number = str(data['invoiceNumber']).strip()
        total = parse_amount(data['totalAmount'], 'totalAmount', allow_zero=False)
        paid = parse_amount(data.get('paidAmount', 0), 'paidAmount')
        due_date = parse_date(data['dueDate'], 'dueDate')

        if paid > total:
            raise ValidationError("paidAmount cannot exceed totalAmount", 'INVALID_AMOUNTS')
        due = total - paid
        if data.get('dueAmount') is not None and parse_amount(data['dueAmount'], 'dueAmount') != due:
            raise ValidationError("dueAmount must equal totalAmount - paidAmount", 'INVALID_AMOUNTS')

        session = get_session()
        try:
            ensure_exists(session, Student, student_id, 'student')
            if session.query(FeeInvoice).filter_by(invoice_number=invoice_number).first():
                raise ValidationError("Invoice number already exists", 'DUPLICATE_INVOICE_NUMBER')

            academic_year_id = None
            if data.get('academicYearId') is not None:
                academic_year_id = parse_id(data['academicYearId'], 'INVALID_ACADEMIC_YEAR_ID')
                ensure_exists(session, AcademicYear, academic_year_id, 'academic_year')

            invoice = FeeInvoice(
                student_id=student_id,
                invoice_number=invoice_number,
                total_amount=total,
                paid_amount=paid,
                due_amount=due,
                due_date=due_date,
                academic_year_id=academic_year_id,
                status=parse_enum(InvoiceStatusEnum, data['status']) if data.get('status') else None,
            )
            if invoice.status is None:
                invoice.status = derive_invoice_status(invoice)

            session.add(invoice)
            session.commit()
            logger.info(f"Invoice {invoice.invoice_number} created for student {student_id}: {total}")
            return jsonify(invoice.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/fee-invoices', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_fee_invoice():
        invoice_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            updated = False
            amounts_changed = False

            # Balances follow the payment rows and the installment split once either exists
            if ('totalAmount' in data or 'paidAmount' in data) and (
                session.query(PaymentInstallment).filter_by(invoice_id=invoice.id).first()
                or session.query(FeePayment).filter_by(invoice_id=invoice.id).first()
            ):
                raise ValidationError(
                    "Invoice amounts cannot be changed once payments or an installment plan exist",
                    'INVOICE_AMOUNTS_LOCKED'
                )

            if 'studentId' in data:
                invoice.student_id = ensure_exists(
                    session, Student, parse_id(data['studentId'], 'INVALID_STUDENT_ID'), 'student'
                ).id
                updated = True
            if 'invoiceNumber' in data:
                number = str(data['invoiceNumber'] or '').strip()
                if not number:
                    raise ValidationError("invoiceNumber cannot be empty", 'INVALID_INVOICE_NUMBER')
                clash = session.query(FeeInvoice).filter(
                    FeeInvoice.invoice_number == number, FeeInvoice.id != invoice.id
                ).first()
                if clash:
                    raise ValidationError("Invoice number already exists", 'DUPLICATE_INVOICE_NUMBER')
                invoice.invoice_number = number
                updated = True
            if 'totalAmount' in data:
                invoice.total_amount = parse_amount(data['totalAmount'], 'totalAmount', allow_zero=False)
                amounts_changed = updated = True
            if 'paidAmount' in data:
                invoice.paid_amount = parse_amount(data['paidAmount'], 'paidAmount')
                amounts_changed = updated = True
            if 'dueDate' in data:
                invoice.due_date = parse_date(data['dueDate'], 'dueDate')
                updated = True
            if 'academicYearId' in data:
                invoice.academic_year_id = None if data['academicYearId'] is None else ensure_exists(
                    session, AcademicYear, parse_id(data['academicYearId'], 'INVALID_ACADEMIC_YEAR_ID'), 'academic_year'
                ).id
                updated = True

            if amounts_changed:
                if Decimal(invoice.paid_amount) > Decimal(invoice.total_amount):
                    raise ValidationError("paidAmount cannot exceed totalAmount", 'INVALID_AMOUNTS')
                invoice.due_amount = Decimal(invoice.total_amount) - Decimal(invoice.paid_amount)

            if data.get('status'):
                invoice.status = parse_enum(InvoiceStatusEnum, data['status'])
                updated = True
            elif amounts_changed:
                invoice.status = derive_invoice_status(invoice)

            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')

            session.commit()
            return jsonify(invoice.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/fee-invoices', methods=['DELETE'])
    @api_endpoint
    def delete_fee_invoice():
        invoice_id = query_id()
        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            snapshot = invoice.to_dict()
            session.delete(invoice)
            session.commit()
            logger.info(f"Invoice {snapshot['invoiceNumber']} deleted")
            return deleted_response('Fee invoice', snapshot)
        finally:
            session.close()

    # ===== FEE PAYMENTS =====
    # Payments are append-only: no update or delete routes

    @api_bp.route('/fee-payments', methods=['GET'])
    @api_endpoint
    def get_fee_payments():
        session = get_session()
        try:
            if request.args.get('id'):
                payment = get_or_404(session, FeePayment, query_id(), 'payment')
                return jsonify(payment.to_dict()), 200

            query = session.query(FeePayment)
            if request.args.get('invoiceId'):
                query = query.filter(FeePayment.invoice_id == parse_id(request.args['invoiceId'], 'INVALID_INVOICE_ID'))
            if request.args.get('paymentStatus'):
                query = query.filter(FeePayment.payment_status == parse_enum(
                    PaymentStatusEnum, request.args['paymentStatus'], 'paymentStatus', 'INVALID_PAYMENT_STATUS'
                ))
            if request.args.get('paymentMethod'):
                query = query.filter(FeePayment.payment_method == parse_enum(
                    PaymentMethodEnum, request.args['paymentMethod'], 'paymentMethod', 'INVALID_PAYMENT_METHOD'
                ))

            return list_response(paginate(query, FeePayment.id))
        finally:
            session.close()

    @api_bp.route('/fee-payments', methods=['POST'])
    @api_endpoint
    def create_fee_payment():
        data = get_json_body()

        if data.get('invoiceId') in (None, ''):
            raise ValidationError("Invoice ID is required", 'MISSING_INVOICE_ID')
        invoice_id = parse_id(data['invoiceId'], 'INVALID_INVOICE_ID', 'invoice ID')
        amount = parse_amount(data.get('amount'), 'amount', 'INVALID_AMOUNT', allow_zero=False)
        if not data.get('paymentMethod'):
            raise ValidationError("Payment method is required", 'MISSING_PAYMENT_METHOD')
        method = parse_enum(PaymentMethodEnum, data['paymentMethod'], 'paymentMethod', 'INVALID_PAYMENT_METHOD')
        if not data.get('paymentDate'):
            raise ValidationError("Payment date is required", 'MISSING_PAYMENT_DATE')
        payment_date = parse_timestamp(data['paymentDate'], 'paymentDate', 'INVALID_PAYMENT_DATE')
        if not data.get('paymentStatus'):
            raise ValidationError("Payment status is required", 'MISSING_PAYMENT_STATUS')
        status = parse_enum(PaymentStatusEnum, data['paymentStatus'], 'paymentStatus', 'INVALID_PAYMENT_STATUS')
        transaction_id = str(data.get('transactionId') or '').strip() or None

        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            payment = record_manual_payment(
                session, invoice, amount, method, payment_date, status,
                transaction_id=transaction_id, remarks=data.get('remarks'),
            )
            session.commit()
            return jsonify(payment.to_dict()), 201
        except IntegrityError:
            session.rollback()
            raise ValidationError("A payment with this transaction ID already exists", 'DUPLICATE_TRANSACTION_ID')
        finally:
            session.close()

    # ===== FEE TEMPLATES =====

    @api_bp.route('/fee-templates', methods=['GET'])
    @api_endpoint
    def get_fee_templates():
        session = get_session()
        try:
            if request.args.get('id'):
                template = get_or_404(session, FeeTemplate, query_id(), 'fee_template')
                return jsonify(template.to_dict()), 200

            query = session.query(FeeTemplate)
            if request.args.get('classId'):
                query = query.filter(FeeTemplate.class_id == parse_id(request.args['classId'], 'INVALID_CLASS_ID'))
            if request.args.get('feeType'):
                query = query.filter(FeeTemplate.fee_type == request.args['feeType'].strip())
            if request.args.get('frequency'):
                query = query.filter(FeeTemplate.frequency == _frequency(request.args['frequency']))
            search = request.args.get('search', '').strip()
            if search:
                query = query.filter(FeeTemplate.template_name.ilike(f'%{search}%'))
            return list_response(paginate(query, FeeTemplate.id))
        finally:
            session.close()

    @api_bp.route('/fee-templates', methods=['POST'])
    @api_endpoint
    def create_fee_template():
        data = get_json_body()
        template_name = _required_text(data, 'templateName', 'MISSING_TEMPLATE_NAME')
        if data.get('amount') is None:
            raise ValidationError("Amount is required", 'MISSING_AMOUNT')
        amount = parse_amount(data['amount'], 'amount', 'INVALID_AMOUNT')
        fee_type = _required_text(data, 'feeType', 'MISSING_FEE_TYPE')
        _required_text(data, 'frequency', 'MISSING_FREQUENCY')
        frequency = _frequency(data['frequency'])

        session = get_session()
        try:
            class_id = None
            if data.get('classId') is not None:
                class_id = ensure_exists(session, Class, parse_id(data['classId'], 'INVALID_CLASS_ID', 'classId'), 'class').id

            template = FeeTemplate(template_name=template_name, class_id=class_id, amount=amount,
                                   fee_type=fee_type, frequency=frequency)
            session.add(template)
            session.commit()
            return jsonify(template.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/fee-templates', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_fee_template():
        template_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            template = get_or_404(session, FeeTemplate, template_id, 'fee_template')
            updated = False
            if 'templateName' in data:
                template.template_name = _required_text(data, 'templateName', 'INVALID_TEMPLATE_NAME')
                updated = True
            if 'amount' in data:
                template.amount = parse_amount(data['amount'], 'amount', 'INVALID_AMOUNT')
                updated = True
            if 'feeType' in data:
                template.fee_type = _required_text(data, 'feeType', 'INVALID_FEE_TYPE')
                updated = True
            if 'frequency' in data:
                template.frequency = _frequency(data['frequency'])
                updated = True
            if 'classId' in data:
                template.class_id = None if data['classId'] is None else ensure_exists(
                    session, Class, parse_id(data['classId'], 'INVALID_CLASS_ID', 'classId'), 'class'
                ).id
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(template.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/fee-templates', methods=['DELETE'])
    @api_endpoint
    def delete_fee_template():
        template_id = query_id()
        session = get_session()
        try:
            template = get_or_404(session, FeeTemplate, template_id, 'fee_template')
            snapshot = template.to_dict()
            session.delete(template)
            session.commit()
            return deleted_response('Fee template', snapshot)
        finally:
            session.close()

    # ===== FEE CONCESSIONS =====

    @api_bp.route('/fee-concessions', methods=['GET'])
    @api_endpoint
    def get_fee_concessions():
        session = get_session()
        try:
            if request.args.get('id'):
                concession = get_or_404(session, FeeConcession, query_id(), 'concession')
                return jsonify(concession.to_dict()), 200

            query = session.query(FeeConcession)
            if request.args.get('studentId'):
                query = query.filter(FeeConcession.student_id == parse_id(request.args['studentId'], 'INVALID_STUDENT_ID'))
            if request.args.get('concessionType'):
                query = query.filter(FeeConcession.concession_type == request.args['concessionType'].strip())
            if request.args.get('startDate'):
                start = parse_date(request.args['startDate'], 'startDate')
                query = query.filter(FeeConcession.created_at >= datetime.combine(start, time.min))
            if request.args.get('endDate'):
                end = parse_date(request.args['endDate'], 'endDate')
                query = query.filter(FeeConcession.created_at <= datetime.combine(end, time.max))
            return list_response(paginate(query, FeeConcession.created_at))
        finally:
            session.close()

    @api_bp.route('/fee-concessions', methods=['POST'])
    @api_endpoint
    def create_fee_concession():
        data = get_json_body()
        if data.get('studentId') in (None, ''):
            raise ValidationError("Student ID is required", 'MISSING_STUDENT_ID')
        concession_type = _required_text(data, 'concessionType', 'MISSING_CONCESSION_TYPE')
        if data.get('concessionPercentage') in (None, ''):
            raise ValidationError("Concession percentage is required", 'MISSING_CONCESSION_PERCENTAGE')
        if data.get('amountWaived') in (None, ''):
            raise ValidationError("Amount waived is required", 'MISSING_AMOUNT_WAIVED')
        reason = _required_text(data, 'reason', 'MISSING_REASON')

        student_id = parse_id(data['studentId'], 'INVALID_STUDENT_ID', 'student ID')
        percentage = _percentage(data['concessionPercentage'])
        amount_waived = parse_amount(data['amountWaived'], 'amountWaived', 'INVALID_AMOUNT_WAIVED')

        session = get_session()
        try:
            ensure_exists(session, Student, student_id, 'student')
            concession = FeeConcession(
                student_id=student_id,
                concession_type=concession_type,
                concession_percentage=percentage,
                amount_waived=amount_waived,
                reason=reason[:255],
            )
            if data.get('approvedBy') not in (None, ''):
                concession.approved_by = _approver(session, data['approvedBy'])
                concession.approved_at = parse_timestamp(data.get('approvedAt'), 'approvedAt', 'INVALID_APPROVED_AT')
            session.add(concession)
            session.commit()
            logger.info(f"Concession {concession_type} ({percentage}%) recorded for student {student_id}")
            return jsonify(concession.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/fee-concessions', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_fee_concession():
        concession_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            concession = get_or_404(session, FeeConcession, concession_id, 'concession')
            updated = False
            if 'concessionType' in data:
                concession.concession_type = _required_text(data, 'concessionType', 'INVALID_CONCESSION_TYPE')
                updated = True
            if 'concessionPercentage' in data:
                concession.concession_percentage = _percentage(data['concessionPercentage'])
                updated = True
            if 'amountWaived' in data:
                concession.amount_waived = parse_amount(data['amountWaived'], 'amountWaived', 'INVALID_AMOUNT_WAIVED')
                updated = True
            if 'reason' in data:
                concession.reason = _required_text(data, 'reason', 'INVALID_REASON')[:255]
                updated = True
            if 'approvedBy' in data:
                if data['approvedBy'] is None:
                    concession.approved_by = None
                    concession.approved_at = None
                else:
                    concession.approved_by = _approver(session, data['approvedBy'])
                    concession.approved_at = parse_timestamp(data.get('approvedAt'), 'approvedAt', 'INVALID_APPROVED_AT')
                updated = True
            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')
            session.commit()
            return jsonify(concession.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/fee-concessions', methods=['DELETE'])
    @api_endpoint
    def delete_fee_concession():
        concession_id = query_id()
        session = get_session()
        try:
            concession = get_or_404(session, FeeConcession, concession_id, 'concession')
            snapshot = concession.to_dict()
            session.delete(concession)
            session.commit()
            return deleted_response('Fee concession', snapshot)
        finally:
            session.close()


def _required_text(data, field, code):
    value = str(data.get(field) or '').strip()
    if not value:
        raise ValidationError(f"{field} is required", code)
    return value


def _frequency(value):
    return parse_enum(FeeFrequencyEnum, value, 'frequency', 'INVALID_FREQUENCY')


def _percentage(value):
    percentage = parse_amount(value, 'concessionPercentage', 'INVALID_CONCESSION_PERCENTAGE')
    if percentage > 100:
        raise ValidationError("Concession percentage must be between 0 and 100", 'INVALID_PERCENTAGE_RANGE')
    return percentage


def _approver(session, value):
    approver_id = parse_id(value, 'INVALID_APPROVER_ID', 'approver ID')
    return ensure_exists(session, User, approver_id, 'approver').id
