"""
Online Payment Routes
Razorpay order creation, checkout confirmation, webhooks, EMI installments,
UPI QR codes, the paid-invoice receipt PDF and the printable HTML invoice
"""

import io
import json
import logging
import time
from datetime import datetime, date

from flask import request, jsonify, current_app, send_file, make_response, render_template_string
from sqlalchemy.exc import IntegrityError
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from database import get_session
from models import Student, AcademicYear
from fee_models import FeeInvoice, InvoiceStatusEnum, InstallmentStatusEnum, PaymentStatusEnum
from notification_models import NotificationTypeEnum
from fee_helpers import (
    check_invoice_payable, setup_emi_plan, apply_captured_payment, record_failed_payment,
    find_payment_by_transaction, get_installments, installment_summary, has_installment_plan,
    outstanding_installment_total,
    notify_admins, notify_user, EMI_INSTALLMENTS
)
from payment_gateway import (
    get_razorpay_client, create_order, fetch_order, fetch_payment, create_qr_code, fetch_qr_code,
    verify_payment_signature, verify_webhook_signature, to_paise, from_paise
)
from api_helpers import api_endpoint, get_json_body, get_or_404
from validators import (
    ApiError, ValidationError, ServiceUnavailableError, parse_id, parse_amount, parse_bool
)

logger = logging.getLogger(__name__)

PAYMENT_TYPES = ('full', 'emi')
QR_TYPES = ('upi_qr', 'bharat_qr')
QR_USAGES = ('single_use', 'multiple_use')


def _require_client():
    client = get_razorpay_client()
    if client is None:
        raise ServiceUnavailableError("Payment gateway is not configured", 'PAYMENT_NOT_CONFIGURED')
    return client


def _invoice_id_from(value):
    if value in (None, ''):
        raise ValidationError("Invoice ID is required", 'MISSING_INVOICE_ID')
    return parse_id(value, code='INVALID_INVOICE_ID', label='invoice ID')


def _notes_invoice_id(entity):
    notes = entity.get('notes') if isinstance(entity, dict) else None
    if not isinstance(notes, dict):
        return None
    return str(notes.get('invoiceId') or '').strip() or None


def _check_payment_invoice(client, gateway_payment, order_id, invoice_id):
    """The captured payment must belong to the invoice being confirmed"""
    paid_for = _notes_invoice_id(gateway_payment)
    if paid_for is None:
        paid_for = _notes_invoice_id(fetch_order(client, gateway_payment.get('order_id') or order_id))
    if paid_for is None:
        logger.warning(f"Payment {gateway_payment.get('id')} carries no invoiceId note")
        raise ValidationError("Payment is not linked to an invoice", 'INVOICE_MISMATCH')
    if paid_for != str(invoice_id):
        logger.warning(f"Payment {gateway_payment.get('id')} belongs to invoice {paid_for}, not {invoice_id}")
        raise ValidationError("Payment does not belong to this invoice", 'INVOICE_MISMATCH')


def create_payment_routes(api_bp):
    """Add online payment routes to the API blueprint"""

    # ===== ORDER CREATION =====

    @api_bp.route('/payments/create', methods=['POST'])
    @api_endpoint
    def create_payment_order():
        """Create a Razorpay order for the full due amount or the first EMI installment"""
        client = _require_client()
        data = get_json_body()

        if data.get('invoiceId') in (None, ''):
            raise ValidationError("Invoice ID is required", 'MISSING_INVOICE_ID')
        payment_type = data.get('paymentType')
        if not payment_type:
            raise ValidationError("Payment type is required", 'MISSING_PAYMENT_TYPE')
        if payment_type not in PAYMENT_TYPES:
            raise ValidationError("Payment type must be 'full' or 'emi'", 'INVALID_PAYMENT_TYPE')
        invoice_id = _invoice_id_from(data.get('invoiceId'))

        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            check_invoice_payable(invoice)

            installment_details = None
            if payment_type == 'emi':
                installments = setup_emi_plan(session, invoice)
                first = installments[0]
                amount = first.amount
                installment_details = {
                    'installmentNumber': first.installment_number,
                    'totalInstallments': EMI_INSTALLMENTS,
                    'dueDate': first.due_date.isoformat(),
                }
            elif has_installment_plan(session, invoice.id):
                # Covers every outstanding installment so all of them settle
                amount = outstanding_installment_total(session, invoice.id)
                if amount <= 0:
                    raise ValidationError("No pending installments found", 'NO_PENDING_INSTALLMENTS')
            else:
                amount = invoice.due_amount

            notes = {
                'invoiceId': str(invoice.id),
                'paymentType': payment_type,
                'installmentNumber': '1' if payment_type == 'emi' else '',
                'invoiceNumber': invoice.invoice_number,
            }
            receipt = f"receipt_{invoice.id}_{int(time.time() * 1000)}"

            # The EMI plan is only kept once the gateway accepted the order
            order = create_order(client, amount, receipt, notes)
            session.commit()

            response = {
                'orderId': order['id'],
                'amount': order.get('amount', to_paise(amount)),
                'amountInRupees': float(amount),
                'currency': order.get('currency', current_app.config.get('PAYMENT_CURRENCY', 'INR')),
                'paymentType': payment_type,
            }
            if installment_details:
                response['installmentDetails'] = installment_details
            return jsonify(response), 201
        finally:
            session.close()

    # ===== CHECKOUT CONFIRMATION =====

    @api_bp.route('/payments/confirm', methods=['POST'])
    @api_endpoint
    def confirm_payment():
        """Verify the checkout signature, re-fetch the payment and apply it to the ledger"""
        client = _require_client()
        data = get_json_body()

        order_id = data.get('razorpay_order_id')
        payment_id = data.get('razorpay_payment_id')
        signature = data.get('razorpay_signature')
        if not (order_id and payment_id and signature):
            raise ValidationError("Payment verification details are required", 'MISSING_VERIFICATION_DETAILS')
        invoice_id = _invoice_id_from(data.get('invoiceId'))

        if not verify_payment_signature(client, order_id, payment_id, signature):
            logger.warning(f"Signature mismatch for order {order_id} / payment {payment_id}")
            raise ValidationError("Payment signature verification failed", 'SIGNATURE_VERIFICATION_FAILED')

        gateway_payment = fetch_payment(client, payment_id)
        if gateway_payment.get('status') != 'captured':
            raise ValidationError(
                f"Payment not captured. Status: {gateway_payment.get('status')}", 'PAYMENT_NOT_CAPTURED'
            )
        _check_payment_invoice(client, gateway_payment, order_id, invoice_id)

        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')

            existing = find_payment_by_transaction(session, payment_id)
            if existing:
                logger.info(f"Payment {payment_id} already recorded, returning current state")
                return jsonify({
                    'success': True,
                    'alreadyProcessed': True,
                    'message': 'Payment already processed',
                    'payment': existing.to_dict(),
                    'invoice': invoice.to_dict(),
                }), 200

            amount = from_paise(gateway_payment.get('amount'))
            payment, installment, next_installment = apply_captured_payment(
                session, invoice, amount, transaction_id=payment_id
            )

            student = invoice.student
            student_label = f"{student.full_name} ({student.admission_number})" if student else f"invoice {invoice.invoice_number}"
            notify_admins(
                session,
                'Fee Payment Received',
                f"Payment of ₹{amount} received from {student_label} for invoice {invoice.invoice_number}"
                + (f" (installment {installment.installment_number})" if installment else ''),
            )
            session.commit()

            response = {
                'success': True,
                'message': 'Payment verified and recorded successfully',
                'payment': payment.to_dict(),
                'invoice': invoice.to_dict(),
            }
            if installment:
                response['installment'] = installment.to_dict()
            if next_installment:
                response['nextInstallment'] = next_installment.to_dict()
            return jsonify(response), 200
        except IntegrityError:
            # A webhook recorded the same payment between our check and commit
            session.rollback()
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            existing = find_payment_by_transaction(session, payment_id)
            return jsonify({
                'success': True,
                'alreadyProcessed': True,
                'message': 'Payment already processed',
                'payment': existing.to_dict() if existing else None,
                'invoice': invoice.to_dict(),
            }), 200
        finally:
            session.close()

    # ===== WEBHOOK =====

    @api_bp.route('/payments/webhook', methods=['POST'])
    @api_endpoint
    def payment_webhook():
        """Server-to-server Razorpay events; acknowledged with 200 once the signature checks out"""
        signature = request.headers.get('X-Razorpay-Signature')
        if not signature:
            raise ValidationError("Missing webhook signature", 'MISSING_SIGNATURE')

        secret = current_app.config.get('RAZORPAY_WEBHOOK_SECRET')
        if not secret:
            raise ApiError("Webhook secret is not configured", "MISSING_WEBHOOK_SECRET", 500)

        body = request.get_data(as_text=True)
        if not verify_webhook_signature(body, signature, secret):
            logger.warning("Webhook rejected: invalid signature")
            raise ValidationError("Invalid webhook signature", 'INVALID_SIGNATURE', 401)

        try:
            event = json.loads(body or '{}')
        except ValueError:
            logger.error("Webhook body is not valid JSON")
            return jsonify({'received': True}), 200

        event_type = event.get('event')
        logger.info(f"Webhook event received: {event_type}")

        session = get_session()
        try:
            if event_type == 'payment.captured':
                _handle_payment_captured(session, event)
            elif event_type == 'payment.failed':
                _handle_payment_failed(session, event)
            elif event_type == 'order.paid':
                order = event.get('payload', {}).get('order', {}).get('entity', {})
                logger.info(f"Order paid: {order.get('id')}")
            else:
                logger.warning(f"Unhandled webhook event: {event_type}")
        except IntegrityError as e:
            session.rollback()
            logger.warning(f"Duplicate webhook delivery ignored: {e}")
        except Exception as e:
            # Acknowledge anyway so the provider does not retry
            session.rollback()
            logger.error(f"Webhook processing error for {event_type}: {e}")
        finally:
            session.close()

        return jsonify({'received': True}), 200

    # ===== INSTALLMENTS =====

    @api_bp.route('/payments/installments', methods=['GET'])
    @api_endpoint
    def get_invoice_installments():
        invoice_id = _invoice_id_from(request.args.get('invoiceId'))

        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            installments = get_installments(session, invoice.id)
            return jsonify({
                'invoice': invoice.to_dict(),
                'installments': [i.to_dict(include_payment=True) for i in installments],
                'summary': installment_summary(installments),
            }), 200
        finally:
            session.close()

    # ===== UPI QR CODES =====

    @api_bp.route('/payments/qr-code', methods=['POST'])
    @api_endpoint
    def create_payment_qr_code():
        client = _require_client()
        data = get_json_body()

        qr_type = data.get('type') or 'upi_qr'
        usage = data.get('usage') or 'multiple_use'
        if qr_type not in QR_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(QR_TYPES)}", 'INVALID_TYPE')
        if usage not in QR_USAGES:
            raise ValidationError(f"usage must be one of: {', '.join(QR_USAGES)}", 'INVALID_USAGE')
        fixed_amount = parse_bool(data.get('fixed_amount', False), 'fixed_amount', 'INVALID_FIXED_AMOUNT')
        if usage == 'single_use' and not fixed_amount:
            raise ValidationError("Single use QR codes require a fixed amount", 'INVALID_USAGE')

        payload = {
            'type': qr_type,
            'name': data.get('name') or 'School Fee Payment',
            'usage': usage,
            'fixed_amount': fixed_amount,
            'description': data.get('description') or 'School fee payment',
        }
        if fixed_amount:
            amount = parse_amount(data.get('payment_amount'), 'payment_amount', 'INVALID_AMOUNT', allow_zero=False)
            payload['payment_amount'] = to_paise(amount)
        for optional in ('customer_id', 'close_by'):
            if data.get(optional):
                payload[optional] = data[optional]
        if isinstance(data.get('notes'), dict):
            payload['notes'] = data['notes']

        qr_code = create_qr_code(client, payload)
        logger.info(f"QR code {qr_code.get('id')} created ({usage})")
        return jsonify({
            'success': True,
            'qrCode': {
                'id': qr_code.get('id'),
                'imageUrl': qr_code.get('image_url'),
                'name': qr_code.get('name'),
                'usage': qr_code.get('usage'),
                'type': qr_code.get('type'),
                'fixedAmount': qr_code.get('fixed_amount'),
                'paymentAmount': float(from_paise(qr_code['payment_amount'])) if qr_code.get('payment_amount') else None,
                'status': qr_code.get('status'),
                'description': qr_code.get('description'),
                'createdAt': qr_code.get('created_at'),
            },
        }), 201

    @api_bp.route('/payments/qr-code/<qr_id>', methods=['GET'])
    @api_endpoint
    def get_payment_qr_code(qr_id):
        client = _require_client()
        qr_code, payments = fetch_qr_code(client, qr_id)
        return jsonify({
            'qrCode': {
                'id': qr_code.get('id'),
                'imageUrl': qr_code.get('image_url'),
                'name': qr_code.get('name'),
                'status': qr_code.get('status'),
                'usage': qr_code.get('usage'),
                'fixedAmount': qr_code.get('fixed_amount'),
                'paymentAmount': float(from_paise(qr_code['payment_amount'])) if qr_code.get('payment_amount') else None,
                'paymentsAmountReceived': float(from_paise(qr_code.get('payments_amount_received'))),
                'paymentsCountReceived': qr_code.get('payments_count_received', 0),
                'closeBy': qr_code.get('close_by'),
                'closedAt': qr_code.get('closed_at'),
            },
            'payments': [{
                'id': p.get('id'),
                'amount': float(from_paise(p.get('amount'))),
                'status': p.get('status'),
                'method': p.get('method'),
                'vpa': p.get('vpa'),
                'createdAt': p.get('created_at'),
            } for p in payments],
        }), 200

    # ===== RECEIPT PDF =====

    @api_bp.route('/payments/invoice-pdf', methods=['GET'])
    @api_endpoint
    def download_invoice_pdf():
        """Receipt PDF for a fully paid invoice"""
        invoice_id = _invoice_id_from(request.args.get('invoiceId'))

        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            if invoice.status != InvoiceStatusEnum.PAID:
                raise ValidationError("Invoice is not fully paid", 'INVOICE_NOT_PAID')
            payments = list(invoice.payments)
            if any(p.payment_status != PaymentStatusEnum.COMPLETED for p in payments):
                raise ValidationError("Invoice has payments that are not completed", 'INCOMPLETE_PAYMENTS')

            buffer = build_invoice_pdf(invoice, invoice.student, payments, get_installments(session, invoice.id))
            return send_file(buffer, as_attachment=True,
                             download_name=f"invoice_{invoice.invoice_number}.pdf",
                             mimetype='application/pdf')
        finally:
            session.close()

    @api_bp.route('/payments/generate-invoice', methods=['POST'])
    @api_endpoint
    def generate_invoice_html():
        """Printable HTML invoice for a fully paid invoice"""
        data = get_json_body()
        invoice_id = _invoice_id_from(data.get('invoiceId'))

        session = get_session()
        try:
            invoice = get_or_404(session, FeeInvoice, invoice_id, 'invoice')
            if invoice.status != InvoiceStatusEnum.PAID:
                raise ValidationError("Invoice must be fully paid to generate an invoice", 'INVOICE_NOT_PAID')
            payments = list(invoice.payments)
            incomplete = [p for p in payments if p.payment_status != PaymentStatusEnum.COMPLETED]
            if incomplete:
                raise ValidationError(f"{len(incomplete)} payment(s) are not completed", 'INCOMPLETE_PAYMENTS')
            installments = get_installments(session, invoice.id)
            unpaid = [i for i in installments if i.status != InstallmentStatusEnum.PAID]
            if unpaid:
                raise ValidationError(f"{len(unpaid)} installment(s) are not paid", 'UNPAID_INSTALLMENTS')

            html = render_template_string(
                INVOICE_HTML,
                invoice=invoice,
                student=invoice.student,
                academic_year=session.get(AcademicYear, invoice.academic_year_id) if invoice.academic_year_id else None,
                payments=payments,
                installments=installments,
                generated_at=datetime.now(),
            )
            response = make_response(html, 200)
            response.headers['Content-Type'] = 'text/html; charset=utf-8'
            response.headers['Content-Disposition'] = f'inline; filename="invoice-{invoice.invoice_number}.html"'
            logger.info(f"HTML invoice generated for {invoice.invoice_number}")
            return response
        finally:
            session.close()


def _event_payment_entity(event):
    return event.get('payload', {}).get('payment', {}).get('entity', {}) or {}


def _invoice_from_notes(session, payment_entity):
    notes = payment_entity.get('notes') or {}
    raw_id = notes.get('invoiceId') if isinstance(notes, dict) else None
    if not raw_id:
        logger.warning(f"Payment {payment_entity.get('id')} has no invoiceId note, skipped")
        return None
    try:
        invoice_id = int(raw_id)
    except (TypeError, ValueError):
        logger.warning(f"Payment {payment_entity.get('id')} has invalid invoiceId note {raw_id!r}")
        return None
    invoice = session.get(FeeInvoice, invoice_id)
    if invoice is None:
        logger.warning(f"Invoice {invoice_id} from payment {payment_entity.get('id')} not found")
    return invoice


def _handle_payment_captured(session, event):
    entity = _event_payment_entity(event)
    payment_id = entity.get('id')
    if find_payment_by_transaction(session, payment_id):
        logger.info(f"Payment {payment_id} already recorded, webhook ignored")
        return

    invoice = _invoice_from_notes(session, entity)
    if invoice is None:
        return

    amount = from_paise(entity.get('amount'))
    payment, installment, _ = apply_captured_payment(session, invoice, amount, transaction_id=payment_id)

    student = session.get(Student, invoice.student_id)
    if installment:
        title = 'EMI Payment Successful'
        message = (f"Installment {installment.installment_number} of ₹{amount} for invoice "
                   f"{invoice.invoice_number} received. Remaining due: ₹{invoice.due_amount}")
    else:
        title = 'Payment Successful'
        message = f"Payment of ₹{amount} for invoice {invoice.invoice_number} received."
    notify_user(session, student.user_id if student else None, title, message, NotificationTypeEnum.FEE)
    session.commit()
    logger.info(f"Webhook applied payment {payment_id} to invoice {invoice.invoice_number}")


def _handle_payment_failed(session, event):
    entity = _event_payment_entity(event)
    payment_id = entity.get('id')
    if find_payment_by_transaction(session, payment_id):
        logger.info(f"Payment {payment_id} already recorded, webhook ignored")
        return

    invoice = _invoice_from_notes(session, entity)
    if invoice is None:
        return

    amount = from_paise(entity.get('amount'))
    reason = entity.get('error_description') or 'Payment failed'
    record_failed_payment(session, invoice, amount, payment_id, remarks=reason[:255])

    student = session.get(Student, invoice.student_id)
    notify_user(
        session, student.user_id if student else None, 'Payment Failed',
        f"Your payment of ₹{amount} for invoice {invoice.invoice_number} failed: {reason}",
        NotificationTypeEnum.FEE,
    )
    session.commit()


def build_invoice_pdf(invoice, student, payments, installments):
    """Receipt PDF for a paid invoice"""
    buffer = io.BytesIO()
    p = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    # Header
    p.setFont("Helvetica-Bold", 20)
    p.drawCentredString(width / 2, height - 50, "Fee Receipt")
    p.setFont("Helvetica", 12)
    p.drawCentredString(width / 2, height - 70, "PAID")

    y = height - 120
    p.setFont("Helvetica-Bold", 12)
    p.drawString(50, y, f"Invoice No: {invoice.invoice_number}")
    p.drawRightString(width - 50, y, f"Date: {date.today().strftime('%d-%b-%Y')}")

    y -= 30
    p.setFont("Helvetica", 11)
    if student:
        p.drawString(50, y, f"Student Name: {student.full_name}")
        y -= 20
        p.drawString(50, y, f"Admission No: {student.admission_number}")
        y -= 20

    for label, value in (
        ("Total Amount:", f"Rs. {invoice.total_amount:,.2f}"),
        ("Paid Amount:", f"Rs. {invoice.paid_amount:,.2f}"),
        ("Due Date:", invoice.due_date.strftime('%d-%b-%Y')),
    ):
        p.drawString(70, y, label)
        p.drawString(250, y, value)
        y -= 20

    y -= 20
    p.setFont("Helvetica-Bold", 11)
    p.drawString(50, y, "Payments:")
    y -= 20
    p.setFont("Helvetica", 10)
    for payment in payments:
        p.drawString(70, y, payment.payment_date.strftime('%d-%b-%Y'))
        p.drawString(170, y, f"Rs. {payment.amount:,.2f}")
        p.drawString(270, y, payment.payment_method.value)
        p.drawString(350, y, payment.transaction_id or '-')
        y -= 18

    if installments:
        y -= 20
        p.setFont("Helvetica-Bold", 11)
        p.drawString(50, y, "Installments:")
        y -= 20
        p.setFont("Helvetica", 10)
        for installment in installments:
            p.drawString(70, y, f"#{installment.installment_number}")
            p.drawString(120, y, f"Rs. {installment.amount:,.2f}")
            p.drawString(240, y, installment.due_date.strftime('%d-%b-%Y'))
            p.drawString(350, y, installment.status.value)
            y -= 18

    p.setFont("Helvetica", 10)
    p.drawString(50, 100, f"Generated at: {datetime.now().strftime('%d-%b-%Y %I:%M %p')}")
    p.drawCentredString(width / 2, 50, "This is a computer-generated receipt")

    p.showPage()
    p.save()

    buffer.seek(0)
    return buffer


INVOICE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Invoice #{{ invoice.invoice_number }}</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 40px; color: #333; }
        .invoice-container { max-width: 900px; margin: 0 auto; }
        .header { border-bottom: 3px solid #007bff; padding-bottom: 10px; margin-bottom: 20px; }
        .header h1 { text-transform: uppercase; margin: 0; }
        .status-badge { background: #28a745; color: #fff; padding: 4px 12px; border-radius: 12px; text-transform: uppercase; }
        .details { display: grid; grid-template-columns: 1fr 1fr; gap: 20px; }
        table { width: 100%; border-collapse: collapse; margin: 20px 0; }
        th, td { padding: 8px; border-bottom: 1px solid #ddd; text-align: left; }
        th { background: #f8f9fa; text-transform: uppercase; font-size: 12px; }
        .summary-total { font-weight: bold; font-size: 1.2em; }
        .terms { font-size: 12px; color: #666; margin-top: 30px; }
        @media print { body { margin: 0; } }
    </style>
</head>
<body>
<div class="invoice-container">
    <div class="header">
        <h1>Fee Invoice</h1>
        <p>Invoice #{{ invoice.invoice_number }} <span class="status-badge">{{ invoice.status.value }}</span></p>
    </div>

    <div class="details">
        <div>
            <h3>Student Details</h3>
            {% if student %}
            <p>Name: {{ student.full_name }}</p>
            <p>Admission No: {{ student.admission_number }}</p>
            {% if student.roll_number %}<p>Roll No: {{ student.roll_number }}</p>{% endif %}
            {% if student.address %}<p>Address: {{ student.address }}</p>{% endif %}
            {% endif %}
        </div>
        <div>
            <h3>Invoice Details</h3>
            <p>Issued: {{ invoice.created_at.strftime('%d %b %Y') if invoice.created_at else 'N/A' }}</p>
            <p>Due Date: {{ invoice.due_date.strftime('%d %b %Y') }}</p>
            {% if academic_year %}<p>Academic Year: {{ academic_year.year_name }}</p>{% endif %}
        </div>
    </div>

    <h3>Payments</h3>
    <table>
        <thead><tr><th>Date</th><th>Amount</th><th>Method</th><th>Transaction</th></tr></thead>
        <tbody>
        {% for payment in payments %}
            <tr>
                <td>{{ payment.payment_date.strftime('%d %b %Y') }}</td>
                <td>&#8377;{{ '%.2f' % payment.amount }}</td>
                <td>{{ payment.payment_method.value }}</td>
                <td>{{ payment.transaction_id or '-' }}</td>
            </tr>
        {% else %}
            <tr><td colspan="4">No payment records</td></tr>
        {% endfor %}
        </tbody>
    </table>

    {% if installments %}
    <h3>Installments</h3>
    <table>
        <thead><tr><th>#</th><th>Amount</th><th>Due Date</th><th>Paid</th><th>Status</th></tr></thead>
        <tbody>
        {% for installment in installments %}
            <tr>
                <td>{{ installment.installment_number }}</td>
                <td>&#8377;{{ '%.2f' % installment.amount }}</td>
                <td>{{ installment.due_date.strftime('%d %b %Y') }}</td>
                <td>&#8377;{{ '%.2f' % installment.paid_amount }}</td>
                <td>{{ installment.status.value }}</td>
            </tr>
        {% endfor %}
        </tbody>
    </table>
    {% endif %}

    <div class="amount-summary">
        <p>Total Amount: &#8377;{{ '%.2f' % invoice.total_amount }}</p>
        <p>Paid Amount: &#8377;{{ '%.2f' % invoice.paid_amount }}</p>
        <p class="summary-total">Amount Due: &#8377;{{ '%.2f' % invoice.due_amount }}</p>
    </div>

    <div class="terms">
        <p>This is a computer-generated invoice and does not require a physical signature.</p>
        <p>Generated on: {{ generated_at.strftime('%d %b %Y %I:%M %p') }}</p>
    </div>
</div>
</body>
</html>
"""
