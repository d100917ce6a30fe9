"""
Razorpay Gateway Bridge
Thin wrappers over the Razorpay SDK: orders, payments, QR codes and signature checks
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

import razorpay
import requests
from flask import current_app

from config import PLACEHOLDER_VALUES
from validators import GatewayError

logger = logging.getLogger(__name__)

SDK_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.RequestException,
)


def is_configured() -> bool:
    key_id = current_app.config.get('RAZORPAY_KEY_ID') or ''
    key_secret = current_app.config.get('RAZORPAY_KEY_SECRET') or ''
    return key_id not in PLACEHOLDER_VALUES and key_secret not in PLACEHOLDER_VALUES


def get_razorpay_client():
    """Razorpay client from app config, None when keys are missing"""
    if not is_configured():
        return None
    return razorpay.Client(auth=(current_app.config['RAZORPAY_KEY_ID'], current_app.config['RAZORPAY_KEY_SECRET']))


# ===== AMOUNTS =====

def to_paise(amount) -> int:
    """Rupees to the integer paise the gateway expects"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def from_paise(paise) -> Decimal:
    return (Decimal(int(paise or 0)) / 100).quantize(Decimal('0.01'))


# ===== SIGNATURES =====

def verify_payment_signature(client, order_id: str, payment_id: str, signature: str) -> bool:
    """Checkout signature over 'order_id|payment_id', keyed with the client's secret"""
    if not (order_id and payment_id and signature):
        return False
    try:
        return client.utility.verify_payment_signature({
            'razorpay_order_id': str(order_id),
            'razorpay_payment_id': str(payment_id),
            'razorpay_signature': str(signature),
        })
    except razorpay.errors.SignatureVerificationError:
        return False


def verify_webhook_signature(body: str, signature: str, secret: str) -> bool:
    """Webhook signature over the raw request body"""
    if not (signature and secret):
        return False
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    try:
        return razorpay.Utility().verify_webhook_signature(body, str(signature), secret)
    except razorpay.errors.SignatureVerificationError:
        return False


# ===== SDK CALLS =====

def create_order(client, amount, receipt: str, notes: dict) -> dict:
    data = {
        'amount': to_paise(amount),
        'currency': current_app.config.get('PAYMENT_CURRENCY', 'INR'),
        'receipt': receipt,
        'payment_capture': 1,
        'notes': notes,
    }
    try:
        order = client.order.create(data=data)
    except SDK_ERRORS as e:
        logger.error(f"Razorpay order creation failed for {receipt}: {e}")
        raise GatewayError(f"Failed to create payment order: {e}", 'RAZORPAY_ERROR', 500)
    logger.info(f"Razorpay order {order.get('id')} created for {receipt} ({data['amount']} paise)")
    return order


def fetch_payment(client, payment_id: str) -> dict:
    try:
        return client.payment.fetch(payment_id)
    except SDK_ERRORS as e:
        logger.error(f"Razorpay payment fetch failed for {payment_id}: {e}")
        raise GatewayError(f"Failed to fetch payment details: {e}", 'RAZORPAY_FETCH_ERROR', 400)


def fetch_order(client, order_id: str) -> dict:
    try:
        return client.order.fetch(order_id)
    except SDK_ERRORS as e:
        logger.error(f"Razorpay order fetch failed for {order_id}: {e}")
        raise GatewayError(f"Failed to fetch order details: {e}", 'RAZORPAY_FETCH_ERROR', 400)


def create_qr_code(client, data: dict) -> dict:
    try:
        return client.qrcode.create(data)
    except SDK_ERRORS as e:
        logger.error(f"Razorpay QR creation failed: {e}")
        raise GatewayError(f"Failed to create QR code: {e}", 'QR_CREATION_FAILED', 500)


def fetch_qr_code(client, qr_id: str):
    """QR code details and the payments made against it"""
    try:
        qr_code = client.qrcode.fetch(qr_id)
        payments = client.qrcode.fetch_all_payments(qr_id)
    except SDK_ERRORS as e:
        logger.error(f"Razorpay QR fetch failed for {qr_id}: {e}")
        raise GatewayError(f"Failed to fetch QR code: {e}", 'QR_FETCH_FAILED', 500)
    return qr_code, payments.get('items', []) if isinstance(payments, dict) else []
