"""
Request Validation Utilities
Error types carrying a machine-readable code and the parsers used by the API routes
"""

import re
from datetime import datetime, date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from dateutil import parser as date_parser

from flask import jsonify

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
PAISE = Decimal('0.01')


class ApiError(Exception):
    """Client-visible failure rendered as {error, code}"""
    status = 400

    def __init__(self, message, code, status=None):
        self.message = message
        self.code = code
        if status is not None:
            self.status = status
        super().__init__(f"{code}: {message}")

    def to_response(self):
        return jsonify({'error': self.message, 'code': self.code}), self.status


class ValidationError(ApiError):
    status = 400


class NotFoundError(ApiError):
    status = 404


class GatewayError(ApiError):
    status = 500


class ServiceUnavailableError(ApiError):
    status = 503


# ===== FIELD PARSERS =====

def require_fields(data, *fields, code='MISSING_REQUIRED_FIELDS'):
    """Raise if any field is absent, None or an empty string"""
    missing = [f for f in fields if data.get(f) is None or (isinstance(data.get(f), str) and not data.get(f).strip())]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", code)


def parse_id(value, code='INVALID_ID', label='ID'):
    """Positive integer id from a query string or JSON body"""
    if isinstance(value, bool):
        raise ValidationError(f"Valid {label} is required", code)
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"Valid {label} is required", code)
    if parsed <= 0:
        raise ValidationError(f"Valid {label} is required", code)
    return parsed


def parse_amount(value, field='amount', code='INVALID_AMOUNT', allow_zero=True):
    """Decimal rounded to paise; rejects negatives and non-numbers"""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", code)
    try:
        amount = Decimal(str(value)).quantize(PAISE, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", code)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'non-negative' if allow_zero else 'positive'}", code)
    return amount


def parse_date(value, field='date', code='INVALID_DATE'):
    """Strict YYYY-MM-DD date"""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        raise ValidationError(f"{field} must be in YYYY-MM-DD format", code)
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"{field} is not a valid date", code)


def parse_timestamp(value, field='timestamp', code='INVALID_TIMESTAMP'):
    """Device or client timestamp in any ISO-like format, naive local time"""
    if value in (None, ''):
        return datetime.now()
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        try:
            parsed = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            raise ValidationError(f"{field} is not a valid timestamp", code)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_bool(value, field='value', code='INVALID_BOOLEAN'):
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', '1', 'yes'):
        return True
    if isinstance(value, str) and value.lower() in ('false', '0', 'no'):
        return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean", code)


def parse_enum(enum_cls, value, field='status', code='INVALID_STATUS'):
    """Enum member from its wire value"""
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ', '.join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {field}. Must be one of: {allowed}", code)


def parse_pagination(args, default_limit=10, max_limit=100):
    """limit/offset from query args; limit is capped, never rejected for being large"""
    limit = args.get('limit')
    offset = args.get('offset')

    if limit in (None, ''):
        limit = default_limit
    else:
        try:
            limit = int(limit)
        except ValueError:
            raise ValidationError("limit must be a positive integer", 'INVALID_LIMIT')
        if limit <= 0:
            raise ValidationError("limit must be a positive integer", 'INVALID_LIMIT')

    if offset in (None, ''):
        offset = 0
    else:
        try:
            offset = int(offset)
        except ValueError:
            raise ValidationError("offset must be a non-negative integer", 'INVALID_OFFSET')
        if offset < 0:
            raise ValidationError("offset must be a non-negative integer", 'INVALID_OFFSET')

    return min(limit, max_limit), offset


def validate_email(email):
    email = (email or '').strip().lower()
    if not re.match(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', email):
        raise ValidationError("Invalid email format", 'INVALID_EMAIL')
    return email


def validate_phone(phone, field='phone'):
    """Digits with optional leading +, 10 to 15 digits"""
    if phone in (None, ''):
        return None
    cleaned = re.sub(r'[\s\-\(\)]', '', str(phone).strip())
    if not re.match(r'^\+?\d{10,15}$', cleaned):
        raise ValidationError(f"{field} must contain 10 to 15 digits", 'INVALID_PHONE')
    return cleaned
