"""
Shared helpers for the JSON API routes
"""

import logging
from functools import wraps

from flask import request, jsonify, current_app

from validators import ApiError, ValidationError, NotFoundError, parse_id, parse_pagination

logger = logging.getLogger(__name__)


def api_endpoint(f):
    """Render ApiError as {error, code}; anything else becomes a logged 500"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ApiError as e:
            if e.status >= 500:
                logger.error(f"{f.__name__} failed: {e}")
            return e.to_response()
        except Exception as e:
            logger.exception(f"{f.__name__} error: {e}")
            return jsonify({'error': f"Internal server error: {e}", 'code': 'INTERNAL_ERROR'}), 500
    return decorated_function


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", 'INVALID_JSON')
    return data


def query_id(param='id'):
    """Required integer id from the query string"""
    value = request.args.get(param)
    if value in (None, ''):
        raise ValidationError(f"{param} query parameter is required", 'MISSING_ID')
    return parse_id(value)


def get_or_404(session, model, record_id, label):
    """Fetch by primary key or raise <LABEL>_NOT_FOUND (404)"""
    record = session.get(model, record_id)
    if record is None:
        raise NotFoundError(f"{label.replace('_', ' ').capitalize()} not found", f"{label.upper()}_NOT_FOUND")
    return record


def ensure_exists(session, model, record_id, label):
    """Foreign key check on create/update; a missing parent is a 400"""
    record = session.get(model, record_id)
    if record is None:
        raise ValidationError(f"{label.replace('_', ' ').capitalize()} not found", f"{label.upper()}_NOT_FOUND")
    return record


def paginate(query, order_column):
    """Apply limit/offset from the request, newest first"""
    limit, offset = parse_pagination(
        request.args,
        default_limit=current_app.config.get('DEFAULT_PAGE_SIZE', 10),
        max_limit=current_app.config.get('MAX_PAGE_SIZE', 100),
    )
    return query.order_by(order_column.desc()).limit(limit).offset(offset).all()


def list_response(items):
    return jsonify([item.to_dict() for item in items]), 200


def deleted_response(label, record):
    return jsonify({'message': f"{label} deleted successfully", 'deleted': record}), 200


def ensure_unreferenced(session, label, code, references):
    """
    Refuse a delete while other rows still point at the record.

    references: (description, model, criterion) tuples
    """
    in_use = [name for name, model, criterion in references
              if session.query(model.id).filter(criterion).first() is not None]
    if in_use:
        raise ValidationError(f"{label} has {', '.join(in_use)} and cannot be deleted", code)
