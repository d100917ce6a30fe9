"""
Notification Routes
In-app notifications, the WhatsApp message log and key/value settings
"""

import logging

from flask import request, jsonify

from database import get_session
from models import User, Class, Section, Setting
from notification_models import (
    Notification, WhatsAppMessage, NotificationTypeEnum, RecipientTypeEnum, MessageStatusEnum
)
from whatsapp_helper import send_whatsapp_message
from api_helpers import (
    api_endpoint, get_json_body, query_id, get_or_404, ensure_exists, paginate, list_response, deleted_response
)
from validators import (
    ValidationError, NotFoundError, require_fields, parse_id, parse_bool, parse_enum, validate_phone
)

logger = logging.getLogger(__name__)


def create_notification_routes(api_bp):
    """Add notification, WhatsApp and settings routes to the API blueprint"""

    # ===== NOTIFICATIONS =====

    @api_bp.route('/notifications', methods=['GET'])
    @api_endpoint
    def get_notifications():
        session = get_session()
        try:
            if request.args.get('id'):
                notification = get_or_404(session, Notification, query_id(), 'notification')
                return jsonify(notification.to_dict()), 200

            query = session.query(Notification)
            if request.args.get('recipientId'):
                query = query.filter(Notification.recipient_id == parse_id(request.args['recipientId'], 'INVALID_RECIPIENT_ID'))
            if request.args.get('type'):
                query = query.filter(Notification.type == parse_enum(
                    NotificationTypeEnum, request.args['type'], 'type', 'INVALID_TYPE'
                ))
            if request.args.get('isRead'):
                query = query.filter(Notification.is_read == parse_bool(request.args['isRead'], 'isRead'))

            return list_response(paginate(query, Notification.id))
        finally:
            session.close()

    @api_bp.route('/notifications', methods=['POST'])
    @api_endpoint
    def create_notification():
        data = get_json_body()
        require_fields(data, 'recipientId', 'title', 'message', 'type')

        recipient_id = parse_id(data['recipientId'], 'INVALID_RECIPIENT_ID', 'recipient ID')
        notification_type = parse_enum(NotificationTypeEnum, data['type'], 'type', 'INVALID_TYPE')

        session = get_session()
        try:
            ensure_exists(session, User, recipient_id, 'recipient')
            notification = Notification(
                recipient_id=recipient_id,
                title=str(data['title']).strip(),
                message=str(data['message']).strip(),
                type=notification_type,
                is_read=parse_bool(data.get('isRead', False), 'isRead'),
                sent_via_whatsapp=parse_bool(data.get('sentViaWhatsapp', False), 'sentViaWhatsapp'),
            )
            session.add(notification)
            session.commit()
            return jsonify(notification.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/notifications', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_notification():
        notification_id = query_id()
        data = get_json_body()

        session = get_session()
        try:
            notification = get_or_404(session, Notification, notification_id, 'notification')
            updated = False

            for field, attr in (('title', 'title'), ('message', 'message')):
                if field in data:
                    value = str(data[field] or '').strip()
                    if not value:
                        raise ValidationError(f"{field} cannot be empty", f"INVALID_{field.upper()}")
                    setattr(notification, attr, value)
                    updated = True
            if 'type' in data:
                notification.type = parse_enum(NotificationTypeEnum, data['type'], 'type', 'INVALID_TYPE')
                updated = True
            if 'isRead' in data:
                notification.is_read = parse_bool(data['isRead'], 'isRead')
                updated = True
            if 'sentViaWhatsapp' in data:
                notification.sent_via_whatsapp = parse_bool(data['sentViaWhatsapp'], 'sentViaWhatsapp')
                updated = True

            if not updated:
                raise ValidationError("No valid fields to update", 'NO_UPDATES')

            session.commit()
            return jsonify(notification.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/notifications', methods=['DELETE'])
    @api_endpoint
    def delete_notification():
        notification_id = query_id()
        session = get_session()
        try:
            notification = get_or_404(session, Notification, notification_id, 'notification')
            snapshot = notification.to_dict()
            session.delete(notification)
            session.commit()
            return deleted_response('Notification', snapshot)
        finally:
            session.close()

    # ===== WHATSAPP MESSAGES =====

    @api_bp.route('/whatsapp-messages', methods=['GET'])
    @api_endpoint
    def get_whatsapp_messages():
        session = get_session()
        try:
            if request.args.get('id'):
                message = get_or_404(session, WhatsAppMessage, query_id(), 'message')
                return jsonify(message.to_dict()), 200

            query = session.query(WhatsAppMessage)
            if request.args.get('recipientType'):
                query = query.filter(WhatsAppMessage.recipient_type == parse_enum(
                    RecipientTypeEnum, request.args['recipientType'], 'recipientType', 'INVALID_RECIPIENT_TYPE'
                ))
            if request.args.get('status'):
                query = query.filter(WhatsAppMessage.status == parse_enum(MessageStatusEnum, request.args['status']))
            if request.args.get('sentBy'):
                query = query.filter(WhatsAppMessage.sent_by == parse_id(request.args['sentBy'], 'INVALID_SENT_BY'))

            return list_response(paginate(query, WhatsAppMessage.id))
        finally:
            session.close()

    @api_bp.route('/whatsapp-messages', methods=['POST'])
    @api_endpoint
    def create_whatsapp_message():
        """Send (or simulate) a WhatsApp message and log it"""
        data = get_json_body()
        require_fields(data, 'recipientType', 'messageText', 'sentBy')

        recipient_type = parse_enum(RecipientTypeEnum, data['recipientType'], 'recipientType', 'INVALID_RECIPIENT_TYPE')
        sent_by = parse_id(data['sentBy'], 'INVALID_SENT_BY', 'sentBy')
        phone = validate_phone(data.get('phoneNumber'), 'phoneNumber')
        if recipient_type == RecipientTypeEnum.INDIVIDUAL and not phone:
            raise ValidationError("phoneNumber is required for individual messages", 'MISSING_PHONE_NUMBER')

        session = get_session()
        try:
            ensure_exists(session, User, sent_by, 'user')
            recipient_id = class_id = section_id = None
            if data.get('recipientId') is not None:
                recipient_id = ensure_exists(
                    session, User, parse_id(data['recipientId'], 'INVALID_RECIPIENT_ID'), 'recipient'
                ).id
            if recipient_type == RecipientTypeEnum.CLASS:
                if data.get('classId') is None:
                    raise ValidationError("classId is required for class messages", 'MISSING_CLASS_ID')
                class_id = ensure_exists(session, Class, parse_id(data['classId'], 'INVALID_CLASS_ID'), 'class').id
            if recipient_type == RecipientTypeEnum.SECTION:
                if data.get('sectionId') is None:
                    raise ValidationError("sectionId is required for section messages", 'MISSING_SECTION_ID')
                section_id = ensure_exists(session, Section, parse_id(data['sectionId'], 'INVALID_SECTION_ID'), 'section').id

            message = send_whatsapp_message(
                session, phone, str(data['messageText']).strip(), sent_by,
                recipient_type=recipient_type, recipient_id=recipient_id,
                class_id=class_id, section_id=section_id,
            )
            session.commit()
            return jsonify(message.to_dict()), 201
        finally:
            session.close()

    @api_bp.route('/whatsapp-messages', methods=['PUT', 'PATCH'])
    @api_endpoint
    def update_whatsapp_message():
        """Only delivery status is mutable"""
        message_id = query_id()
        data = get_json_body()
        if 'status' not in data:
            raise ValidationError("No valid fields to update", 'NO_UPDATES')

        session = get_session()
        try:
            message = get_or_404(session, WhatsAppMessage, message_id, 'message')
            message.status = parse_enum(MessageStatusEnum, data['status'])
            if 'errorMessage' in data:
                message.error_message = data['errorMessage']
            session.commit()
            return jsonify(message.to_dict()), 200
        finally:
            session.close()

    @api_bp.route('/whatsapp-messages', methods=['DELETE'])
    @api_endpoint
    def delete_whatsapp_message():
        message_id = query_id()
        session = get_session()
        try:
            message = get_or_404(session, WhatsAppMessage, message_id, 'message')
            snapshot = message.to_dict()
            session.delete(message)
            session.commit()
            return deleted_response('WhatsApp message', snapshot)
        finally:
            session.close()

    # ===== SETTINGS =====

    @api_bp.route('/settings', methods=['GET'])
    @api_endpoint
    def get_settings():
        session = get_session()
        try:
            key = request.args.get('key')
            if key:
                setting = session.query(Setting).filter_by(key=key).first()
                if not setting:
                    raise NotFoundError("Setting not found", 'SETTING_NOT_FOUND')
                return jsonify(setting.to_dict()), 200

            settings = session.query(Setting).order_by(Setting.key).all()
            return list_response(settings)
        finally:
            session.close()

    @api_bp.route('/settings', methods=['PUT', 'POST'])
    @api_endpoint
    def upsert_setting():
        data = get_json_body()
        key = str(data.get('key') or '').strip()
        if not key:
            raise ValidationError("Setting key is required", 'MISSING_KEY')
        if 'value' not in data:
            raise ValidationError("Setting value is required", 'MISSING_VALUE')
        value = data['value'] if data['value'] is None else str(data['value'])

        session = get_session()
        try:
            setting = session.query(Setting).filter_by(key=key).first()
            created = setting is None
            if created:
                setting = Setting(key=key, value=value)
                session.add(setting)
            else:
                setting.value = value
            session.commit()
            logger.info(f"Setting {key} {'created' if created else 'updated'}")
            return jsonify(setting.to_dict()), 201 if created else 200
        finally:
            session.close()

    @api_bp.route('/settings', methods=['DELETE'])
    @api_endpoint
    def delete_setting():
        key = (request.args.get('key') or '').strip()
        if not key:
            raise ValidationError("Setting key is required", 'MISSING_KEY')
        session = get_session()
        try:
            setting = session.query(Setting).filter_by(key=key).first()
            if not setting:
                raise NotFoundError("Setting not found", 'SETTING_NOT_FOUND')
            snapshot = setting.to_dict()
            session.delete(setting)
            session.commit()
            return deleted_response('Setting', snapshot)
        finally:
            session.close()
