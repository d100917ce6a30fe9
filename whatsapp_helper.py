"""
WhatsApp Notification Helper
Sends WhatsApp text messages through the Meta Cloud API and logs every
message in whatsapp_messages.

When no Meta credentials are configured the message is still logged with
status "sent" so the rest of the pipeline behaves the same in development.
"""

import logging
import requests
from typing import Dict, Any, Optional
from datetime import datetime

from flask import current_app

from notification_models import WhatsAppMessage, MessageStatusEnum, RecipientTypeEnum

logger = logging.getLogger(__name__)


class WhatsAppSender:
    """Meta Cloud API (official WhatsApp Business API) text sender"""

    def __init__(self, access_token: str, phone_number_id: str, api_version: str = 'v18.0', timeout: int = 30):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.timeout = timeout

    @classmethod
    def from_config(cls, app_config) -> Optional['WhatsAppSender']:
        """Sender from Flask config, None when credentials are missing"""
        token = app_config.get('WHATSAPP_ACCESS_TOKEN')
        phone_number_id = app_config.get('WHATSAPP_PHONE_NUMBER_ID')
        if not token or not phone_number_id:
            return None
        return cls(token, phone_number_id,
                   api_version=app_config.get('WHATSAPP_API_VERSION', 'v18.0'),
                   timeout=app_config.get('WHATSAPP_TIMEOUT', 30))

    @property
    def url(self) -> str:
        return f'https://graph.facebook.com/{self.api_version}/{self.phone_number_id}/messages'

    def send_message(self, to_phone: str, message: str) -> Dict[str, Any]:
        """
        Send a WhatsApp text message

        Args:
            to_phone: Recipient phone number (with or without country code)
            message: Message text

        Returns:
            dict with 'success', 'message_id', 'error' keys
        """
        to_phone = self._normalize_phone(to_phone)

        if not to_phone:
            return {'success': False, 'message_id': None, 'error': 'Invalid phone number'}

        headers = {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json'
        }
        # Free-form text is only delivered inside the 24h customer service window
        payload = {
            'messaging_product': 'whatsapp',
            'recipient_type': 'individual',
            'to': to_phone.lstrip('+'),
            'type': 'text',
            'text': {'body': message}
        }

        try:
            logger.info(f"[Meta API] Sending to {to_phone}")
            response = requests.post(self.url, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[Meta API] Exception: {e}")
            return {'success': False, 'message_id': None, 'error': str(e)}

        if response.status_code in [200, 201]:
            data = response.json()
            message_id = data.get('messages', [{}])[0].get('id')
            logger.info(f"[Meta API] Message sent successfully. ID: {message_id}")
            return {'success': True, 'message_id': message_id, 'error': None}

        try:
            error = response.json().get('error', {}).get('message', response.text)
        except ValueError:
            error = response.text
        logger.error(f"[Meta API] Error: {error}")
        return {'success': False, 'message_id': None, 'error': error}

    @staticmethod
    def _normalize_phone(phone: str) -> str:
        """+<country><number>, or an empty string when nothing usable is left"""
        if not phone:
            return ''

        # Keep digits and the leading +
        phone = ''.join(c for c in phone if c.isdigit() or c == '+')
        if not phone or phone == '+':
            return ''

        if not phone.startswith('+'):
            # Bare 10-digit numbers are Indian mobiles
            if len(phone) == 10:
                phone = '+91' + phone
            else:
                phone = '+' + phone

        return phone


def send_whatsapp_message(session, phone_number: str, message: str, sent_by: int,
                          recipient_type: RecipientTypeEnum = RecipientTypeEnum.INDIVIDUAL,
                          recipient_id: int = None, class_id: int = None,
                          section_id: int = None) -> WhatsAppMessage:
    """
    Deliver (or simulate) a WhatsApp message and log it.

    The row is added to the caller's session; the caller commits.
    """
    record = WhatsAppMessage(
        recipient_type=recipient_type,
        recipient_id=recipient_id,
        class_id=class_id,
        section_id=section_id,
        phone_number=phone_number,
        message_text=message,
        sent_by=sent_by,
        sent_at=datetime.utcnow(),
        status=MessageStatusEnum.PENDING,
    )

    sender = WhatsAppSender.from_config(current_app.config)
    if sender is None:
        record.status = MessageStatusEnum.SENT
        logger.info(f"WhatsApp not configured, message to {phone_number} logged as sent")
    else:
        result = sender.send_message(phone_number, message)
        record.status = MessageStatusEnum.SENT if result['success'] else MessageStatusEnum.FAILED
        record.provider_message_id = result['message_id']
        record.error_message = result['error']

    session.add(record)
    session.flush()
    return record
