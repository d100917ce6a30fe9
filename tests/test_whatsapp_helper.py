from unittest.mock import patch, MagicMock

import pytest
import requests

from database import get_session
from notification_models import MessageStatusEnum, RecipientTypeEnum
from whatsapp_helper import WhatsAppSender, send_whatsapp_message


def _response(status_code, payload):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    return response


@pytest.mark.parametrize('raw, expected', [
    ('9876543210', '+919876543210'),
    ('+91 98765-43210', '+919876543210'),
    ('447911123456', '+447911123456'),
    ('', ''),
    ('abc', ''),
])
def test_normalize_phone(raw, expected):
    assert WhatsAppSender._normalize_phone(raw) == expected


def test_from_config_requires_credentials():
    assert WhatsAppSender.from_config({'WHATSAPP_ACCESS_TOKEN': 'token'}) is None

    sender = WhatsAppSender.from_config({
        'WHATSAPP_ACCESS_TOKEN': 'token', 'WHATSAPP_PHONE_NUMBER_ID': '12345', 'WHATSAPP_API_VERSION': 'v19.0'
    })
    assert sender.url == 'https://graph.facebook.com/v19.0/12345/messages'


def test_send_message_posts_text_payload():
    sender = WhatsAppSender('token', '12345')
    with patch('whatsapp_helper.requests.post', return_value=_response(200, {'messages': [{'id': 'wamid.1'}]})) as post:
        result = sender.send_message('9876543210', 'Hello')

    assert result == {'success': True, 'message_id': 'wamid.1', 'error': None}
    kwargs = post.call_args.kwargs
    assert kwargs['json']['to'] == '919876543210'
    assert kwargs['json']['text'] == {'body': 'Hello'}
    assert kwargs['headers']['Authorization'] == 'Bearer token'


def test_send_message_api_error():
    sender = WhatsAppSender('token', '12345')
    error = {'error': {'message': 'Invalid OAuth access token'}}
    with patch('whatsapp_helper.requests.post', return_value=_response(401, error)):
        result = sender.send_message('9876543210', 'Hello')

    assert result['success'] is False
    assert result['error'] == 'Invalid OAuth access token'


def test_send_message_network_error():
    sender = WhatsAppSender('token', '12345')
    with patch('whatsapp_helper.requests.post', side_effect=requests.ConnectionError('offline')):
        result = sender.send_message('9876543210', 'Hello')

    assert result['success'] is False
    assert 'offline' in result['error']


def test_unconfigured_send_is_logged_as_sent(app):
    session = get_session()
    try:
        with app.app_context():
            record = send_whatsapp_message(session, '9876543210', 'Hi', sent_by=1)
            session.commit()
        assert record.status == MessageStatusEnum.SENT
        assert record.provider_message_id is None
    finally:
        session.close()


def test_failed_delivery_is_logged(app):
    app.config.update(WHATSAPP_ACCESS_TOKEN='token', WHATSAPP_PHONE_NUMBER_ID='12345')
    session = get_session()
    try:
        with app.app_context(), patch(
            'whatsapp_helper.requests.post', return_value=_response(400, {'error': {'message': 'Bad number'}})
        ):
            record = send_whatsapp_message(session, '9876543210', 'Hi', sent_by=1,
                                           recipient_type=RecipientTypeEnum.INDIVIDUAL)
            session.commit()
        assert record.status == MessageStatusEnum.FAILED
        assert record.error_message == 'Bad number'
    finally:
        session.close()


def test_whatsapp_message_route(client):
    response = client.post('/api/whatsapp-messages', json={
        'recipientType': 'individual', 'phoneNumber': '98765 43210', 'messageText': 'School closed tomorrow',
        'sentBy': 1,
    })

    assert response.status_code == 201
    body = response.get_json()
    assert body['status'] == 'sent'
    assert body['phoneNumber'] == '9876543210'

    response = client.post('/api/whatsapp-messages', json={
        'recipientType': 'class', 'messageText': 'Exam on Monday', 'sentBy': 1,
    })
    assert response.get_json()['code'] == 'MISSING_CLASS_ID'
