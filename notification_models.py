"""
Notification Models
In-app notifications and the outbound WhatsApp message log
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index
from datetime import datetime
from models import Base, enum_column, iso
import enum


# ===== ENUMS =====

class NotificationTypeEnum(enum.Enum):
    ATTENDANCE = "attendance"
    FEE = "fee"
    ACADEMIC = "academic"
    GENERAL = "general"


class RecipientTypeEnum(enum.Enum):
    INDIVIDUAL = "individual"
    CLASS = "class"
    SECTION = "section"
    ALL = "all"


class MessageStatusEnum(enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# ===== NOTIFICATION MODEL =====

class Notification(Base):
    __tablename__ = 'notifications'
    __table_args__ = (
        Index('idx_notification_recipient', 'recipient_id'),
        Index('idx_notification_read', 'is_read'),
    )

    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = enum_column(NotificationTypeEnum, nullable=False, default=NotificationTypeEnum.GENERAL)
    is_read = Column(Boolean, default=False)
    sent_via_whatsapp = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'recipientId': self.recipient_id,
            'title': self.title,
            'message': self.message,
            'type': self.type.value if self.type else None,
            'isRead': self.is_read,
            'sentViaWhatsapp': self.sent_via_whatsapp,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.title} -> {self.recipient_id}>"


# ===== WHATSAPP MESSAGE LOG =====

class WhatsAppMessage(Base):
    """Every outbound WhatsApp message, delivered or simulated"""
    __tablename__ = 'whatsapp_messages'
    __table_args__ = (
        Index('idx_whatsapp_recipient', 'recipient_type', 'recipient_id'),
        Index('idx_whatsapp_status', 'status'),
    )

    id = Column(Integer, primary_key=True)
    recipient_type = enum_column(RecipientTypeEnum, nullable=False, default=RecipientTypeEnum.INDIVIDUAL)
    recipient_id = Column(Integer, nullable=True)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=True)
    section_id = Column(Integer, ForeignKey('sections.id'), nullable=True)
    phone_number = Column(String(20), nullable=True)
    message_text = Column(Text, nullable=False)
    sent_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    sent_at = Column(DateTime, default=datetime.utcnow)
    status = enum_column(MessageStatusEnum, nullable=False, default=MessageStatusEnum.PENDING)
    provider_message_id = Column(String(200), nullable=True)
    error_message = Column(Text, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'recipientType': self.recipient_type.value if self.recipient_type else None,
            'recipientId': self.recipient_id,
            'classId': self.class_id,
            'sectionId': self.section_id,
            'phoneNumber': self.phone_number,
            'messageText': self.message_text,
            'sentBy': self.sent_by,
            'sentAt': iso(self.sent_at),
            'status': self.status.value if self.status else None,
            'providerMessageId': self.provider_message_id,
            'errorMessage': self.error_message,
        }

    def __repr__(self):
        return f"<WhatsAppMessage {self.phone_number} {self.status.value if self.status else None}>"
