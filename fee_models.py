"""
Fee Ledger Models
Invoices, installment plans and payment records
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Date, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
from models import Base, enum_column, iso, money
import enum


# ===== ENUMS =====

class InvoiceStatusEnum(enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class InstallmentStatusEnum(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethodEnum(enum.Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    CHEQUE = "cheque"


class PaymentStatusEnum(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# ===== FEE INVOICE MODEL =====

class FeeInvoice(Base):
    """Amount owed by a student; paid_amount + due_amount == total_amount"""
    __tablename__ = 'fee_invoices'
    __table_args__ = (
        Index('idx_invoice_student', 'student_id'),
        Index('idx_invoice_status', 'status'),
        Index('idx_invoice_due_date', 'due_date'),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    invoice_number = Column(String(50), unique=True, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    due_amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = enum_column(InvoiceStatusEnum, nullable=False, default=InvoiceStatusEnum.PENDING)
    academic_year_id = Column(Integer, ForeignKey('academic_years.id'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    student = relationship("Student")
    installments = relationship("PaymentInstallment", back_populates="invoice",
                                cascade="all, delete-orphan", order_by="PaymentInstallment.installment_number")
    payments = relationship("FeePayment", back_populates="invoice",
                            cascade="all, delete-orphan", order_by="FeePayment.id")

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'invoiceNumber': self.invoice_number,
            'totalAmount': money(self.total_amount),
            'paidAmount': money(self.paid_amount),
            'dueAmount': money(self.due_amount),
            'dueDate': iso(self.due_date),
            'status': self.status.value if self.status else None,
            'academicYearId': self.academic_year_id,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f"<FeeInvoice {self.invoice_number} due={self.due_amount} status={self.status.value if self.status else None}>"


# ===== PAYMENT INSTALLMENT MODEL =====

class PaymentInstallment(Base):
    """One part of an EMI plan"""
    __tablename__ = 'payment_installments'
    __table_args__ = (
        UniqueConstraint('invoice_id', 'installment_number', name='unique_invoice_installment'),
        Index('idx_installment_invoice', 'invoice_id'),
        Index('idx_installment_status', 'status'),
    )

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('fee_invoices.id', ondelete='CASCADE'), nullable=False)
    installment_number = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    status = enum_column(InstallmentStatusEnum, nullable=False, default=InstallmentStatusEnum.PENDING)
    payment_id = Column(Integer, ForeignKey('fee_payments.id'), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    invoice = relationship("FeeInvoice", back_populates="installments")
    payment = relationship("FeePayment", foreign_keys=[payment_id])

    def to_dict(self, include_payment=False):
        data = {
            'id': self.id,
            'invoiceId': self.invoice_id,
            'installmentNumber': self.installment_number,
            'amount': money(self.amount),
            'dueDate': iso(self.due_date),
            'paidAmount': money(self.paid_amount),
            'status': self.status.value if self.status else None,
            'paymentId': self.payment_id,
            'paidAt': iso(self.paid_at),
        }
        if include_payment:
            data['payment'] = self.payment.to_dict() if self.payment else None
        return data

    def __repr__(self):
        return f"<PaymentInstallment #{self.installment_number} amount={self.amount} status={self.status.value if self.status else None}>"


# ===== FEE PAYMENT MODEL =====

class FeePayment(Base):
    """Append-only record of a monetary transaction against an invoice"""
    __tablename__ = 'fee_payments'
    __table_args__ = (
        Index('idx_payment_invoice', 'invoice_id'),
        Index('idx_payment_status', 'payment_status'),
    )

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('fee_invoices.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = enum_column(PaymentMethodEnum, nullable=False)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    # Gateway payment id; unique so a replayed webhook cannot record it twice
    transaction_id = Column(String(100), unique=True, nullable=True)
    payment_status = enum_column(PaymentStatusEnum, nullable=False, default=PaymentStatusEnum.PENDING)
    remarks = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    invoice = relationship("FeeInvoice", back_populates="payments")

    def to_dict(self):
        return {
            'id': self.id,
            'invoiceId': self.invoice_id,
            'amount': money(self.amount),
            'paymentMethod': self.payment_method.value if self.payment_method else None,
            'paymentDate': iso(self.payment_date),
            'transactionId': self.transaction_id,
            'paymentStatus': self.payment_status.value if self.payment_status else None,
            'remarks': self.remarks,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f"<FeePayment {self.transaction_id} amount={self.amount}>"


# ===== FEE TEMPLATE MODEL =====

class FeeFrequencyEnum(enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"
    ONE_TIME = "one_time"


class FeeTemplate(Base):
    """Standard fee for a class, or school-wide when class_id is empty"""
    __tablename__ = 'fee_templates'
    __table_args__ = (
        Index('idx_template_class', 'class_id'),
    )

    id = Column(Integer, primary_key=True)
    template_name = Column(String(150), nullable=False)
    class_id = Column(Integer, ForeignKey('classes.id'), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    fee_type = Column(String(50), nullable=False)  # tuition, transport, exam
    frequency = enum_column(FeeFrequencyEnum, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'templateName': self.template_name,
            'classId': self.class_id,
            'amount': money(self.amount),
            'feeType': self.fee_type,
            'frequency': self.frequency.value if self.frequency else None,
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f"<FeeTemplate {self.template_name} {self.amount}/{self.frequency.value if self.frequency else None}>"


# ===== FEE CONCESSION MODEL =====

class FeeConcession(Base):
    """Waiver granted to a student (scholarship, sibling, staff ward)"""
    __tablename__ = 'fee_concessions'
    __table_args__ = (
        Index('idx_concession_student', 'student_id'),
        Index('idx_concession_type', 'concession_type'),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey('students.id'), nullable=False)
    concession_type = Column(String(50), nullable=False)
    concession_percentage = Column(Numeric(5, 2), nullable=False)
    amount_waived = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(255), nullable=False)
    approved_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'studentId': self.student_id,
            'concessionType': self.concession_type,
            'concessionPercentage': money(self.concession_percentage),
            'amountWaived': money(self.amount_waived),
            'reason': self.reason,
            'approvedBy': self.approved_by,
            'approvedAt': iso(self.approved_at),
            'createdAt': iso(self.created_at),
        }

    def __repr__(self):
        return f"<FeeConcession student={self.student_id} {self.concession_type} {self.amount_waived}>"
