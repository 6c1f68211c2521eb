"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """System roles."""

    STUDENT = "student"
    ADMIN = "admin"


class TransactionTypeEnum(StrEnum):
    """What a payment attempt is buying."""

    COURSE_PURCHASE = "course_purchase"
    APPOINTMENT_BOOKING = "appointment_booking"
    SUBSCRIPTION = "subscription"


class TransactionStatusEnum(StrEnum):
    """Payment attempt status, mirrored from the gateway."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class EnrollmentStatusEnum(StrEnum):
    """Course enrollment status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    SUSPENDED = "suspended"
    REFUNDED = "refunded"


class AppointmentStatusEnum(StrEnum):
    """Consultation appointment lifecycle status."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class SubscriptionStatusEnum(StrEnum):
    """Subscription status."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class NotificationStatusEnum(StrEnum):
    """Notification delivery status."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class EmailTypeEnum(StrEnum):
    """Templated e-mails sent by the payments flow."""

    COURSE_ENROLLMENT = "course_enrollment"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"
