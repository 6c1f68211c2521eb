"""HTML e-mail templates for payment outcomes."""

from __future__ import annotations

from collections.abc import Callable
from html import escape
from typing import Any

from app.core.enums import EmailTypeEnum

EMAIL_SUBJECTS: dict[EmailTypeEnum, str] = {
    EmailTypeEnum.COURSE_ENROLLMENT: "Course Enrollment Confirmation",
    EmailTypeEnum.APPOINTMENT_CONFIRMATION: "Appointment Confirmation",
    EmailTypeEnum.PAYMENT_SUCCESS: "Payment Confirmation",
    EmailTypeEnum.PAYMENT_FAILED: "Payment Failed",
    EmailTypeEnum.PAYMENT_REFUNDED: "Refund Processed",
}


def _value(data: dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return escape(default)
    return escape(str(value))


def _layout(heading: str, content: str) -> str:
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
        <div style="background: #4F46E5; padding: 24px; text-align: center; border-radius: 8px 8px 0 0;">
            <h1 style="color: white; margin: 0; font-size: 24px;">{heading}</h1>
        </div>
        <div style="background: #f9f9f9; padding: 24px; border-radius: 0 0 8px 8px;">
            {content}
            <p>Best regards,<br>The BnOverseas Team</p>
        </div>
    </body>
    </html>
    """


def _receipt(data: dict[str, Any]) -> str:
    return f"""
            <table style="width: 100%; margin: 16px 0;">
                <tr><td>Item</td><td>{_value(data, "item_name", "Purchase")}</td></tr>
                <tr><td>Amount</td><td>{_value(data, "amount")} {_value(data, "currency")}</td></tr>
                <tr><td>Transaction</td><td>{_value(data, "transaction_id")}</td></tr>
            </table>
    """


def _course_enrollment(data: dict[str, Any]) -> str:
    course_url = _value(data, "course_url")
    return _layout(
        "You're enrolled!",
        f"""
            <p>Hello {_value(data, "first_name", "there")},</p>
            <p>Your payment was received and you now have access to
            <strong>{_value(data, "course_name")}</strong>.</p>
            <p>Instructor: {_value(data, "instructor_name", "BnOverseas faculty")}<br>
            Duration: {_value(data, "duration", "Self-paced")}</p>
            {_receipt(data)}
            <p><a href="{course_url}" style="background: #4F46E5; color: white; padding: 10px 20px;
               text-decoration: none; border-radius: 6px;">Start learning</a></p>
        """,
    )


def _appointment_confirmation(data: dict[str, Any]) -> str:
    return _layout(
        "Appointment confirmed",
        f"""
            <p>Hello {_value(data, "first_name", "there")},</p>
            <p>Your consultation with <strong>{_value(data, "consultant_name")}</strong> is confirmed.</p>
            <p>Type: {_value(data, "appointment_type")}<br>
            Date: {_value(data, "appointment_date")}<br>
            Time: {_value(data, "appointment_time")}<br>
            Duration: {_value(data, "duration")} minutes</p>
            {_receipt(data)}
        """,
    )


def _payment_success(data: dict[str, Any]) -> str:
    return _layout(
        "Payment received",
        f"""
            <p>Hello {_value(data, "first_name", "there")},</p>
            <p>Thank you, we have received your payment.</p>
            {_receipt(data)}
        """,
    )


def _payment_failed(data: dict[str, Any]) -> str:
    return _layout(
        "Payment failed",
        f"""
            <p>Hello {_value(data, "first_name", "there")},</p>
            <p>We could not process your payment for {_value(data, "item_name", "your purchase")}.</p>
            <p>Reason: {_value(data, "failure_reason", "Payment failed")}</p>
            <p>No money was taken. You can try again at any time.</p>
        """,
    )


def _payment_refunded(data: dict[str, Any]) -> str:
    return _layout(
        "Refund processed",
        f"""
            <p>Hello {_value(data, "first_name", "there")},</p>
            <p>Your refund of {_value(data, "refund_amount")} {_value(data, "currency")}
            for {_value(data, "item_name", "your purchase")} has been processed.</p>
            <p>Reason: {_value(data, "refund_reason", "Refund requested")}</p>
        """,
    )


_RENDERERS: dict[EmailTypeEnum, Callable[[dict[str, Any]], str]] = {
    EmailTypeEnum.COURSE_ENROLLMENT: _course_enrollment,
    EmailTypeEnum.APPOINTMENT_CONFIRMATION: _appointment_confirmation,
    EmailTypeEnum.PAYMENT_SUCCESS: _payment_success,
    EmailTypeEnum.PAYMENT_FAILED: _payment_failed,
    EmailTypeEnum.PAYMENT_REFUNDED: _payment_refunded,
}


def render_email(email_type: EmailTypeEnum, data: dict[str, Any]) -> tuple[str, str]:
    """Return ``(subject, html)`` for an e-mail type; ``data["subject"]`` overrides the subject."""
    renderer = _RENDERERS.get(email_type)
    if renderer is None:
        raise ValueError(f"Email template not found for type: {email_type}")
    subject = str(data.get("subject") or EMAIL_SUBJECTS[email_type])
    return subject, renderer(data)
