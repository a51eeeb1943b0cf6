"""
Email Service using Resend
Appointment notifications: confirmation, cancellation, reschedule and reminders.
Every sender returns {"success": bool, "error": str | None} and never raises.
"""

import logging
from datetime import datetime
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY

logger = logging.getLogger(__name__)

THEME = {
    "primary": "#0f766e",
    "text": "#1f2937",
    "muted": "#6b7280",
    "background": "#f9fafb",
}


def _format_when(moment: datetime) -> str:
    return moment.strftime("%A, %B %d, %Y at %H:%M UTC")


def render_email(title: str, paragraphs: list[str], cta_label: Optional[str] = None) -> str:
    """Minimal responsive HTML shell shared by every appointment email"""
    body = "".join(f'<p style="margin:0 0 12px;color:{THEME["text"]}">{p}</p>' for p in paragraphs)
    cta = ""
    if cta_label:
        cta = (
            f'<a href="{FRONTEND_URL}/appointments" style="display:inline-block;padding:10px 18px;'
            f'background:{THEME["primary"]};color:#fff;border-radius:6px;text-decoration:none">{cta_label}</a>'
        )
    return (
        f'<div style="background:{THEME["background"]};padding:24px;font-family:Arial,sans-serif">'
        f'<div style="max-width:560px;margin:0 auto;background:#fff;padding:24px;border-radius:8px">'
        f'<h2 style="color:{THEME["primary"]};margin-top:0">{title}</h2>{body}{cta}'
        f'<p style="color:{THEME["muted"]};font-size:12px;margin-top:24px">CareBook</p>'
        f"</div></div>"
    )


async def send_email(to: Union[str, list[str]], subject: str, html_content: str) -> dict:
    """Send an email through Resend"""
    recipients = [to] if isinstance(to, str) else [r for r in to if r]
    if not recipients:
        return {"success": False, "error": "No recipients"}

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        return {"success": False, "error": "Email service not configured"}

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        resend.api_key = RESEND_API_KEY
        response = resend.Emails.send(
            {
                "from": EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully: {response}")
        return {"success": True, "error": None}
    except Exception as e:
        logger.error(f"❌ Failed to send email via Resend: {e}")
        return {"success": False, "error": str(e)}


async def send_appointment_confirmation_email(notice) -> dict:
    html = render_email(
        "Appointment booked",
        [
            f"Hi {notice.patient_name or 'there'},",
            f"Your appointment with {notice.doctor_name} is booked for {_format_when(notice.start_time)}.",
        ],
        cta_label="View appointment",
    )
    return await send_email(
        [notice.patient_email, notice.doctor_email], "Your appointment is booked - CareBook", html
    )


async def send_appointment_cancellation_email(notice) -> dict:
    paragraphs = [
        f"The appointment with {notice.doctor_name} on {_format_when(notice.start_time)} has been cancelled.",
    ]
    if notice.reason:
        paragraphs.append(f"Reason: {notice.reason}")
    html = render_email("Appointment cancelled", paragraphs, cta_label="Book again")
    return await send_email(
        [notice.patient_email, notice.doctor_email], "Appointment cancelled - CareBook", html
    )


async def send_appointment_rescheduled_email(notice) -> dict:
    paragraphs = [f"Your appointment with {notice.doctor_name} has moved."]
    if notice.previous_start_time:
        paragraphs.append(f"Previously: {_format_when(notice.previous_start_time)}")
    paragraphs.append(f"New time: {_format_when(notice.start_time)}")
    html = render_email("Appointment rescheduled", paragraphs, cta_label="View appointment")
    return await send_email(
        [notice.patient_email, notice.doctor_email], "Appointment rescheduled - CareBook", html
    )


async def send_appointment_reminder_email(notice, hours_until: int) -> dict:
    window = "tomorrow" if hours_until >= 24 else "in about an hour"
    html = render_email(
        "Appointment reminder",
        [
            f"Hi {notice.patient_name or 'there'},",
            f"This is a reminder that you see {notice.doctor_name} {window}, "
            f"on {_format_when(notice.start_time)}.",
        ],
        cta_label="View appointment",
    )
    return await send_email(notice.patient_email, "Appointment reminder - CareBook", html)
