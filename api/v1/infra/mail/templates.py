"""HTML templates for contact form emails."""

from html import escape
from string import Template

SUBJECT_OWNER_NOTIFICATION = "New message from the contact form"
SUBJECT_SENDER_REPLY = "Message received"

_OWNER_NOTIFICATION = Template(
    """<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #1f2937;">
    <h2 style="margin-bottom: 4px;">New contact message</h2>
    <p><strong>Name:</strong> $name</p>
    <p><strong>Email:</strong> $email</p>
    <p><strong>Message:</strong></p>
    <blockquote style="white-space: pre-wrap; border-left: 3px solid #6366f1; padding-left: 12px;">$message</blockquote>
  </body>
</html>
"""
)

_SENDER_REPLY = Template(
    """<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #1f2937;">
    <p>Hi $name,</p>
    <p>thanks for reaching out. Your message has been received and I will get back to you as soon as possible.</p>
    <p>Best regards</p>
  </body>
</html>
"""
)


def _safe(value: str | None) -> str:
    return escape(value or "", quote=True)


def render_owner_notification(name: str | None, email: str | None, message: str | None) -> str:
    return _OWNER_NOTIFICATION.substitute(
        name=_safe(name), email=_safe(email), message=_safe(message)
    )


def render_sender_reply(name: str | None) -> str:
    return _SENDER_REPLY.substitute(name=_safe(name) or "there")
