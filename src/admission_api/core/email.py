"""
Email Service using Resend

Sends admission notifications to students. The only caller is the admission
event relay job; request handlers never send email directly.
"""

import asyncio
import logging
from html import escape

import resend

from admission_api.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key

_BASE_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #1a365d; margin-bottom: 24px; }
    .button { display: inline-block; background-color: #1a365d; color: white;
              padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb;
              color: #6b7280; font-size: 14px; }
"""


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def _render(heading: str, greeting_name: str, paragraphs: list[str]) -> str:
    """Wrap escaped paragraphs in the shared email layout."""
    body = "\n".join(f"<p>{paragraph}</p>" for paragraph in paragraphs)
    applications_url = f"{settings.frontend_url}/admissions/applications"
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_BASE_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{heading}</h1>

            <p>Hello {escape(greeting_name)},</p>

            {body}

            <a href="{applications_url}" class="button">View My Applications</a>

            <div class="footer">
                <p>You are receiving this email because you applied for admission.</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_application_submitted(
    to_email: str, student_name: str, course_name: str, subject: str
) -> bool:
    """Confirm that an application was received."""
    html_content = _render(
        "Application Received",
        student_name,
        [
            f"We received your application to <strong>{escape(course_name)}</strong>.",
            "You will be notified when the institution publishes its admission decisions.",
        ],
    )
    return await send_email(to_email, subject, html_content)


async def send_application_reviewed(
    to_email: str, student_name: str, course_name: str, subject: str
) -> bool:
    """Tell the student a decision exists, without revealing it before publication."""
    html_content = _render(
        "Application Reviewed",
        student_name,
        [
            f"Your application to <strong>{escape(course_name)}</strong> has been reviewed.",
            "The outcome will be visible once the institution publishes its admissions.",
        ],
    )
    return await send_email(to_email, subject, html_content)


async def send_offer_accepted(
    to_email: str, student_name: str, course_name: str, subject: str
) -> bool:
    """Confirm an accepted offer."""
    html_content = _render(
        "Offer Accepted",
        student_name,
        [
            f"You accepted your admission offer for <strong>{escape(course_name)}</strong>.",
            "Your other open applications have been closed automatically.",
        ],
    )
    return await send_email(to_email, subject, html_content)


async def send_application_closed(
    to_email: str, student_name: str, course_name: str, subject: str
) -> bool:
    """Tell the student an application was closed by the acceptance cascade."""
    html_content = _render(
        "Application Closed",
        student_name,
        [
            f"Your application to <strong>{escape(course_name)}</strong> was closed "
            "because you accepted another offer.",
        ],
    )
    return await send_email(to_email, subject, html_content)


async def send_waitlist_promoted(
    to_email: str, student_name: str, course_name: str, subject: str
) -> bool:
    """Tell a waitlisted student a place has opened up."""
    html_content = _render(
        "A Place Opened Up",
        student_name,
        [
            f"A place on <strong>{escape(course_name)}</strong> has become available "
            "and you have been moved off the waitlist.",
            "Log in to review and accept your offer.",
        ],
    )
    return await send_email(to_email, subject, html_content)
