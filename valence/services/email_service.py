from datetime import datetime, timezone
import logging
import smtplib
from email.message import EmailMessage
from sqlalchemy.orm import Session
import uuid
import requests

from valence.core.config import settings
from valence.models.booking import Booking
from valence.models.email_log import EmailLog
from valence.models.user import User

logger = logging.getLogger(__name__)


def queue_email(db: Session, to_email: str, subject: str, body: str, related_booking_id: str = "") -> str:
    """Store the email and, unless disabled, try to send it right away.

    A failed send leaves the row as ``failed``; ``process_pending_emails`` retries it.
    """
    eid = str(uuid.uuid4())
    db.add(
        EmailLog(
            id=eid,
            to_email=to_email,
            subject=subject,
            body=body,
            status="queued",
            related_booking_id=related_booking_id,
        )
    )
    db.commit()

    if not settings.EMAIL_SEND_IMMEDIATELY:
        return eid

    log = db.get(EmailLog, eid)
    try:
        send_email(to_email, subject, body)
        log.status = "sent"
        log.sent_at = datetime.now(timezone.utc)
    except Exception as e:
        logger.warning("Email %s to %s failed, leaving for retry: %s", eid, to_email, e)
        log.status = "failed"
    db.commit()
    return eid


def notify_customer_booking_completed(db: Session, booking: Booking) -> str | None:
    customer = db.get(User, booking.customer_id)
    if not customer or not customer.email:
        logger.info("No customer email on file for booking %s; skipping notification", booking.id)
        return None
    subject = "Your service has been marked complete"
    body = (
        f"Your provider has marked booking {booking.id} as complete.\n\n"
        f"Scheduled: {booking.start_time.isoformat()} to {booking.end_time.isoformat()}\n"
        f"Amount: {booking.total_amount} {booking.currency.upper()}\n\n"
        "The held payment will now be captured. We'd love to hear how it went, "
        "so please leave a review for your provider.\n"
    )
    return queue_email(db, customer.email, subject, body, related_booking_id=booking.id)


def send_email(to_email: str, subject: str, body: str) -> None:
    """Send email via SendGrid if configured, otherwise SMTP (MailHog recommended for local)."""

    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str) -> None:
    from_email = settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": from_email},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    r = requests.post(
        "https://api.sendgrid.com/v3/mail/send",
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Retry up to `limit` queued or failed emails, oldest first. Returns counts."""
    pending = (
        db.query(EmailLog)
        .filter(EmailLog.status.in_(["queued", "failed"]), EmailLog.body.isnot(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent, failed = 0, 0
    for log in pending:
        try:
            send_email(log.to_email, log.subject, log.body)
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            sent += 1
        except Exception as e:
            logger.warning("Retry of email %s failed: %s", log.id, e)
            log.status = "failed"
            failed += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": failed}
