import logging
import smtplib
from email.mime.text import MIMEText

from .config import settings


logger = logging.getLogger(__name__)


class MailDispatchError(Exception):
    pass


def smtp_configured() -> bool:
    return bool(settings.smtp_username and settings.smtp_password)


def send_email(*, recipients: list[str], subject: str, body: str) -> None:
    if not recipients:
        return
    if not smtp_configured():
        raise MailDispatchError("SMTP credentials are missing")

    msg = MIMEText(body)
    msg["Subject"] = subject
    msg["From"] = settings.smtp_username
    msg["To"] = ", ".join(recipients)

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            server.login(settings.smtp_username, settings.smtp_password)
            server.sendmail(settings.smtp_username, recipients, msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise MailDispatchError(f"Failed to send email: {exc}") from exc
    logger.info("Sent '%s' to %d recipient(s)", subject, len(recipients))


def overdue_fees_body(organization_name: str, overdue_fees: list[dict], total_amount: float) -> str:
    lines = [
        f"Overdue hostel fees for {organization_name}",
        "",
        f"{len(overdue_fees)} fee record(s) are past due, totalling {total_amount:.2f}.",
        "",
    ]
    for fee in overdue_fees[:20]:
        lines.append(
            f"- Trainee {fee['trainee_id']}: balance {fee['balance']:.2f}, "
            f"due {fee['due_date']} ({fee['days_overdue']} days overdue)"
        )
    return "\n".join(lines)
