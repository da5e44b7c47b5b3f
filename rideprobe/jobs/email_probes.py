import sys
from typing import Optional

from rideprobe.config.settings import settings
from rideprobe.jobs.console import run_probe
from rideprobe.schemas.probe import Credentials, ProbeKind, ProbeRequest


TEST_SUBJECT = "Email Connectivity Test"
TEST_HTML = "<p>This is a test email from the ride-hailing backend. If you see this, email is working!</p>"


def send_test_email_request(to: Optional[str] = None) -> ProbeRequest:
    """test email over the configured SMTP account, sent to itself unless a recipient is set"""
    recipient = to or settings.EMAIL_TEST_RECIPIENT or settings.EMAIL_USER
    credentials = None
    if settings.EMAIL_USER:
        credentials = Credentials(username=settings.EMAIL_USER, password=settings.EMAIL_PASS)
    return ProbeRequest(
        kind=ProbeKind.EMAIL_SEND,
        name="send-test-email",
        targets=f"smtp://{settings.EMAIL_HOST}:{settings.EMAIL_PORT}",
        payload={
            "to": recipient,
            "from": settings.EMAIL_FROM or settings.EMAIL_USER,
            "subject": TEST_SUBJECT,
            "html": TEST_HTML,
            "text": "If you see this, email is working!",
        },
        credentials=credentials,
    )


def send_test_email_main():
    print(f"EMAIL_USER: {settings.EMAIL_USER or 'NOT SET'}")
    print(f"EMAIL_PASS: {'********' if settings.EMAIL_PASS else 'NOT SET'}")
    sys.exit(run_probe(send_test_email_request()))


if __name__ == "__main__":
    # quick runner for manual execution
    send_test_email_main()
