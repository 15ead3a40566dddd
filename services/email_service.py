"""
Email delivery for form links and submission confirmations.

EmailService sends one message through SendGrid and falls back to Gmail SMTP
when SendGrid is unavailable. EmailDispatcher wraps it with retries and
records the outcome in the audit log.

Email is never part of a lifecycle transaction: the routes call the
dispatcher after the instance or submission is committed, and a failed
delivery is reported to the caller as a warning.
"""
import os
import smtplib
import time
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from flask import current_app
from markupsafe import escape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

from services.audit_service import AuditService
from services.validation import EMAIL_PATTERN
from utils import utcnow

EMAIL_TEMPLATES_DIR = 'email_templates'

# Template name -> file and subject line
TEMPLATES = {
    'form_link': {
        'file': 'form_link.html',
        'subject': '{owner_name} has sent you a form to complete: {template_name}',
    },
    'form_confirmation': {
        'file': 'form_confirmation.html',
        'subject': 'We received your {template_name} form',
    },
}


@dataclass
class EmailResult:
    success: bool
    email_id: Optional[str] = None
    error: Optional[str] = None


class EmailService:
    """Transactional email using SendGrid with Gmail fallback."""

    def __init__(self, api_key=None, sender_email=None, sender_name=None,
                 gmail_username=None, gmail_password=None, enabled=True):
        self.api_key = api_key
        self.sender_email = sender_email or 'noreply@example.com'
        self.sender_name = sender_name
        self.enabled = enabled
        self._client = None

        # Gmail fallback configuration
        self.gmail_username = gmail_username
        self.gmail_password = gmail_password
        self.gmail_enabled = bool(self.gmail_username and self.gmail_password)

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get('SENDGRID_API_KEY'),
            sender_email=config.get('MAIL_SENDER_EMAIL'),
            sender_name=config.get('MAIL_SENDER_NAME'),
            gmail_username=config.get('MAIL_USERNAME'),
            gmail_password=config.get('MAIL_PASSWORD'),
            enabled=config.get('EMAIL_ENABLED', True),
        )

    @property
    def client(self):
        """Lazy-load SendGrid client."""
        if self._client is None:
            if not self.api_key:
                raise ValueError("SENDGRID_API_KEY not configured")
            self._client = SendGridAPIClient(self.api_key)
        return self._client

    def render(self, template_name: str, template_data: dict):
        """
        Load an HTML template from email_templates/ and fill {{variables}}.

        Values are HTML-escaped. Returns (subject, html_content).

        Raises:
            KeyError: Unknown template name
        """
        template_info = TEMPLATES[template_name]
        template_path = os.path.join(current_app.root_path, EMAIL_TEMPLATES_DIR, template_info['file'])
        with open(template_path, 'r', encoding='utf-8') as f:
            html_content = f.read()

        for key, value in template_data.items():
            placeholder = f"{{{{{key}}}}}"  # {{variable_name}}
            html_content = html_content.replace(placeholder, str(escape('' if value is None else value)))

        subject = template_info['subject']
        for key, value in template_data.items():
            subject = subject.replace(f"{{{key}}}", str(value))

        return subject, html_content

    def _send_via_gmail(self, to_email: str, subject: str, html_content: str,
                        reply_to: str = None) -> bool:
        """Fallback delivery through Gmail SMTP. Returns True if sent."""
        if not self.gmail_enabled:
            current_app.logger.warning("Gmail fallback not configured - missing MAIL_USERNAME or MAIL_PASSWORD")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['From'] = self.gmail_username
            msg['To'] = to_email
            msg['Subject'] = subject
            if reply_to:
                msg['Reply-To'] = reply_to
            msg.attach(MIMEText(html_content, 'html'))

            with smtplib.SMTP_SSL('smtp.gmail.com', 465) as server:
                server.login(self.gmail_username, self.gmail_password)
                server.send_message(msg)

            current_app.logger.info(f"Gmail fallback successful for {to_email}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            current_app.logger.error(f"Gmail fallback failed for {to_email}: {e}")
            return False

    def send(self, template_name: str, to_email: str, template_data: dict,
             reply_to: str = None) -> EmailResult:
        """
        Send one templated email.

        When EMAIL_ENABLED is off the message is logged and reported as sent,
        so development setups work without credentials.
        """
        if not to_email or not EMAIL_PATTERN.fullmatch(to_email):
            return EmailResult(success=False, error='Invalid email address')

        template_data = dict(template_data)
        template_data.setdefault('current_year', str(utcnow().year))
        subject, html_content = self.render(template_name, template_data)

        if not self.enabled:
            current_app.logger.info(f"[email disabled] {template_name} to {to_email}: {subject}")
            return EmailResult(success=True, email_id=f"dev-email-{int(time.time() * 1000)}")

        # Try SendGrid first
        error = None
        if self.api_key:
            try:
                message = Mail(
                    from_email=Email(self.sender_email, self.sender_name),
                    to_emails=To(to_email),
                    subject=subject,
                    html_content=Content('text/html', html_content),
                )
                if reply_to:
                    message.reply_to = Email(reply_to)

                response = self.client.send(message)
                if response.status_code in (200, 201, 202):
                    message_id = response.headers.get('X-Message-Id') if response.headers else None
                    current_app.logger.info(
                        f"SendGrid email sent: template={template_name}, to={to_email}, status={response.status_code}"
                    )
                    return EmailResult(success=True, email_id=message_id)

                error = f"SendGrid returned status {response.status_code}"
                current_app.logger.warning(f"SendGrid failed: template={template_name}, to={to_email}, {error}")

            except Exception as e:
                # Any SendGrid client error falls through to Gmail
                error = str(e)
                current_app.logger.warning(f"SendGrid error: template={template_name}, to={to_email}, error={error}")
        else:
            error = 'SENDGRID_API_KEY not configured'

        if self._send_via_gmail(to_email, subject, html_content, reply_to=reply_to):
            return EmailResult(success=True)

        current_app.logger.error(f"All email methods failed: template={template_name}, to={to_email}")
        return EmailResult(success=False, error=error or 'Email delivery failed')

    # =========================================================================
    # Convenience Methods
    # =========================================================================

    def send_form_link(self, to: str, form_url: str, owner_name: str, template_name: str,
                       expires_at: datetime, personal_message: str = None,
                       reply_to: str = None) -> EmailResult:
        """Send the client their form link."""
        return self.send(
            template_name='form_link',
            to_email=to,
            template_data={
                'owner_name': owner_name,
                'template_name': template_name,
                'form_url': form_url,
                'personal_message': personal_message or '',
                'expires_at': expires_at.strftime('%B %d, %Y at %H:%M UTC'),
            },
            reply_to=reply_to,
        )

    def send_form_confirmation(self, to: str, owner_name: str, template_name: str,
                               submitted_at: datetime, submission_id: str,
                               reply_to: str = None) -> EmailResult:
        """Confirm a submission to the client."""
        return self.send(
            template_name='form_confirmation',
            to_email=to,
            template_data={
                'owner_name': owner_name,
                'template_name': template_name,
                'submission_id': submission_id,
                'submitted_at': submitted_at.strftime('%B %d, %Y at %H:%M UTC'),
            },
            reply_to=reply_to,
        )


class EmailDispatcher:
    """
    Sends lifecycle emails with retries and audits the outcome.

    Attempts are max_retries + 1 in total, waiting retry_delay * attempt
    seconds between them. The audit entry is committed on its own.
    """

    def __init__(self, service: EmailService, session, max_retries=3, retry_delay=1.0, sleep=time.sleep):
        self.service = service
        self.session = session
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.sleep = sleep

    @classmethod
    def from_app(cls, app, session):
        return cls(
            EmailService.from_config(app.config),
            session,
            max_retries=app.config.get('EMAIL_MAX_RETRIES', 3),
            retry_delay=app.config.get('EMAIL_RETRY_DELAY_SECONDS', 1),
        )

    def send_form_link(self, instance, form_url) -> EmailResult:
        owner = instance.owner
        return self._deliver(
            instance,
            'form_link',
            lambda: self.service.send_form_link(
                to=instance.client_email,
                form_url=form_url,
                owner_name=owner.display_name if owner else 'Your advisor',
                template_name=instance.template.name,
                expires_at=instance.expires_at,
                personal_message=instance.personal_message,
                reply_to=owner.email if owner else None,
            ),
        )

    def send_form_confirmation(self, instance, submission_id, submitted_at) -> EmailResult:
        owner = instance.owner
        return self._deliver(
            instance,
            'form_confirmation',
            lambda: self.service.send_form_confirmation(
                to=instance.client_email,
                owner_name=owner.display_name if owner else 'Your advisor',
                template_name=instance.template.name,
                submitted_at=submitted_at,
                submission_id=submission_id,
                reply_to=owner.email if owner else None,
            ),
        )

    def _deliver(self, instance, email_type, send_once) -> EmailResult:
        result = EmailResult(success=False, error='Email was not attempted')
        attempts = 0

        for attempt in range(self.max_retries + 1):
            attempts = attempt + 1
            try:
                result = send_once()
            except Exception as e:
                current_app.logger.warning(f"{email_type} email attempt {attempts} raised: {e}")
                result = EmailResult(success=False, error=str(e))

            if result.success:
                break
            if attempt < self.max_retries and self.retry_delay:
                self.sleep(self.retry_delay * (attempt + 1))

        self._record(instance, email_type, result, attempts)
        return result

    def _record(self, instance, email_type, result, attempts):
        try:
            AuditService(self.session).log_email_event(
                instance_id=instance.id,
                email_type=email_type,
                recipient=instance.client_email,
                success=result.success,
                attempts=attempts,
                message_id=result.email_id,
                error=result.error,
            )
            self.session.commit()
        except Exception as e:
            # Best-effort: delivery already happened
            self.session.rollback()
            current_app.logger.error(f"Failed to record {email_type} email outcome: {e}")
