# /app/utils/email_util.py
import os
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app


def _send(recipient_email: str, subject: str, text: str, html: str) -> bool:
    mail_server = os.environ.get('MAIL_SERVER')
    mail_port = int(os.environ.get('MAIL_PORT', 587))
    mail_username = os.environ.get('MAIL_USERNAME')
    mail_password = os.environ.get('MAIL_PASSWORD')
    sender_email = os.environ.get('MAIL_FROM') or mail_username

    if not all([mail_server, mail_port, mail_username, mail_password]):
        current_app.logger.warning(f"Email server is not configured. Skipping '{subject}' email.")
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = sender_email
    message["To"] = recipient_email
    message.attach(MIMEText(text, "plain"))
    message.attach(MIMEText(html, "html"))

    try:
        context = ssl.create_default_context()
        with smtplib.SMTP(mail_server, mail_port) as server:
            server.starttls(context=context)
            server.login(mail_username, mail_password)
            server.sendmail(sender_email, recipient_email, message.as_string())
        current_app.logger.info(f"Sent '{subject}' email to {recipient_email}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error(f"Failed to send email to {recipient_email}: {e}")
        return False


def send_provider_approved_email(recipient_email: str, practice_name: str) -> bool:
    """Tells a practice owner their organization can now publish forms."""
    text = f"""
    Hello,

    {practice_name} has been approved. You can now build intake forms and print QR codes.
    """
    html = f"""
    <html>
      <body>
        <h2>Your practice has been approved</h2>
        <p><strong>{practice_name}</strong> has been approved.</p>
        <p>You can now build intake forms and print QR codes for your patients.</p>
      </body>
    </html>
    """
    return _send(recipient_email, "Your practice has been approved", text, html)


def send_provider_rejected_email(recipient_email: str, practice_name: str, reason: str) -> bool:
    text = f"""
    Hello,

    Unfortunately the registration for {practice_name} was not approved.
    Reason: {reason}
    """
    html = f"""
    <html>
      <body>
        <h2>Registration not approved</h2>
        <p>Unfortunately the registration for <strong>{practice_name}</strong> was not approved.</p>
        <p><strong>Reason:</strong> {reason}</p>
      </body>
    </html>
    """
    return _send(recipient_email, "Your practice registration was not approved", text, html)
