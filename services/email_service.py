"""
Outgoing email over SMTP.
Without SMTP settings the message is written to the log instead, so OTP flows work in development.
"""
import asyncio
import re
import secrets
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr, formataddr

from config import config
from utils.logger import get_logger

logger = get_logger("email_service")

_TAG_RE = re.compile(r"<[^>]*>")

OTP_HTML = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
    <h1 style="color: white; margin: 0;">Vibra Kas</h1>
    <p style="color: rgba(255,255,255,0.9); margin: 10px 0 0 0;">{heading}</p>
  </div>
  <div style="background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px;">
    <h2 style="color: #333; margin-top: 0;">Halo {name}!</h2>
    <p>{intro}</p>
    <div style="background: white; border: 2px dashed #667eea; border-radius: 8px; padding: 20px; text-align: center; margin: 30px 0;">
      <p style="font-size: 14px; color: #666; margin: 0 0 10px 0;">Kode Verifikasi</p>
      <h1 style="font-size: 36px; letter-spacing: 8px; color: #667eea; margin: 0; font-family: 'Courier New', monospace;">{otp}</h1>
    </div>
    <p style="color: #666; font-size: 14px;">
      <strong>Penting:</strong> Kode ini akan kedaluwarsa dalam <strong>{minutes} menit</strong>. Jangan bagikan kode ini kepada siapa pun.
    </p>
    <p style="color: #666; font-size: 14px; margin-top: 30px;">{ignore}</p>
  </div>
  <div style="text-align: center; margin-top: 20px; color: #999; font-size: 12px;">
    <p>&copy; {year} Vibra Kas. All rights reserved.</p>
  </div>
</body>
</html>
"""

OTP_TEXT = """Vibra Kas - {heading}

Halo {name}!

{intro}

Kode Verifikasi: {otp}

Kode ini akan kedaluwarsa dalam {minutes} menit. Jangan bagikan kode ini kepada siapa pun.

{ignore}
"""


def generate_otp() -> str:
    """Six-digit numeric code."""
    return str(secrets.randbelow(900000) + 100000)


def _otp_minutes() -> int:
    return int(config.OTP_EXPIRY.total_seconds() // 60)


class EmailService:
    """SMTP sender; SSL on port 465, STARTTLS otherwise."""

    def _send_smtp(self, to: str, subject: str, html: str, text: str):
        sender_name, sender_addr = parseaddr(config.SMTP_FROM)
        sender_addr = sender_addr or config.SMTP_USER

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((sender_name or "Vibra Kas", sender_addr))
        msg["To"] = to
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))

        if config.SMTP_PORT == 465:
            with smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, timeout=30) as server:
                server.login(config.SMTP_USER, config.SMTP_PASS)
                server.sendmail(sender_addr, [to], msg.as_string())
        else:
            with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30) as server:
                server.starttls()
                server.login(config.SMTP_USER, config.SMTP_PASS)
                server.sendmail(sender_addr, [to], msg.as_string())

    async def send(self, to: str, subject: str, html: str, text: str = None) -> bool:
        """
        Send an email. Returns False on SMTP failure; the caller decides
        whether that is fatal.
        """
        text = text or _TAG_RE.sub("", html)

        if not config.is_smtp_configured():
            logger.info(
                "SMTP not configured, email written to log",
                to=to, subject=subject
            )
            logger.info(f"Email body for {to}:\n{text}")
            return True

        try:
            await asyncio.to_thread(self._send_smtp, to, subject, html, text)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email send failed", to=to, subject=subject, error=str(e))
            return False

        logger.info("Email sent", to=to, subject=subject)
        return True

    async def _send_otp(self, email: str, otp_code: str, name: str, subject: str, **copy) -> bool:
        values = dict(
            name=name, otp=otp_code, minutes=_otp_minutes(),
            year=datetime.utcnow().year, **copy
        )
        return await self.send(
            email, subject, OTP_HTML.format(**values), OTP_TEXT.format(**values)
        )

    async def send_registration_otp(self, email: str, otp_code: str, name: str) -> bool:
        return await self._send_otp(
            email, otp_code, name,
            subject="Verifikasi Email - Vibra Kas",
            heading="Verifikasi Email",
            intro=(
                "Terima kasih telah mendaftar di Vibra Kas. Untuk menyelesaikan proses "
                "registrasi, silakan verifikasi email Anda dengan kode OTP berikut:"
            ),
            ignore="Jika Anda tidak melakukan registrasi, abaikan email ini."
        )

    async def send_change_email_otp(self, email: str, otp_code: str, name: str) -> bool:
        return await self._send_otp(
            email, otp_code, name,
            subject="Verifikasi Ganti Email - Vibra Kas",
            heading="Verifikasi Ganti Email",
            intro=(
                "Anda meminta untuk mengganti alamat email akun Vibra Kas. "
                "Gunakan kode OTP berikut untuk melanjutkan:"
            ),
            ignore="Jika Anda tidak meminta penggantian email, abaikan email ini dan amankan akun Anda."
        )


# Global service instance
email_service = EmailService()
