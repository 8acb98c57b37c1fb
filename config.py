"""
Application configuration with environment variable loading.
"""
import os
from datetime import timedelta
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration."""

    # Paths
    BASE_DIR = Path(__file__).parent
    DATA_DIR = BASE_DIR / "data"
    UPLOAD_DIR: Path = Path(os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads")))
    BACKUP_DIR: Path = Path(os.getenv("BACKUP_DIR", str(BASE_DIR / "backups")))
    LOG_DIR: Path = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))

    # Flask
    SECRET_KEY: str = os.getenv("SECRET_KEY", "vibrakas-dev-secret")
    SESSION_COOKIE_SECURE: bool = _env_bool("SESSION_COOKIE_SECURE")
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Database
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "data/vibrakas.db")

    # Payment gateway
    PAYMENT_API_KEY: str = os.getenv("PAYMENT_API_KEY", "")
    PAYMENT_PRIVATE_KEY: str = os.getenv("PAYMENT_PRIVATE_KEY", "")
    PAYMENT_MERCHANT_CODE: str = os.getenv("PAYMENT_MERCHANT_CODE", "")
    PAYMENT_BASE_URL: str = os.getenv(
        "PAYMENT_BASE_URL", "https://tripay.co.id/api-sandbox")
    PAYMENT_TIMEOUT: int = int(os.getenv("PAYMENT_TIMEOUT", "15"))
    QRIS_ENABLED: bool = _env_bool("QRIS_ENABLED")

    # SMTP
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASS: str = os.getenv("SMTP_PASS", "")
    SMTP_FROM: str = os.getenv("SMTP_FROM", "Vibra Kas <noreply@vibrakas.local>")

    # Internal calls (cron, sweeper)
    INTERNAL_API_TOKEN: str = os.getenv("INTERNAL_API_TOKEN", "")
    EXPIRY_SWEEP_INTERVAL: int = int(os.getenv("EXPIRY_SWEEP_INTERVAL", "60"))

    # Retry settings
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    RETRY_DELAY: float = float(os.getenv("RETRY_DELAY", "1.0"))
    RETRY_BACKOFF: float = float(os.getenv("RETRY_BACKOFF", "2.0"))

    # Business rules
    MIN_TOPUP_AMOUNT: int = 10000
    MAX_AMOUNT: int = 1_000_000_000_000
    QRIS_FEE_PERMILLE: int = 5
    VA_FEE_PERMILLE: int = 3
    QRIS_EXPIRY = timedelta(minutes=15)
    VA_EXPIRY = timedelta(hours=24)
    MANUAL_EXPIRY = timedelta(days=7)
    OTP_EXPIRY = timedelta(minutes=10)
    MAX_ACTIVE_TREASURER_ACCOUNTS: int = 3
    RESET_CONFIRM_TEXT: str = "HAPUS SEMUA DATA"
    MIN_REASON_LENGTH: int = 10
    MIN_RESET_REASON_LENGTH: int = 20
    ALLOWED_PROOF_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "pdf"})
    ALLOWED_IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp"})

    def ensure_data_dir(self):
        """Ensure data directories exist."""
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)
        Path(self.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
        Path(self.BACKUP_DIR).mkdir(parents=True, exist_ok=True)

    def is_payment_mock_mode(self) -> bool:
        """Gateway calls are simulated when no real credentials are set."""
        return not self.PAYMENT_API_KEY or self.PAYMENT_API_KEY == "test-api-key"

    def is_smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASS)


config = Config()
