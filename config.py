# ==========================================================================================================
# -------------- Configuration file for the Ledger Flask application ---------------------------------------
# ==========================================================================================================
import os
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _database_uri():
    url = os.getenv("DATABASE_URL")
    if not url:
        url = f"sqlite:///{os.path.join(basedir, 'instance', 'ledger.db')}"

    # pg8000 is the only postgres driver we ship
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+pg8000://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+pg8000://", 1)
    return url


class Config:

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        raise ValueError("SECRET_KEY must be set")

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")

    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "True").lower() in ("true", "1", "t")

    LOG_DIR = os.getenv("LOG_DIR", "logs")

    # ------------------------------------------------------------------
    #  Business rules
    # ------------------------------------------------------------------
    CURRENCY = os.getenv("CURRENCY", "KZ")
    BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Africa/Luanda")

    WITHDRAWAL_MIN = int(os.getenv("WITHDRAWAL_MIN", "1400"))
    WITHDRAWAL_MAX = int(os.getenv("WITHDRAWAL_MAX", "50000"))
    WITHDRAWAL_OPEN_HOUR = int(os.getenv("WITHDRAWAL_OPEN_HOUR", "10"))
    WITHDRAWAL_CLOSE_HOUR = int(os.getenv("WITHDRAWAL_CLOSE_HOUR", "15"))
    WITHDRAWAL_FEE_PERCENT = int(os.getenv("WITHDRAWAL_FEE_PERCENT", "20"))

    DEPOSIT_MIN = int(os.getenv("DEPOSIT_MIN", "1000"))
