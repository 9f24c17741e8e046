"""
Test fixtures for the ledger backend.

Provides:
- An app bound to an in-memory SQLite database, recreated per test
- A Flask test client and login helper
- Factories for users, products and bank details
"""
# Set environment variables BEFORE importing the app: Config reads them at import
import os
import tempfile

os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["FLASK_ENV"] = "testing"
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="ledger-logs-"))

import itertools
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from app import create_app
from config import Config
from extensions import db
from models import User, Product, BankInfo
from ledger.referral_tree import ReferralTreeHelper

LUANDA = ZoneInfo("Africa/Luanda")

# Monday 19 Oct 2026, 11:00 local time: inside the withdrawal window
OPEN_HOURS = datetime(2026, 10, 19, 11, 0, tzinfo=LUANDA)


class LedgerTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SESSION_COOKIE_SECURE = False


def make_config(database_uri):
    return type("FileDbConfig", (LedgerTestConfig,), {"SQLALCHEMY_DATABASE_URI": database_uri})


@pytest.fixture
def app():
    app = create_app(LedgerTestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


_phones = itertools.count(900000001)


@pytest.fixture
def make_user(app):
    def _make_user(balance=0, referrer=None, has_product=False, has_deposited=False,
                   role="user", password="secret123", phone_number=None, is_blocked=False):
        user = User(
            phone_number=phone_number or str(next(_phones)),
            referral_code=ReferralTreeHelper.generate_referral_code(),
            referred_by=referrer.id if referrer is not None else None,
            balance=Decimal(str(balance)),
            has_product=has_product,
            has_deposited=has_deposited,
            role=role,
            is_blocked=is_blocked,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def make_product(app):
    def _make_product(price=5000, daily_income=600, cycle_days=50, active=True, name=None):
        product = Product(
            name=name or f"Plan {price}",
            price=Decimal(str(price)),
            return_rate=Decimal("0"),
            cycle_days=cycle_days,
            daily_income=Decimal(str(daily_income)),
            total_return=Decimal(str(daily_income)) * cycle_days,
            active=active,
        )
        db.session.add(product)
        db.session.commit()
        return product
    return _make_product


@pytest.fixture
def add_bank_info(app):
    def _add_bank_info(user, bank="BAI", owner_name="Test Owner", account_number="AO06000000001"):
        info = BankInfo(user_id=user.id, bank=bank, owner_name=owner_name, account_number=account_number)
        db.session.add(info)
        db.session.commit()
        return info
    return _add_bank_info


@pytest.fixture
def login(client):
    def _login(user, password="secret123"):
        response = client.post("/api/login", json={"phoneNumber": user.phone_number, "password": password})
        assert response.status_code == 200, response.get_json()
        return response
    return _login


def reload(model, pk):
    """Fresh copy of a row straight from the database."""
    return db.session.get(model, pk, populate_existing=True)
