# models.py - Flask-SQLAlchemy models for the ledger and referral engine
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from sqlalchemy import Index, event, inspect, text
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash
from extensions import db

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PURCHASE = "purchase"
    COMMISSION = "commission"
    INCOME = "income"


class TransactionStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def money(value) -> float:
    return float(value) if value is not None else 0.0


def iso(value):
    return value.isoformat() if value else None


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

# ===========================================================
# USERS
# ===========================================================

class User(UserMixin, BaseMixin, db.Model):
    """Account holder: identity, wallet balance and referral position."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    phone_number = db.Column(db.String(20), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="user", index=True)
    is_blocked = db.Column(db.Boolean, nullable=False, default=False)

    referral_code = db.Column(db.String(10), unique=True, nullable=False)
    referred_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)  # direct upline

    balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0"))
    daily_income = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0"))
    level1_commission = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0"))
    level2_commission = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0"))
    level3_commission = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0"))

    has_product = db.Column(db.Boolean, nullable=False, default=False)
    has_deposited = db.Column(db.Boolean, nullable=False, default=False)

    referrer = db.relationship('User', remote_side=[id], backref='direct_referrals')
    holdings = db.relationship('Holding', back_populates='user', lazy='dynamic')
    transactions = db.relationship('Transaction', back_populates='user', lazy='dynamic')
    bank_info = db.relationship('BankInfo', uselist=False, back_populates='user', cascade="all,delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_active(self) -> bool:
        # Flask-Login refuses inactive users
        return not self.is_blocked

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "phoneNumber": self.phone_number,
            "role": self.role,
            "isAdmin": self.is_admin,
            "isBlocked": self.is_blocked,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "balance": money(self.balance),
            "dailyIncome": money(self.daily_income),
            "level1Commission": money(self.level1_commission),
            "level2Commission": money(self.level2_commission),
            "level3Commission": money(self.level3_commission),
            "hasProduct": self.has_product,
            "hasDeposited": self.has_deposited,
            "createdAt": iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id} {self.phone_number}>"


class BankInfo(BaseMixin, db.Model):
    """Payout details, one row per user."""
    __tablename__ = 'bank_info'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    bank = db.Column(db.String(100), nullable=False)
    owner_name = db.Column(db.String(150), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)

    user = db.relationship('User', back_populates='bank_info')

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "bank": self.bank,
            "ownerName": self.owner_name,
            "accountNumber": self.account_number,
        }

# ===========================================================
# CATALOG & HOLDINGS
# ===========================================================

class Product(BaseMixin, db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(18, 2), nullable=False)
    return_rate = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    cycle_days = db.Column(db.Integer, nullable=False)
    daily_income = db.Column(db.Numeric(18, 2), nullable=False)
    total_return = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)
    order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": money(self.price),
            "returnRate": money(self.return_rate),
            "cycleDays": self.cycle_days,
            "dailyIncome": money(self.daily_income),
            "totalReturn": money(self.total_return),
            "active": self.active,
            "order": self.order,
        }


class Holding(BaseMixin, db.Model):
    """A purchased product. Economics are copied from the catalog at purchase time."""
    __tablename__ = 'holdings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='SET NULL'), nullable=True)
    product_name = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Numeric(18, 2), nullable=False)
    daily_income = db.Column(db.Numeric(18, 2), nullable=False)
    cycle_days = db.Column(db.Integer, nullable=False)
    days_remaining = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    purchased_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_accrued_on = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship('User', back_populates='holdings')
    product = db.relationship('Product')

    __table_args__ = (
        Index('idx_holding_active_remaining', 'is_active', 'days_remaining'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product_name,
            "price": money(self.price),
            "dailyIncome": money(self.daily_income),
            "cycleDays": self.cycle_days,
            "daysRemaining": self.days_remaining,
            "isActive": self.is_active,
            "purchasedAt": iso(self.purchased_at),
            "lastAccruedOn": iso(self.last_accrued_on),
        }

# ===========================================================
# LEDGER
# ===========================================================

class Transaction(BaseMixin, db.Model):
    """Append-only ledger entry. Only status and processed_at may change."""
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=TransactionStatus.PENDING.value)
    reference = db.Column(db.String(64), unique=True, nullable=False, index=True)
    description = db.Column(db.String(255))

    fee = db.Column(db.Numeric(18, 2), nullable=True)
    net_amount = db.Column(db.Numeric(18, 2), nullable=True)
    bank_name = db.Column(db.String(100))
    bank_account = db.Column(db.String(64))
    owner_name = db.Column(db.String(150))

    level = db.Column(db.Integer, nullable=True)  # commission level 1-3
    holding_id = db.Column(db.Integer, db.ForeignKey('holdings.id'), nullable=True, index=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship('User', back_populates='transactions')

    __table_args__ = (
        Index('idx_transaction_type_status', 'type', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "amount": money(self.amount),
            "status": self.status,
            "reference": self.reference,
            "description": self.description,
            "fee": money(self.fee) if self.fee is not None else None,
            "netAmount": money(self.net_amount) if self.net_amount is not None else None,
            "bankName": self.bank_name,
            "bankAccount": self.bank_account,
            "ownerName": self.owner_name,
            "level": self.level,
            "holdingId": self.holding_id,
            "createdAt": iso(self.created_at),
            "processedAt": iso(self.processed_at),
        }


IMMUTABLE_TRANSACTION_FIELDS = ("user_id", "type", "amount", "reference")


@event.listens_for(Transaction, "before_update")
def _guard_transaction_immutability(mapper, connection, target):
    state = inspect(target)
    for field in IMMUTABLE_TRANSACTION_FIELDS:
        if state.attrs[field].history.has_changes():
            raise ValueError(f"Transaction.{field} is immutable")

# ===========================================================
# ADMIN CATALOGS
# ===========================================================

class Bank(BaseMixin, db.Model):
    """Banks offered to users when they register payout details."""
    __tablename__ = 'banks'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    logo = db.Column(db.String(255))
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "logo": self.logo, "active": self.active}


class Setting(BaseMixin, db.Model):
    __tablename__ = 'settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=False)

    def to_dict(self):
        return {"id": self.id, "key": self.key, "value": self.value, "updatedAt": iso(self.updated_at)}


class SocialLink(BaseMixin, db.Model):
    """Community and support channels shown in the app footer."""
    __tablename__ = 'social_links'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    icon = db.Column(db.String(100), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "icon": self.icon,
            "active": self.active,
        }


class CarouselImage(BaseMixin, db.Model):
    __tablename__ = 'carousel_images'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(150), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)
    link_url = db.Column(db.String(500))
    order = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "imageUrl": self.image_url,
            "linkUrl": self.link_url,
            "order": self.order,
            "active": self.active,
        }
