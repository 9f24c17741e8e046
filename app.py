import os
import logging
from datetime import date
import click
from flask import Flask, jsonify
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
from config import Config
from extensions import db, login_manager, init_extensions
from logger import LOG_FORMAT, app_logger
from models import User
from ledger.exceptions import LedgerError


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug:
        app.config.update(
            REMEMBER_COOKIE_SECURE=app.config["SESSION_COOKIE_SECURE"],
            REMEMBER_COOKIE_HTTPONLY=True,
        )

    setup_logging(app)

    # ------------------------------------------------------------------------------------------
    # DATABASE URI Fix
    # ------------------------------------------------------------------------------------------
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if database_uri.startswith("sqlite:///") and "instance" in database_uri:
        os.makedirs(os.path.dirname(database_uri.replace("sqlite:///", "", 1)), exist_ok=True)
    if database_uri.startswith("postgres://"):
        app.config["SQLALCHEMY_DATABASE_URI"] = database_uri.replace("postgres://", "postgresql+pg8000://", 1)

    init_extensions(app)
    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @app.route("/healthz")
    def healthz():
        try:
            db.session.execute(text("SELECT 1"))
        except Exception:
            app.logger.exception("Health check failed")
            return {"status": "degraded"}, 503
        return {"status": "ok"}, 200

    app_logger.info(f"Application created (env={app.config.get('FLASK_ENV')})")
    return app


def setup_logging(app):
    """File logging under LOG_DIR, plus console while debugging"""
    logs_dir = app.config.get("LOG_DIR", "logs")
    os.makedirs(logs_dir, exist_ok=True)

    file_handler = logging.FileHandler(os.path.join(logs_dir, "app.log"), mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(logging.INFO)

    app.logger.handlers.clear()
    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False

    if app.debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(console_handler)


def register_blueprints(app):
    from blueprints.auth import bp as auth_bp
    from blueprints.products import bp as products_bp
    from blueprints.wallet import bp as wallet_bp
    from blueprints.team import bp as team_bp
    from blueprints.admin import admin_bp
    from blueprints.content import bp as content_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(content_bp)


def register_error_handlers(app):

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error):
        db.session.rollback()
        if error.http_status >= 500:
            # detail was logged where it happened; the caller gets the generic text
            return jsonify({"error": error.code, "message": error.default_message}), error.http_status
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.name.lower().replace(" ", "_"), "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": "internal_error", "message": "Operation failed. Please try again."}), 500


def register_commands(app):

    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo("Database tables created")

    @app.cli.command("accrue-income")
    @click.option("--date", "cycle_date", default=None, help="Business date YYYY-MM-DD (defaults to today)")
    def accrue_income(cycle_date):
        """Credit one day of income to every active holding. Run once a day from cron."""
        from ledger.daily_income import DailyIncomeProcessor

        parsed = date.fromisoformat(cycle_date) if cycle_date else None
        summary = DailyIncomeProcessor.run_daily_accrual(parsed)
        click.echo(
            f"processed={summary['processed']} skipped={summary['skipped']} "
            f"completed={summary['completed']} failed={summary['failed']}"
        )

    @app.cli.command("make-admin")
    @click.argument("phone_number")
    @click.option("--password", default=None, help="Creates the account when it does not exist")
    def make_admin(phone_number, password):
        """Promote a user to admin, creating the root account if needed."""
        from ledger.accounts import create_root_user

        user = User.query.filter_by(phone_number=phone_number).first()
        if not user:
            if not password:
                raise click.ClickException(f"No user with phone {phone_number}; pass --password to create one")
            user = create_root_user(phone_number, password)
            click.echo(f"Created user id={user.id} referral_code={user.referral_code}")

        user.role = "admin"
        db.session.commit()
        click.echo(f"User (id={user.id}, phone={phone_number}) is now admin.")
