"""
Flask CLI commands for database setup and ledger maintenance
"""

import click
from flask import Flask, current_app
from database import get_session
from init_db import run_on_startup, create_default_admin_user
from fee_helpers import refresh_overdue
from models import Setting
import logging
from datetime import datetime

logger = logging.getLogger(__name__)


def register_cli_commands(app: Flask):
    """Register CLI commands with the Flask app"""

    @app.cli.command("setup-db")
    def setup_db_command():
        """Create tables and the system admin user"""
        click.echo("🚀 Setting up database...")
        if run_on_startup(current_app.config):
            click.echo("✅ Database setup completed successfully!")
        else:
            click.echo("❌ Database setup failed!")

    @app.cli.command("create-admin")
    @click.option("--email", required=True, help="Admin email")
    @click.option("--password", required=True, help="Admin password")
    @click.option("--name", "full_name", default="Administrator", help="Full name")
    def create_admin_command(email, password, full_name):
        """Create an admin user"""
        user_id = create_default_admin_user(email.strip().lower(), password, full_name=full_name)
        click.echo(f"✅ Admin user {email} ready (id={user_id})")

    @app.cli.command("mark-overdue")
    @click.option("--date", "on_date", default=None, help="Reference date (YYYY-MM-DD), defaults to today")
    def mark_overdue_command(on_date):
        """Flag unpaid invoices and installments past their due date"""
        today = datetime.strptime(on_date, '%Y-%m-%d').date() if on_date else None
        session = get_session()
        try:
            counts = refresh_overdue(session, today)
            session.commit()
            click.echo(f"✅ Marked {counts['invoices']} invoices and {counts['installments']} installments overdue")
        except Exception as e:
            session.rollback()
            logger.error(f"mark-overdue failed: {e}")
            click.echo(f"❌ Error: {e}")
        finally:
            session.close()

    @app.cli.command("set-setting")
    @click.option("--key", required=True, help="Setting key, e.g. whatsapp_attendance_template")
    @click.option("--value", required=True, help="Setting value")
    def set_setting_command(key, value):
        """Create or update a key/value setting"""
        session = get_session()
        try:
            setting = session.query(Setting).filter_by(key=key).first()
            if setting:
                setting.value = value
            else:
                session.add(Setting(key=key, value=value))
            session.commit()
            click.echo(f"✅ Setting '{key}' saved")
        except Exception as e:
            session.rollback()
            click.echo(f"❌ Error: {e}")
        finally:
            session.close()
