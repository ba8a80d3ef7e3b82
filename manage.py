"""Management script for database and billing maintenance tasks"""

import click
from dotenv import load_dotenv
from flask.cli import FlaskGroup

load_dotenv()

from renewal_billing import create_app  # noqa: E402
from renewal_billing.extensions import db  # noqa: E402

cli = FlaskGroup(create_app=create_app)


@cli.command("init-db")
def init_db():
    """Create all tables"""
    db.create_all()
    click.echo("✅ Database initialized successfully!")


@cli.command("drop-db")
@click.confirmation_option(prompt="⚠️  Are you sure you want to drop all tables?")
def drop_db():
    """Drop all database tables"""
    db.drop_all()
    click.echo("✅ Database dropped successfully!")


if __name__ == "__main__":
    cli()
