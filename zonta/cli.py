# zonta/cli.py
# =============================================================================
# Site CLI
#   flask create-admin --email you@example.org
#   flask orders expire-stale --hours 24
#   flask shop seed-products --count 8 [--clear]
# =============================================================================

from __future__ import annotations

from datetime import timedelta

import click
from faker import Faker
from flask import current_app
from flask.cli import AppGroup, with_appcontext
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from zonta.errors import DependencyError
from zonta.extensions import db
from zonta.models import PRODUCT_CATEGORIES, Product, User
from zonta.services import build_lifecycle

orders_cli = AppGroup("orders", help="Order housekeeping.")
shop_cli = AppGroup("shop", help="Shop catalogue tools.")
fake = Faker()


# -------------------------------------------------------------------
# Admin users
# -------------------------------------------------------------------
@click.command("create-admin")
@click.option("--email", prompt=True, help="Admin login email.")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--first-name", default="", help="Optional first name.")
@click.option("--last-name", default="", help="Optional last name.")
@with_appcontext
def create_admin_cmd(email: str, password: str, first_name: str, last_name: str) -> None:
    """Create an admin user, or promote and reset the password of an existing one."""
    email = email.strip().lower()
    if len(password) < 8:
        raise click.BadParameter("password must be at least 8 characters", param_hint="--password")

    user = db.session.execute(select(User).where(func.lower(User.email) == email)).scalar_one_or_none()
    created = user is None
    if user is None:
        user = User(email=email)
        db.session.add(user)
    user.is_admin = True
    user.is_active = True
    user.first_name = first_name or user.first_name
    user.last_name = last_name or user.last_name
    user.set_password(password)

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.secho(f"❌ Could not save admin: {e}", fg="red", bold=True)
        raise SystemExit(1)

    verb = "Created" if created else "Updated"
    click.secho(f"✅ {verb} admin {email}", fg="bright_green", bold=True)


# -------------------------------------------------------------------
# Orders
# -------------------------------------------------------------------
@orders_cli.command("expire-stale")
@click.option("--hours", default=24, show_default=True, type=click.IntRange(min=1), help="Age of pending orders to fail.")
def expire_stale_cmd(hours: int) -> None:
    """Mark pending orders older than --hours as failed."""
    lifecycle = build_lifecycle(current_app._get_current_object())
    try:
        count = lifecycle.expire_stale(timedelta(hours=hours))
    except DependencyError as e:
        click.secho(f"❌ Sweep failed: {e.detail}", fg="red", bold=True)
        raise SystemExit(1)
    click.secho(f"🧹 Expired {count} stale pending order(s)", fg="yellow")


# -------------------------------------------------------------------
# Shop seeding
# -------------------------------------------------------------------
@shop_cli.command("seed-products")
@click.option("--count", default=8, show_default=True, help="Number of demo products.")
@click.option("--clear", is_flag=True, help="Delete existing products first.")
def seed_products_cmd(count: int, clear: bool) -> None:
    """🌱 Seed demo products."""
    if clear:
        deleted = db.session.query(Product).delete()
        click.secho(f"  ↳ Cleared {deleted} product(s)", fg="yellow")

    click.secho(f"🛍️  Seeding {count} product(s)…", fg="green")
    try:
        for _ in range(count):
            name = f"{fake.color_name()} {fake.word().capitalize()} {fake.random_element(['Tote', 'Mug', 'Tee', 'Pin', 'Print'])}"
            db.session.add(
                Product(
                    name=name,
                    slug=fake.unique.slug(),
                    description=fake.paragraph(nb_sentences=3),
                    short_description=fake.sentence(nb_words=8),
                    price_cents=fake.random_int(min=500, max=6000),
                    inventory=fake.random_int(min=0, max=40),
                    category=fake.random_element(PRODUCT_CATEGORIES),
                    status="active",
                    featured=fake.boolean(chance_of_getting_true=25),
                    tags=[fake.word() for _ in range(2)],
                )
            )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.secho(f"❌ Seeding failed: {e}", fg="red", bold=True)
        raise SystemExit(1)

    click.secho("✅ Products seeded!", fg="bright_green", bold=True)


def register_cli(app) -> None:
    app.cli.add_command(create_admin_cmd)
    app.cli.add_command(orders_cli)
    app.cli.add_command(shop_cli)
