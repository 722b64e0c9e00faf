# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/serialpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to serialpos (PowerShell: $env:FLASK_APP="serialpos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables and the default admin / manager / employee users (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and tokens:
# - python -m flask users list
# - python -m flask users create --username ana --name "Ana Ruiz" --role employee
# - python -m flask users issue-token --username ana --ttl-hours 12
#   Print a bearer token for API calls (shown once).
#
# Catalog:
# - python -m flask products create --name "Phone X" --price-cents 50000 --serial-type IMEI
# - python -m flask products create --name "Charger" --price-cents 1500 --stock 40
# - python -m flask serials add --product-id 1 --imei 490154203237518 --serial SN-001
# - python -m flask serials test-imei --count 5
#
# Register inspection:
# - python -m flask registers sessions --status OPEN --limit 20
#
# Maintenance:
# - python -m flask maintenance release-expired-reservations
#   Return serialized units whose checkout reservation expired to AVAILABLE (cron-safe).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User
from .permissions import ROLES
from .services import maintenance_service, register_service, serial_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and default users (admin, manager, employee)."""
    click.echo("START Initializing system...")
    db.create_all()

    for username, name, role in (
        ("admin", "Administrator", "admin"),
        ("manager", "Store Manager", "manager"),
        ("employee", "Sales Employee", "employee"),
    ):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        db.session.add(User(username=username, name=name, role=role, is_active=True))
        click.echo(f"PASS Created user: {username} with role '{role}'")

    db.session.commit()
    click.echo("DONE System initialized. Issue tokens with: flask users issue-token --username admin")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<10} {status}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, role):
    if db.session.query(User).filter_by(username=username).first():
        raise click.ClickException(f"User '{username}' already exists")
    user = User(username=username, name=name, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@users_group.command('issue-token')
@click.option('--username', required=True, help='Username')
@click.option('--ttl-hours', type=int, default=None, help='Token lifetime (defaults to SESSION_TOKEN_TTL_HOURS)')
@with_appcontext
def issue_token_cli(username, ttl_hours):
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        raise click.ClickException(f"Active user '{username}' not found")
    token = session_service.create_session(user.id, ttl_hours=ttl_hours)
    click.echo(token)


@click.group('products')
def products_group():
    """Catalog bootstrap commands."""


@products_group.command('create')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Sale price in cents')
@click.option('--purchase-price-cents', type=int, default=0, show_default=True)
@click.option('--stock', type=int, default=0, show_default=True, help='Initial stock (count-tracked products)')
@click.option('--serial-type', type=click.Choice(['IMEI', 'SERIAL', 'BOTH'], case_sensitive=False),
              default=None, help='Track individual units by IMEI and/or serial number')
@with_appcontext
def create_product_cli(name, price_cents, purchase_price_cents, stock, serial_type):
    tracked = serial_type is not None
    product = Product(
        name=name,
        sale_price_cents=price_cents,
        purchase_price_cents=purchase_price_cents,
        stock=0 if tracked else stock,
        has_imei_serial=tracked,
        imei_serial_type=serial_type.upper() if tracked else None,
        requires_imei_serial=tracked,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product {product.name} (ID: {product.id})")


@click.group('serials')
def serials_group():
    """Serialized unit commands."""


@serials_group.command('add')
@click.option('--product-id', type=int, required=True)
@click.option('--imei', 'imeis', multiple=True, help='IMEI number (repeatable)')
@click.option('--serial', 'serials', multiple=True, help='Serial number (repeatable)')
@with_appcontext
def add_serials_cli(product_id, imeis, serials):
    items = [{"imei_number": v} for v in imeis] + [{"serial_number": v} for v in serials]
    if not items:
        raise click.ClickException("Provide at least one --imei or --serial")
    result = serial_service.add_units(product_id, items)
    click.echo(f"PASS Registered {len(result['created'])} units")
    for rejected in result["rejected"]:
        click.echo(f"FAIL {rejected.get('imei_number') or rejected.get('serial_number')}: {'; '.join(rejected['errors'])}")


@serials_group.command('test-imei')
@click.option('--count', type=int, default=1, show_default=True)
def test_imei_cli(count):
    """Print IMEIs with a valid check digit (for fixtures/demos)."""
    for _ in range(count):
        click.echo(serial_service.generate_test_imei())


@click.group('registers')
def registers_group():
    """Cash register inspection commands."""


@registers_group.command('sessions')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED'], case_sensitive=False), default=None)
@click.option('--user-id', type=int, default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_register_sessions(status, user_id, limit):
    registers = register_service.list_registers(user_id=user_id, status=status, limit=limit)
    if not registers:
        click.echo("No register sessions found")
        return
    for r in registers:
        click.echo(
            f"{r.id:>4}  user={r.user_id:<4} {r.status:<6} opening={r.opening_amount_cents} "
            f"sales={r.total_sales_cents} discrepancy={r.discrepancy_cents}"
        )


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('release-expired-reservations')
@with_appcontext
def release_expired_reservations_cli():
    released = maintenance_service.release_expired_reservations()
    click.echo(f"PASS Released {released} expired reservations")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(serials_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(maintenance_group)
