# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pos_backend/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--no-sample-products]
#   Idempotent bootstrap: creates tables, default users, categories and sample products.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Jane Cruz" --email jane@example.com --role cashier
#   Create a user (prompts if options are omitted).
# - python -m flask users issue-token jane@example.com
#   Mint a bearer token for a user (printed once, stored hashed).
# - python -m flask users deactivate jane@example.com
#   Deactivate a user and revoke all of their tokens.
#
# Inventory inspection:
# - python -m flask inventory verify-ledger [--product-id 1]
#   Replay ledgers and report chain breaks or stock mismatches (exit code 1 on problems).
# - python -m flask inventory low-stock
#   List active products at or below their low-stock threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User
from .permissions import Role
from .services import inventory_service, ledger_service, session_service
from .services.event_sink import DatabaseEventSink, emit_safely
from .services.products_service import create_product, get_or_create_category


DEFAULT_USERS = [
    ("Admin User", "admin@capstone.com", Role.ADMIN),
    ("Cashier User", "cashier@capstone.com", Role.CASHIER),
]

DEFAULT_CATEGORIES = ["Computers", "Peripherals", "Accessories", "Software", "Networking"]

# (sku, name, category, selling_price_cents, stock)
SAMPLE_PRODUCTS = [
    ("DESKTOPPC-001", "Desktop PC", "Computers", 2_500_000, 10),
    ("LAPTOP-001", "Laptop", "Computers", 3_500_000, 8),
    ("MECHKEYB-001", "Mechanical Keyboard", "Peripherals", 250_000, 20),
    ("GAMINGMO-001", "Gaming Mouse", "Peripherals", 150_000, 25),
    ("MONITOR24-001", 'Monitor 24"', "Peripherals", 800_000, 12),
    ("USBHUB-001", "USB Hub", "Accessories", 80_000, 30),
    ("HDMICABL-001", "HDMI Cable", "Accessories", 35_000, 50),
    ("ANTIVIRU-001", "Antivirus 1yr", "Software", 120_000, 15),
    ("WIFIROUT-001", "WiFi Router", "Networking", 350_000, 10),
    ("NETWORKS-001", "Network Switch", "Networking", 280_000, 7),
]


def _ensure_user(name: str, email: str, role: Role) -> tuple[User, bool]:
    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        return existing, False
    user = User(name=name, email=email, role=role.value, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user, True


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--no-sample-products', is_flag=True, help='Skip the sample catalog')
@with_appcontext
def init_system(no_sample_products):
    """
    Initialize the POS: tables, default users, categories and sample products.

    Safe to run repeatedly; existing rows are left alone. Sample stock is
    booked through the inventory ledger as "Initial stock".
    """
    click.echo("START Initializing POS system...")
    db.create_all()

    click.echo("\nUSERS Creating default users...")
    admin = None
    for name, email, role in DEFAULT_USERS:
        user, created = _ensure_user(name, email, role)
        if role is Role.ADMIN:
            admin = user
        if created:
            click.echo(f"PASS Created user: {email} with role '{role.value}'")
        else:
            click.echo(f"WARN  User '{email}' already exists, skipping...")

    click.echo("\nLIST Creating categories...")
    categories = {name: get_or_create_category(name) for name in DEFAULT_CATEGORIES}
    db.session.commit()
    click.echo(f"PASS Categories: {', '.join(categories)}")

    if not no_sample_products:
        click.echo("\nPRODUCTS Creating sample products...")
        events = DatabaseEventSink()
        for sku, name, category, price_cents, stock in SAMPLE_PRODUCTS:
            if db.session.query(Product.id).filter_by(sku=sku).first():
                click.echo(f"WARN  Product '{sku}' already exists, skipping...")
                continue
            create_product(
                patch={
                    "sku": sku,
                    "name": name,
                    "category_id": categories[category].id,
                    "selling_price_cents": price_cents,
                    "cost_price_cents": 0,
                    "stock_quantity": stock,
                },
                actor_id=admin.id,
                events=events,
            )
            click.echo(f"PASS Created product: {sku} {name} (stock {stock})")

    click.echo("\n" + "=" * 60)
    click.echo("DONE POS System Initialized Successfully!")
    click.echo("=" * 60)
    click.echo("\nIssue a bearer token with: python -m flask users issue-token admin@capstone.com")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'flask system init' to seed it.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<30} {'Role':<10} {'Active'}")
    click.echo("=" * 80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<30} {user.role:<10} {active_str}")

    click.echo("=" * 80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (unique)')
@click.option('--role', type=click.Choice([r.value for r in Role]), default=Role.CASHIER.value, show_default=True)
@with_appcontext
def create_user_command(name, email, role):
    """Create a user."""
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise click.ClickException(f"User '{email}' already exists")

    user, _ = _ensure_user(name.strip(), email, Role.parse(role))
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@users_group.command('issue-token')
@click.argument('email')
@with_appcontext
def issue_token(email):
    """Mint a bearer token for a user. The plaintext is shown only once."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")

    try:
        session, token = session_service.create_session(user.id, user_agent="flask-cli")
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Token for {user.email} (expires {session.expires_at:%Y-%m-%d %H:%M} UTC):")
    click.echo(token)


@users_group.command('deactivate')
@click.argument('email')
@with_appcontext
def deactivate_user(email):
    """Deactivate a user and revoke every token they hold."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")

    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user.id)

    emit_safely(
        DatabaseEventSink(),
        level="audit",
        module="auth",
        action="user_deactivated",
        message=f"User deactivated: {user.email}",
        metadata={"user_id": user.id, "revoked_sessions": revoked},
    )
    click.echo(f"PASS Deactivated {user.email}; revoked {revoked} session(s)")


@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection commands."""


@inventory_group.command('verify-ledger')
@click.option('--product-id', type=int, help='Check a single product')
@with_appcontext
def verify_ledger(product_id):
    """Replay inventory ledgers and compare them to cached stock."""
    if product_id is not None:
        checks = [ledger_service.verify_product_ledger(product_id)]
    else:
        checks = ledger_service.verify_all_ledgers()

    failed = [c for c in checks if not c.ok]
    for check in checks:
        status = "PASS" if check.ok else "FAIL"
        click.echo(
            f"{status} product {check.product_id}: {check.entries} entries, "
            f"ledger={check.ledger_quantity} stock={check.stock_quantity}"
        )
        for problem in check.problems:
            click.echo(f"      - {problem['problem']} (entry {problem['entry_id']}): {problem['detail']}")

    click.echo(f"\n{len(checks) - len(failed)}/{len(checks)} ledgers consistent")
    if failed:
        raise SystemExit(1)


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below their low-stock threshold."""
    products = inventory_service.list_low_stock_products()
    if not products:
        click.echo("No low-stock products.")
        return

    click.echo(f"{'ID':<5} {'SKU':<16} {'Name':<30} {'Stock':>6} {'Threshold':>10}")
    for p in products:
        click.echo(f"{p.id:<5} {p.sku:<16} {p.name:<30} {p.stock_quantity:>6} {p.low_stock_threshold:>10}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
