from __future__ import annotations

import click
from flask import Flask
from werkzeug.security import generate_password_hash

from app.core.auth import auth_bp
from app.core.cache import TTLCache
from app.core.config import Config
from app.core.errors import error_response, register_error_handlers
from app.core.extensions import db, login_manager, migrate
from app.core.logging import setup_logging
from app.core.mail import Mailer
from app.core.models import Edificio, Membership, Rol, User, seed_demo_data
from app.core.tenancy import load_tenant_context
from app.directory import directory_bp
from app.incidents import incidents_bp
from app.notifications import notifications_bp
from app.notifications.dispatcher import NotificationDispatcher
from app.visits import visits_bp


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    setup_logging(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    mailer = Mailer(app.config)
    app.extensions["stats_cache"] = TTLCache(app.config.get("STATS_CACHE_TTL_SECONDS", 30))
    app.extensions["mailer"] = mailer
    app.extensions["notifications"] = NotificationDispatcher(mailer, app.config.get("APP_BASE_URL", ""))

    app.before_request(load_tenant_context)
    register_error_handlers(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(incidents_bp)
    app.register_blueprint(visits_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(directory_bp)

    register_cli(app)
    register_routes(app)
    return app


def register_routes(app: Flask) -> None:
    @app.get("/health")
    def health():
        return {"status": "ok"}


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo buildings, users and companies."""
        if reset:
            db.drop_all()
            db.create_all()
        if not Edificio.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing buildings found.")

    @app.cli.command("create-admin")
    @click.option("--email", required=True, help="Login email.")
    @click.option("--name", "nombre", required=True, help="Display name.")
    @click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--building-id", "building_ids", type=int, multiple=True, help="Building membership (repeatable).")
    def create_admin(email: str, nombre: str, password: str, building_ids: tuple[int, ...]) -> None:
        """Create a platform admin, or a building admin when buildings are given."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"User already exists: {email}")
        if len(password) < 6:
            raise click.ClickException("Password must have at least 6 characters.")
        for building_id in building_ids:
            if db.session.get(Edificio, building_id) is None:
                raise click.ClickException(f"Building not found: {building_id}")
        user = User(
            email=email,
            nombre=nombre.strip(),
            password_hash=generate_password_hash(password),
            rol=Rol.ADMIN_EDIFICIO if building_ids else Rol.ADMIN_PLATAFORMA,
        )
        user.memberships = [Membership(edificio_id=building_id) for building_id in sorted(set(building_ids))]
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created {user.rol.value} {user.email} (id={user.id})")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    user = db.session.get(User, int(user_id))
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return error_response("No autorizado", 401)
