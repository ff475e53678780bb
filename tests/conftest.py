from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app
from app.core.config import Config
from app.core.extensions import db
from app.core.models import (
    Edificio,
    Empresa,
    Incidencia,
    Membership,
    Prioridad,
    Rol,
    TipoServicio,
    User,
    seed_demo_data,
)
from werkzeug.security import generate_password_hash


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    MAIL_BACKEND = "memory"
    MAIL_ASYNC = False
    APP_BASE_URL = "http://testserver"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mail_outbox(app):
    return app.extensions["mailer"].outbox


@pytest.fixture
def ids(app):
    """Primary keys of the seeded demo records."""
    with app.app_context():
        users = {user.email.split("@")[0]: user.id for user in User.query.all()}
        return {
            "edificio": Edificio.query.filter_by(nombre="Edificio Los Aromos").one().id,
            "torre": Edificio.query.filter_by(nombre="Torre Central").one().id,
            "electrica": Empresa.query.filter_by(nombre="Electro Servicios Ltda.").one().id,
            "gasfiter": Empresa.query.filter_by(nombre="Gasfitería Express").one().id,
            "incidencia": Incidencia.query.order_by(Incidencia.id.asc()).first().id,
            **users,
        }


def _login_fixture(client, email: str, password: str):
    def _login():
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture
def login_platform(client):
    return _login_fixture(client, "plataforma@incidencias.local", "plataforma123")


@pytest.fixture
def login_admin(client):
    return _login_fixture(client, "admin@incidencias.local", "admin123")


@pytest.fixture
def login_conserje(client):
    return _login_fixture(client, "conserje@incidencias.local", "conserje123")


@pytest.fixture
def login_residente(client):
    return _login_fixture(client, "residente@incidencias.local", "residente123")


@pytest.fixture
def login_as(client):
    def _login(email: str, password: str = "secret123"):
        client.post("/auth/logout")
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture
def make_user(app):
    def _make(email: str, rol: Rol, edificio_ids: list[int], password: str = "secret123") -> int:
        with app.app_context():
            user = User(
                email=email,
                nombre=email.split("@")[0].title(),
                password_hash=generate_password_hash(password),
                rol=rol,
            )
            user.memberships = [Membership(edificio_id=edificio_id) for edificio_id in edificio_ids]
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


@pytest.fixture
def torre_incident(app, ids, make_user):
    """An incident in the second building, reported by a resident of that building."""
    vecino_id = make_user("vecino@torre.local", Rol.RESIDENTE, [ids["torre"]])
    with app.app_context():
        incidencia = Incidencia(
            edificio_id=ids["torre"],
            usuario_id=vecino_id,
            tipo_servicio=TipoServicio.SEGURIDAD,
            descripcion="Cerradura del acceso principal no cierra",
            prioridad=Prioridad.NORMAL,
        )
        db.session.add(incidencia)
        db.session.commit()
        return incidencia.id
