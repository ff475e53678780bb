from __future__ import annotations

from app.core.extensions import db
from app.core.models import (
    EstadoIncidencia,
    Incidencia,
    Prioridad,
    Rol,
    TipoServicio,
    User,
)


def _data(response):
    body = response.get_json()
    assert body["success"] is True, body
    return body["data"]


def _insert_incident(app, ids, **overrides) -> int:
    values = {
        "edificio_id": ids["edificio"],
        "usuario_id": ids["residente"],
        "tipo_servicio": TipoServicio.ELECTRICIDAD,
        "descripcion": "Enchufe quemado en la sala de eventos",
        "prioridad": Prioridad.NORMAL,
    }
    values.update(overrides)
    with app.app_context():
        incidencia = Incidencia(**values)
        db.session.add(incidencia)
        db.session.commit()
        return incidencia.id


def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok"}


def test_login_me_and_logout(client, ids, login_admin):
    response = client.post("/auth/login", json={"email": "admin@incidencias.local", "password": "nope"})
    assert response.status_code == 401
    assert client.post("/auth/login", json={}).status_code == 400

    assert login_admin().status_code == 200
    me = _data(client.get("/auth/me"))
    assert me["rol"] == "ADMIN_EDIFICIO"
    assert me["edificioIds"] == [ids["edificio"]]

    client.post("/auth/logout")
    assert client.get("/auth/me").status_code == 401


def test_buildings_are_scoped(client, ids, login_platform, login_residente):
    login_residente()
    rows = _data(client.get("/api/buildings"))
    assert [row["nombre"] for row in rows] == ["Edificio Los Aromos"]
    assert rows[0]["urgentes"] == 0
    assert client.get(f"/api/buildings/{ids['torre']}").status_code == 403
    detail = _data(client.get(f"/api/buildings/{ids['edificio']}"))
    assert detail["_count"] == {"incidencias": 1, "visitas": 1, "usuarios": 3}

    login_platform()
    rows = _data(client.get("/api/buildings"))
    assert [row["nombre"] for row in rows] == ["Edificio Los Aromos", "Torre Central"]


def test_building_admin_cannot_manage_buildings(client, ids, login_admin):
    login_admin()
    assert client.post("/api/buildings", json={"name": "Nuevo", "address": "Calle Falsa 123"}).status_code == 403
    assert client.delete(f"/api/buildings/{ids['torre']}").status_code == 403


def test_platform_admin_manages_buildings(client, ids, login_platform):
    login_platform()
    response = client.post("/api/buildings", json={"name": "Condominio Sur", "address": "Av. Sur 900"})
    assert response.status_code == 201
    nuevo = _data(response)

    response = client.post("/api/buildings", json={"name": "condominio sur", "address": "Av. Sur 901"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Ya existe un edificio con ese nombre"
    assert client.post("/api/buildings", json={"name": "X", "address": "Av"}).status_code == 400

    response = client.patch(f"/api/buildings/{nuevo['id']}", json={"address": "Av. Sur 1000"})
    assert _data(response)["direccion"] == "Av. Sur 1000"

    response = client.delete(f"/api/buildings/{ids['edificio']}")
    assert response.status_code == 400
    assert _data(client.delete(f"/api/buildings/{nuevo['id']}")) == {"deleted": True}


def test_concierges_report_active_assignments(client, ids, login_admin, login_residente):
    login_admin()
    client.post(f"/api/incidents/{ids['incidencia']}/assign", json={"assigneeId": ids["conserje"]})
    rows = _data(client.get(f"/api/buildings/{ids['edificio']}/concierges"))
    assert rows == [
        {
            "id": ids["conserje"],
            "nombre": "Conserje Turno Día",
            "email": "conserje@incidencias.local",
            "incidenciasActivas": 1,
        }
    ]
    assert client.get(f"/api/buildings/{ids['torre']}/concierges").status_code == 403

    login_residente()
    assert client.get(f"/api/buildings/{ids['edificio']}/concierges").status_code == 403


def test_stats_are_cached_and_invalidated_by_writes(app, client, ids, login_admin, login_residente):
    login_admin()
    url = f"/api/buildings/{ids['edificio']}/stats"
    stats = _data(client.get(url))
    assert stats["pendientes"] == 1
    assert stats["urgentes"] == 0
    assert stats["porTipo"] == [{"tipo": "LIMPIEZA", "cantidad": 1}]
    assert [visita["empresa"] for visita in stats["proximasVisitas"]] == ["Gasfitería Express"]

    _insert_incident(app, ids, prioridad=Prioridad.URGENTE)
    assert _data(client.get(url))["pendientes"] == 1

    login_residente()
    client.post(
        "/api/incidents",
        json={
            "buildingId": ids["edificio"],
            "serviceType": "SEGURIDAD",
            "description": "Portón del estacionamiento no cierra",
        },
    )
    mine = _data(client.get(url))
    assert mine["pendientes"] == 3
    assert "proximasVisitas" not in mine

    login_admin()
    stats = _data(client.get(url))
    assert stats["pendientes"] == 3
    assert stats["urgentes"] == 1
    assert stats["incidenciasUrgentes"][0]["reportadoPor"] == "Residente Depto 101"


def test_stats_reflect_resolutions_today(client, ids, login_admin):
    login_admin()
    url = f"/api/buildings/{ids['edificio']}/stats"
    assert _data(client.get(url))["resueltasHoy"] == 0
    client.patch(
        f"/api/incidents/{ids['incidencia']}",
        json={"state": "CERRADA", "closingComment": "Retirada por el municipio"},
    )
    stats = _data(client.get(url))
    assert stats["resueltasHoy"] == 1
    assert stats["pendientes"] == 0
    assert client.get(f"/api/buildings/{ids['torre']}/stats").status_code == 403


def test_companies_filter_and_admin_only_writes(client, ids, login_admin, login_platform):
    login_admin()
    rows = _data(client.get("/api/companies?serviceType=AGUA_GAS"))
    assert [row["nombre"] for row in rows] == ["Gasfitería Express"]
    assert _data(client.get(f"/api/companies/{ids['electrica']}"))["tiposServicio"] == ["ELECTRICIDAD"]
    assert client.get("/api/companies?serviceType=OTRO").status_code == 400
    payload = {"name": "Seguridad Total", "serviceTypes": ["SEGURIDAD"]}
    assert client.post("/api/companies", json=payload).status_code == 403

    login_platform()
    response = client.post("/api/companies", json={**payload, "email": "no-es-email"})
    assert response.status_code == 400
    response = client.post("/api/companies", json={**payload, "serviceTypes": []})
    assert response.status_code == 400

    empresa = _data(client.post("/api/companies", json={**payload, "email": "Contacto@Seguridad.local"}))
    assert empresa["email"] == "contacto@seguridad.local"

    response = client.patch(
        f"/api/companies/{empresa['id']}",
        json={"serviceTypes": ["SEGURIDAD", "INFRAESTRUCTURA", "SEGURIDAD"]},
    )
    assert _data(response)["tiposServicio"] == ["INFRAESTRUCTURA", "SEGURIDAD"]

    assert client.delete(f"/api/companies/{ids['gasfiter']}").status_code == 400
    assert _data(client.delete(f"/api/companies/{empresa['id']}")) == {"deleted": True}


def test_building_admin_creates_users_in_own_buildings(app, client, ids, login_admin, login_as):
    login_admin()
    payload = {
        "email": "Nuevo.Conserje@Aromos.local",
        "password": "noche123",
        "name": "Conserje Noche",
        "role": "CONSERJE",
        "buildingIds": [ids["edificio"]],
    }
    response = client.post("/api/users", json=payload)
    assert response.status_code == 201
    user = _data(response)
    assert user["email"] == "nuevo.conserje@aromos.local"
    assert [e["id"] for e in user["edificios"]] == [ids["edificio"]]

    assert client.post("/api/users", json=payload).status_code == 400
    response = client.post("/api/users", json={**payload, "email": "otro@torre.local", "buildingIds": [ids["torre"]]})
    assert response.status_code == 403
    response = client.post("/api/users", json={**payload, "email": "jefe@aromos.local", "role": "ADMIN_PLATAFORMA"})
    assert response.status_code == 403

    emails = [row["email"] for row in _data(client.get("/api/users"))]
    assert "plataforma@incidencias.local" not in emails
    assert "nuevo.conserje@aromos.local" in emails
    assert client.get(f"/api/users/{ids['plataforma']}").status_code == 403

    assert login_as("nuevo.conserje@aromos.local", "noche123").status_code == 200


def test_directory_is_admin_only(client, ids, login_conserje):
    login_conserje()
    assert client.get("/api/users").status_code == 403
    assert client.patch(f"/api/users/{ids['residente']}", json={"name": "Otro"}).status_code == 403


def test_platform_admin_updates_and_deactivates_users(app, client, ids, login_platform, login_admin, login_as):
    login_admin()
    client.post(f"/api/incidents/{ids['incidencia']}/assign", json={"assigneeId": ids["conserje"]})

    login_platform()
    url = f"/api/users/{ids['conserje']}"
    response = client.patch(url, json={"role": "RESIDENTE"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "El conserje tiene incidencias asignadas activas"
    response = client.patch(url, json={"buildingIds": [ids["torre"]]})
    assert response.status_code == 400

    response = client.patch(url, json={"buildingIds": [ids["edificio"], ids["torre"]], "name": "Conserje Rotativo"})
    user = _data(response)
    assert user["nombre"] == "Conserje Rotativo"
    assert sorted(e["id"] for e in user["edificios"]) == sorted([ids["edificio"], ids["torre"]])

    response = client.patch(f"/api/users/{ids['plataforma']}", json={"active": False})
    assert response.status_code == 400
    assert client.delete(f"/api/users/{ids['plataforma']}").status_code == 400

    response = client.delete(f"/api/users/{ids['residente']}")
    assert _data(response)["activo"] is False
    with app.app_context():
        assert db.session.get(User, ids["residente"]).is_active is False
        assert db.session.get(Incidencia, ids["incidencia"]).usuario_id == ids["residente"]

    response = login_as("residente@incidencias.local", "residente123")
    assert response.status_code == 403


def test_deactivated_session_is_dropped(app, client, ids, login_residente):
    login_residente()
    assert client.get("/api/incidents").status_code == 200
    with app.app_context():
        db.session.get(User, ids["residente"]).is_active = False
        db.session.commit()
    assert client.get("/api/incidents").status_code == 401


def test_created_concierge_is_assignable(app, client, ids, login_platform, login_admin):
    login_platform()
    response = client.post(
        "/api/users",
        json={
            "email": "conserje.torre@incidencias.local",
            "password": "torre123",
            "name": "Conserje Torre",
            "role": Rol.CONSERJE.value,
            "buildingIds": [ids["torre"]],
        },
    )
    conserje_torre = _data(response)["id"]

    login_admin()
    response = client.post(f"/api/incidents/{ids['incidencia']}/assign", json={"assigneeId": conserje_torre})
    assert response.status_code == 400
    with app.app_context():
        assert db.session.get(Incidencia, ids["incidencia"]).estado == EstadoIncidencia.PENDIENTE
