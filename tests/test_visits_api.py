from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.core.extensions import db
from app.core.models import EstadoIncidencia, Incidencia, Prioridad, TipoResolucion, TipoServicio


def _data(response):
    body = response.get_json()
    assert body["success"] is True, body
    return body["data"]


def _when(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).replace(microsecond=0).isoformat()


@pytest.fixture
def make_incident(app, ids):
    def _make(tipo=TipoServicio.AGUA_GAS, edificio=None, estado=EstadoIncidencia.PENDIENTE) -> int:
        with app.app_context():
            incidencia = Incidencia(
                edificio_id=edificio or ids["edificio"],
                usuario_id=ids["residente"],
                tipo_servicio=tipo,
                descripcion="Filtración bajo el lavaplatos del conserje",
                prioridad=Prioridad.NORMAL,
                estado=estado,
            )
            if estado in (EstadoIncidencia.RESUELTA, EstadoIncidencia.CERRADA, EstadoIncidencia.RECHAZADA):
                incidencia.closed_at = datetime.now(timezone.utc)
            db.session.add(incidencia)
            db.session.commit()
            return incidencia.id

    return _make


def _schedule(client, ids, incident_ids, empresa="gasfiter", days=10):
    return client.post(
        "/api/visits",
        json={
            "buildingId": ids["edificio"],
            "companyId": ids[empresa],
            "scheduledAt": _when(days),
            "notes": "Traer repuestos",
            "incidentIds": incident_ids,
        },
    )


def _estado(app, incidencia_id):
    with app.app_context():
        return db.session.get(Incidencia, incidencia_id).estado


def test_list_requires_building_and_membership(client, ids, login_residente):
    login_residente()
    response = client.get("/api/visits")
    assert response.status_code == 400
    assert response.get_json()["error"] == "edificioId es requerido"

    rows = _data(client.get(f"/api/visits?buildingId={ids['edificio']}"))
    assert [row["notas"] for row in rows] == ["Revisión anual de calderas"]

    assert client.get(f"/api/visits?buildingId={ids['torre']}").status_code == 403


def test_list_filters_by_date_and_state(client, ids, login_admin, make_incident):
    login_admin()
    _schedule(client, ids, [make_incident()], days=10)

    query = {"buildingId": ids["edificio"], "to": _when(5)}
    rows = _data(client.get("/api/visits", query_string=query))
    assert [row["notas"] for row in rows] == ["Revisión anual de calderas"]

    query = {"buildingId": ids["edificio"], "from": _when(5)}
    rows = _data(client.get("/api/visits", query_string=query))
    assert [row["notas"] for row in rows] == ["Traer repuestos"]

    rows = _data(client.get(f"/api/visits?buildingId={ids['edificio']}&state=CANCELADA"))
    assert rows == []

    page = _data(client.get(f"/api/visits?buildingId={ids['edificio']}&page=1"))
    assert page["pagination"]["limit"] == 25
    assert page["pagination"]["total"] == 2


def test_only_admins_schedule_visits(client, ids, login_conserje, make_incident):
    login_conserje()
    assert _schedule(client, ids, [make_incident()]).status_code == 403


def test_create_links_incidents_and_emails_reporter(app, client, ids, mail_outbox, login_admin, make_incident):
    incidencia_id = make_incident()
    login_admin()
    response = _schedule(client, ids, [incidencia_id])
    assert response.status_code == 201
    visita = _data(response)
    assert visita["estado"] == "PROGRAMADA"
    assert [row["id"] for row in visita["incidencias"]] == [incidencia_id]
    assert visita["incidencias"][0]["estado"] == "PROGRAMADA"
    assert [m.subject for m in mail_outbox] == ["Visita técnica programada para su incidencia"]
    assert mail_outbox[0].to == "residente@incidencias.local"

    detail = _data(client.get(f"/api/incidents/{incidencia_id}"))
    assert detail["visitaId"] == visita["id"]
    assert detail["visita"]["empresa"]["nombre"] == "Gasfitería Express"


def test_create_rejects_foreign_or_closed_incidents(app, client, ids, login_admin, make_incident):
    login_admin()
    foreign = make_incident(edificio=ids["torre"])
    response = _schedule(client, ids, [foreign])
    assert response.status_code == 400
    assert "incidenciaIds" in response.get_json()["errors"]

    response = _schedule(client, ids, [9999])
    assert response.status_code == 400

    closed = make_incident(estado=EstadoIncidencia.RESUELTA)
    response = _schedule(client, ids, [closed])
    assert response.status_code == 400
    assert _estado(app, closed) == EstadoIncidencia.RESUELTA


def test_coverage_lists_every_missing_service_type(app, client, ids, login_admin, make_incident):
    login_admin()
    luz = make_incident(TipoServicio.ELECTRICIDAD)
    aseo = make_incident(TipoServicio.LIMPIEZA)
    agua = make_incident(TipoServicio.AGUA_GAS)
    response = _schedule(client, ids, [luz, aseo, agua])
    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "La empresa no atiende los siguientes tipos de servicio: ELECTRICIDAD, LIMPIEZA"
    assert body["errors"] == {"incidenciaIds": ["ELECTRICIDAD", "LIMPIEZA"]}
    assert _estado(app, agua) == EstadoIncidencia.PENDIENTE


def test_cancel_releases_incidents(app, client, ids, login_admin, make_incident):
    incidencia_id = make_incident()
    login_admin()
    visita = _data(_schedule(client, ids, [incidencia_id]))

    response = client.patch(f"/api/visits/{visita['id']}", json={"state": "CANCELADA"})
    assert response.status_code == 200
    assert _data(response)["incidencias"] == []
    with app.app_context():
        incidencia = db.session.get(Incidencia, incidencia_id)
        assert incidencia.estado == EstadoIncidencia.PENDIENTE
        assert incidencia.visita_id is None

    response = client.patch(f"/api/visits/{visita['id']}", json={"state": "COMPLETADA"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "La visita ya está CANCELADA"


def test_delete_releases_incidents(app, client, ids, login_admin, make_incident):
    incidencia_id = make_incident()
    login_admin()
    visita = _data(_schedule(client, ids, [incidencia_id]))

    response = client.delete(f"/api/visits/{visita['id']}")
    assert response.status_code == 200
    assert _data(response) == {"deleted": True}
    assert client.get(f"/api/visits/{visita['id']}").status_code == 404
    assert _estado(app, incidencia_id) == EstadoIncidencia.PENDIENTE


def test_relink_releases_removed_and_schedules_added(app, client, ids, login_admin, make_incident):
    first, second, third = make_incident(), make_incident(), make_incident()
    login_admin()
    visita = _data(_schedule(client, ids, [first, second]))

    response = client.patch(f"/api/visits/{visita['id']}", json={"incidentIds": [second, third]})
    assert response.status_code == 200
    assert [row["id"] for row in _data(response)["incidencias"]] == [second, third]
    assert _estado(app, first) == EstadoIncidencia.PENDIENTE
    assert _estado(app, second) == EstadoIncidencia.PROGRAMADA
    assert _estado(app, third) == EstadoIncidencia.PROGRAMADA

    luz = make_incident(TipoServicio.ELECTRICIDAD)
    response = client.patch(f"/api/visits/{visita['id']}", json={"incidentIds": [second, luz]})
    assert response.status_code == 400
    assert _estado(app, luz) == EstadoIncidencia.PENDIENTE


def test_progress_then_complete_resolves_open_incidents(app, client, ids, login_admin, make_incident):
    abierta, cerrada = make_incident(), make_incident()
    login_admin()
    visita = _data(_schedule(client, ids, [abierta, cerrada]))
    client.patch(f"/api/incidents/{cerrada}", json={"state": "CERRADA", "closingComment": "Duplicada"})

    response = client.patch(f"/api/visits/{visita['id']}", json={"state": "EN_PROGRESO"})
    assert _data(response)["estado"] == "EN_PROGRESO"
    response = client.patch(f"/api/visits/{visita['id']}", json={"state": "PROGRAMADA"})
    assert response.status_code == 400

    response = client.patch(f"/api/visits/{visita['id']}", json={"state": "COMPLETADA"})
    assert response.status_code == 200
    with app.app_context():
        resuelta = db.session.get(Incidencia, abierta)
        assert resuelta.estado == EstadoIncidencia.RESUELTA
        assert resuelta.tipo_resolucion == TipoResolucion.EMPRESA_EXTERNA
        assert resuelta.closed_at is not None
        intacta = db.session.get(Incidencia, cerrada)
        assert intacta.estado == EstadoIncidencia.CERRADA
        assert intacta.tipo_resolucion is None


def test_update_rejects_unknown_fields(client, ids, login_admin):
    login_admin()
    visita = _data(client.get(f"/api/visits?buildingId={ids['edificio']}"))[0]
    response = client.patch(f"/api/visits/{visita['id']}", json={"companyId": ids["electrica"]})
    assert response.status_code == 400

    response = client.patch(f"/api/visits/{visita['id']}", json={"notes": "Reprogramada"})
    assert _data(response)["notas"] == "Reprogramada"


def test_service_type_change_must_stay_covered_by_visit_company(app, client, ids, login_admin, make_incident):
    incidencia_id = make_incident(TipoServicio.AGUA_GAS)
    login_admin()
    _schedule(client, ids, [incidencia_id])

    response = client.patch(f"/api/incidents/{incidencia_id}", json={"serviceType": "ELECTRICIDAD"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "La empresa no atiende los siguientes tipos de servicio: ELECTRICIDAD"
    with app.app_context():
        assert db.session.get(Incidencia, incidencia_id).tipo_servicio == TipoServicio.AGUA_GAS

    response = client.patch(f"/api/incidents/{incidencia_id}", json={"serviceType": "INFRAESTRUCTURA"})
    assert response.status_code == 200
    assert _data(response)["tipoServicio"] == "INFRAESTRUCTURA"
