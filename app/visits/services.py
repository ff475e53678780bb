from __future__ import annotations

import logging
from datetime import datetime

from app.core.errors import IllegalTransitionError, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import Edificio, Empresa, EstadoVisita, Incidencia, Visita, utcnow
from app.core.permissions import can_manage_visit, can_view_visit, enforce
from app.core.tenancy import Actor
from app.incidents import lifecycle
from app.incidents.services import dispatch, invalidate_stats
from app.visits.schemas import VisitCreate, VisitUpdate

log = logging.getLogger(__name__)

V = EstadoVisita

VISIT_TRANSITIONS: dict[EstadoVisita, set[EstadoVisita]] = {
    V.PROGRAMADA: {V.EN_PROGRESO, V.COMPLETADA, V.CANCELADA},
    V.EN_PROGRESO: {V.COMPLETADA, V.CANCELADA},
    V.COMPLETADA: set(),
    V.CANCELADA: set(),
}


def visit_by_id(visita_id: int) -> Visita:
    visita = db.session.get(Visita, visita_id)
    if visita is None:
        raise NotFoundError("Visita no encontrada")
    return visita


def _empresa_by_id(empresa_id: int) -> Empresa:
    empresa = db.session.get(Empresa, empresa_id)
    if empresa is None:
        raise NotFoundError("Empresa no encontrada")
    return empresa


def _linkable_incidents(edificio_id: int, incidencia_ids: list[int], visita: Visita | None = None) -> list[Incidencia]:
    wanted = sorted(set(incidencia_ids))
    if not wanted:
        return []
    rows = Incidencia.query.filter(Incidencia.id.in_(wanted)).order_by(Incidencia.id.asc()).all()
    found = {row.id for row in rows}
    missing = [str(incidencia_id) for incidencia_id in wanted if incidencia_id not in found]
    if missing:
        raise ValidationError(
            "Datos inválidos",
            {"incidenciaIds": [f"Incidencias no encontradas: {', '.join(missing)}"]},
        )
    for incidencia in rows:
        if incidencia.edificio_id != edificio_id:
            raise ValidationError(
                "Datos inválidos",
                {"incidenciaIds": [f"La incidencia {incidencia.id} no pertenece al edificio de la visita"]},
            )
        already_linked = visita is not None and incidencia.visita_id == visita.id
        if incidencia.is_terminal and not already_linked:
            raise IllegalTransitionError(
                f"La incidencia {incidencia.id} está {incidencia.estado.value} y no puede programarse"
            )
    return rows


def list_visits(
    actor: Actor,
    edificio_id: int | None,
    estado: EstadoVisita | None = None,
    desde: datetime | None = None,
    hasta: datetime | None = None,
):
    if edificio_id is None:
        raise ValidationError("edificioId es requerido", {"buildingId": ["Requerido"]})
    enforce(can_view_visit(actor, edificio_id))
    query = Visita.query.filter(Visita.edificio_id == edificio_id)
    if estado is not None:
        query = query.filter(Visita.estado == estado)
    if desde is not None:
        query = query.filter(Visita.fecha_programada >= desde)
    if hasta is not None:
        query = query.filter(Visita.fecha_programada <= hasta)
    return query.order_by(Visita.fecha_programada.asc(), Visita.id.asc())


def get_visit(actor: Actor, visita_id: int) -> Visita:
    visita = visit_by_id(visita_id)
    enforce(can_view_visit(actor, visita.edificio_id))
    return visita


def create_visit(actor: Actor, payload: VisitCreate) -> Visita:
    enforce(can_manage_visit(actor, payload.edificio_id))
    if db.session.get(Edificio, payload.edificio_id) is None:
        raise NotFoundError("Edificio no encontrado")
    empresa = _empresa_by_id(payload.empresa_id)
    incidencias = _linkable_incidents(payload.edificio_id, payload.incidencia_ids)
    lifecycle.check_coverage(empresa, incidencias)

    now = utcnow()
    visita = Visita(
        edificio_id=payload.edificio_id,
        empresa=empresa,
        fecha_programada=payload.fecha_programada,
        notas=payload.notas,
        estado=V.PROGRAMADA,
    )
    db.session.add(visita)
    db.session.flush()
    events: list[object] = []
    for incidencia in incidencias:
        events.extend(lifecycle.schedule_for_visit(incidencia, visita, now))
    db.session.commit()
    log.info("visita %s creada con %s incidencias", visita.id, len(incidencias))
    invalidate_stats(visita.edificio_id)
    dispatch(events)
    return visita


def update_visit(actor: Actor, visita_id: int, payload: VisitUpdate) -> Visita:
    visita = visit_by_id(visita_id)
    enforce(can_manage_visit(actor, visita.edificio_id))
    fields = payload.model_fields_set

    target = payload.estado if payload.estado is not None and payload.estado != visita.estado else None
    relink = "incidencia_ids" in fields and payload.incidencia_ids is not None
    if (target is not None or relink) and not VISIT_TRANSITIONS[visita.estado]:
        raise IllegalTransitionError(f"La visita ya está {visita.estado.value}")
    if target is not None and target not in VISIT_TRANSITIONS[visita.estado]:
        raise IllegalTransitionError(f"Transición inválida: {visita.estado.value} -> {target.value}")
    nuevas: list[Incidencia] | None = None
    if relink:
        nuevas = _linkable_incidents(visita.edificio_id, payload.incidencia_ids, visita)
        lifecycle.check_coverage(visita.empresa, nuevas)

    now = utcnow()
    if payload.fecha_programada is not None:
        visita.fecha_programada = payload.fecha_programada
    if "notas" in fields:
        visita.notas = payload.notas

    events: list[object] = []
    if nuevas is not None:
        keep = {incidencia.id for incidencia in nuevas}
        for incidencia in list(visita.incidencias):
            if incidencia.id not in keep:
                lifecycle.release_from_visit(incidencia, now)
        for incidencia in nuevas:
            if incidencia.visita_id != visita.id:
                events.extend(lifecycle.schedule_for_visit(incidencia, visita, now))

    if target is not None:
        log.info("visita %s: %s -> %s", visita.id, visita.estado.value, target.value)
        visita.estado = target
        if target == V.COMPLETADA:
            for incidencia in list(visita.incidencias):
                lifecycle.complete_by_visit(incidencia, now)
        elif target == V.CANCELADA:
            for incidencia in list(visita.incidencias):
                lifecycle.release_from_visit(incidencia, now)

    db.session.commit()
    invalidate_stats(visita.edificio_id)
    dispatch(events)
    return visita


def delete_visit(actor: Actor, visita_id: int) -> None:
    visita = visit_by_id(visita_id)
    enforce(can_manage_visit(actor, visita.edificio_id))
    edificio_id = visita.edificio_id
    now = utcnow()
    for incidencia in list(visita.incidencias):
        lifecycle.release_from_visit(incidencia, now)
    db.session.delete(visita)
    db.session.commit()
    invalidate_stats(edificio_id)
    log.info("visita %s eliminada por usuario %s", visita_id, actor.id)
