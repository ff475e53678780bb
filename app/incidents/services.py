from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import case

from app.core.errors import ForbiddenError, NotFoundError
from app.core.extensions import db
from app.core.models import (
    Comentario,
    Edificio,
    EstadoIncidencia,
    Incidencia,
    Prioridad,
    TipoServicio,
    User,
    utcnow,
)
from app.core.permissions import (
    NO_BUILDING_ACCESS,
    can_access_building,
    can_act_as_assignee,
    can_comment_incident,
    can_delete_incident,
    can_force_close,
    can_manage_incident,
    can_update_incident,
    can_view_incident,
    enforce,
)
from app.core.tenancy import Actor
from app.incidents import lifecycle
from app.incidents.schemas import (
    AssignPayload,
    CommentPayload,
    EscalatePayload,
    IncidentCreate,
    IncidentUpdate,
    RejectPayload,
    ResolvePayload,
)

log = logging.getLogger(__name__)


@dataclass
class IncidentFilters:
    edificio_id: int | None = None
    tipo_servicio: TipoServicio | None = None
    estado: EstadoIncidencia | None = None
    prioridad: Prioridad | None = None


def invalidate_stats(edificio_id: int) -> None:
    current_app.extensions["stats_cache"].invalidate(f"stats:{edificio_id}:")


def dispatch(events: list[object]) -> None:
    if events:
        current_app.extensions["notifications"].dispatch(events)


def _commit(incidencia: Incidencia, events: list[object]) -> Incidencia:
    db.session.commit()
    invalidate_stats(incidencia.edificio_id)
    dispatch(events)
    return incidencia


def incident_by_id(incidencia_id: int) -> Incidencia:
    incidencia = db.session.get(Incidencia, incidencia_id)
    if incidencia is None:
        raise NotFoundError("Incidencia no encontrada")
    return incidencia


def _load_conserje(user_id: int | None) -> User | None:
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def priority_order():
    return case((Incidencia.prioridad == Prioridad.URGENTE, 1), else_=0).desc()


def visible_incidents(actor: Actor, filters: IncidentFilters):
    query = Incidencia.query
    if filters.edificio_id is not None:
        enforce(can_access_building(actor, filters.edificio_id))
        query = query.filter(Incidencia.edificio_id == filters.edificio_id)
    elif not actor.is_platform_admin:
        query = query.filter(Incidencia.edificio_id.in_(sorted(actor.building_ids)))
    if actor.is_resident:
        query = query.filter(Incidencia.usuario_id == actor.id)
    if filters.tipo_servicio is not None:
        query = query.filter(Incidencia.tipo_servicio == filters.tipo_servicio)
    if filters.estado is not None:
        query = query.filter(Incidencia.estado == filters.estado)
    if filters.prioridad is not None:
        query = query.filter(Incidencia.prioridad == filters.prioridad)
    return query.order_by(priority_order(), Incidencia.created_at.desc(), Incidencia.id.desc())


def get_incident(actor: Actor, incidencia_id: int) -> Incidencia:
    incidencia = incident_by_id(incidencia_id)
    enforce(can_view_incident(actor, incidencia))
    return incidencia


def create_incident(actor: Actor, payload: IncidentCreate) -> Incidencia:
    if not actor.is_platform_admin and payload.edificio_id not in actor.building_ids:
        raise ForbiddenError(NO_BUILDING_ACCESS)
    if db.session.get(Edificio, payload.edificio_id) is None:
        raise NotFoundError("Edificio no encontrado")
    incidencia = Incidencia(
        edificio_id=payload.edificio_id,
        usuario_id=actor.id,
        tipo_servicio=payload.tipo_servicio,
        descripcion=payload.descripcion,
        prioridad=payload.prioridad,
        estado=EstadoIncidencia.PENDIENTE,
    )
    db.session.add(incidencia)
    db.session.flush()
    events = lifecycle.open_incident(incidencia, actor)
    log.info("incidencia %s creada por usuario %s (%s)", incidencia.id, actor.id, incidencia.prioridad.value)
    return _commit(incidencia, events)


def update_incident(actor: Actor, incidencia_id: int, payload: IncidentUpdate) -> Incidencia:
    incidencia = incident_by_id(incidencia_id)
    changes = payload.changes()
    enforce(can_update_incident(actor, incidencia, set(changes)))
    if changes.get("estado") == EstadoIncidencia.CERRADA:
        enforce(can_force_close(actor))
    events = lifecycle.apply_update(
        incidencia,
        actor,
        changes,
        utcnow(),
        conserje=_load_conserje(changes.get("asignado_a_id")),
    )
    return _commit(incidencia, events)


def delete_incident(actor: Actor, incidencia_id: int) -> None:
    incidencia = incident_by_id(incidencia_id)
    enforce(can_delete_incident(actor, incidencia))
    edificio_id = incidencia.edificio_id
    db.session.delete(incidencia)
    db.session.commit()
    invalidate_stats(edificio_id)
    log.info("incidencia %s eliminada por usuario %s", incidencia_id, actor.id)


def assign_incident(actor: Actor, incidencia_id: int, payload: AssignPayload) -> Incidencia:
    incidencia = incident_by_id(incidencia_id)
    enforce(can_manage_incident(actor, incidencia))
    events = lifecycle.assign(incidencia, _load_conserje(payload.asignado_a_id), actor, utcnow())
    return _commit(incidencia, events)


def resolve_incident(actor: Actor, incidencia_id: int, payload: ResolvePayload) -> Incidencia:
    incidencia = incident_by_id(incidencia_id)
    enforce(can_act_as_assignee(actor, incidencia))
    events = lifecycle.resolve_by_conserje(
        incidencia,
        actor,
        payload.comentario_cierre,
        payload.descripcion_verificada,
        utcnow(),
    )
    return _commit(incidencia, events)


def escalate_incident(actor: Actor, incidencia_id: int, payload: EscalatePayload) -> Incidencia:
    incidencia = incident_by_id(incidencia_id)
    enforce(can_act_as_assignee(actor, incidencia))
    events = lifecycle.escalate(
        incidencia,
        actor,
        payload.descripcion_verificada,
        payload.prioridad,
        utcnow(),
    )
    return _commit(incidencia, events)


def reject_incident(actor: Actor, incidencia_id: int, payload: RejectPayload) -> Incidencia:
    incidencia = incident_by_id(incidencia_id)
    enforce(can_manage_incident(actor, incidencia))
    events = lifecycle.reject(incidencia, actor, payload.motivo_rechazo, utcnow())
    return _commit(incidencia, events)


def list_comments(actor: Actor, incidencia_id: int) -> list[Comentario]:
    incidencia = get_incident(actor, incidencia_id)
    return list(incidencia.comentarios)


def add_comment(actor: Actor, incidencia_id: int, payload: CommentPayload) -> Comentario:
    incidencia = incident_by_id(incidencia_id)
    enforce(can_comment_incident(actor, incidencia))
    comentario, events = lifecycle.add_comment(incidencia, actor, payload.contenido, utcnow())
    db.session.commit()
    dispatch(events)
    return comentario
