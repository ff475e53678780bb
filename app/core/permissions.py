from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import abort, g
from flask_login import current_user

from app.core.errors import ForbiddenError
from app.core.models import EstadoIncidencia, Incidencia, Rol
from app.core.tenancy import Actor

NO_BUILDING_ACCESS = "No tiene acceso a este edificio"
NO_INCIDENT_ACCESS = "No tiene acceso a esta incidencia"
NO_VISIT_ACCESS = "No tiene acceso a esta visita"
NOT_ASSIGNED = "Esta incidencia no está asignada a usted"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


def enforce(decision: Decision) -> None:
    if not decision.allowed:
        raise ForbiddenError(decision.reason or "No tiene permisos para esta acción")


def require_membership(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if getattr(g, "actor", None) is None:
            abort(403)
        return fn(*args, **kwargs)

    return wrapper


def require_role(*roles: Rol):
    allowed = {Rol(role) for role in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            actor = getattr(g, "actor", None)
            if actor is None or actor.rol not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def can_access_building(actor: Actor, edificio_id: int) -> Decision:
    if actor.is_platform_admin or edificio_id in actor.building_ids:
        return ALLOW
    return deny(NO_BUILDING_ACCESS)


def can_view_incident(actor: Actor, incidencia: Incidencia) -> Decision:
    if not can_access_building(actor, incidencia.edificio_id):
        return deny(NO_INCIDENT_ACCESS)
    if actor.is_resident and incidencia.usuario_id != actor.id:
        return deny(NO_INCIDENT_ACCESS)
    return ALLOW


def can_comment_incident(actor: Actor, incidencia: Incidencia) -> Decision:
    return can_view_incident(actor, incidencia)


def can_update_incident(actor: Actor, incidencia: Incidencia, fields: set[str]) -> Decision:
    if not can_access_building(actor, incidencia.edificio_id):
        return deny(NO_INCIDENT_ACCESS)
    if actor.is_resident:
        if incidencia.usuario_id != actor.id:
            return deny(NO_INCIDENT_ACCESS)
        if incidencia.estado != EstadoIncidencia.PENDIENTE:
            return deny("Solo puede modificar incidencias pendientes")
        if fields - {"descripcion"}:
            return deny("Solo puede modificar la descripción")
        return ALLOW
    if actor.is_conserje and incidencia.asignado_a_id != actor.id:
        return deny(NOT_ASSIGNED)
    return ALLOW


def can_force_close(actor: Actor) -> Decision:
    if not actor.is_admin:
        return deny("Solo un administrador puede cerrar incidencias manualmente")
    return ALLOW


def can_delete_incident(actor: Actor, incidencia: Incidencia) -> Decision:
    if actor.is_resident:
        return deny("No tiene permisos para eliminar incidencias")
    if not can_access_building(actor, incidencia.edificio_id):
        return deny(NO_INCIDENT_ACCESS)
    if actor.is_conserje and incidencia.asignado_a_id != actor.id:
        return deny(NOT_ASSIGNED)
    return ALLOW


def can_manage_incident(actor: Actor, incidencia: Incidencia) -> Decision:
    """Assign and reject are administrative actions scoped to the building."""
    if not actor.is_admin:
        return deny("No tiene permisos para esta acción")
    if not can_access_building(actor, incidencia.edificio_id):
        return deny(NO_BUILDING_ACCESS)
    return ALLOW


def can_act_as_assignee(actor: Actor, incidencia: Incidencia) -> Decision:
    """Resolve and escalate belong to the concierge holding the incident."""
    if not actor.is_conserje:
        return deny("No tiene permisos para esta acción")
    if incidencia.asignado_a_id != actor.id:
        return deny(NOT_ASSIGNED)
    if not can_access_building(actor, incidencia.edificio_id):
        return deny(NO_INCIDENT_ACCESS)
    return ALLOW


def can_view_visit(actor: Actor, edificio_id: int) -> Decision:
    if not can_access_building(actor, edificio_id):
        return deny(NO_VISIT_ACCESS)
    return ALLOW


def can_manage_visit(actor: Actor, edificio_id: int) -> Decision:
    if not actor.is_admin:
        return deny("No tiene permisos para esta acción")
    if not can_access_building(actor, edificio_id):
        return deny(NO_BUILDING_ACCESS)
    return ALLOW
