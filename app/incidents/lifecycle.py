"""
Incident lifecycle state machine.

Functions here mutate an ``Incidencia`` (and append audit comments to it)
but never query or commit the session: callers load the aggregate,
authorize the actor, call one operation and commit. Each operation
returns the domain events the notification dispatcher must deliver.

    PENDIENTE -> ASIGNADA -> ESCALADA | RESUELTA
    ESCALADA  -> ASIGNADA | PROGRAMADA (visit) | PENDIENTE (visit cancelled)
    PROGRAMADA -> RESUELTA (visit completed) | PENDIENTE (visit cancelled)
    PENDIENTE -> RECHAZADA
    any non-terminal -> CERRADA (administrative override)
"""
from __future__ import annotations

import logging
from datetime import datetime

from app.core.errors import IllegalTransitionError, ValidationError
from app.core.models import (
    TERMINAL_STATES,
    Comentario,
    Empresa,
    EstadoIncidencia,
    Incidencia,
    Prioridad,
    Rol,
    TipoResolucion,
    User,
    Visita,
)
from app.core.tenancy import Actor
from app.notifications.events import (
    CommentAdded,
    IncidentAssigned,
    IncidentEscalated,
    IncidentMarkedUrgent,
    IncidentRejected,
    VisitScheduled,
)

log = logging.getLogger(__name__)

E = EstadoIncidencia

INCIDENT_TRANSITIONS: dict[EstadoIncidencia, set[EstadoIncidencia]] = {
    E.PENDIENTE: {E.ASIGNADA, E.RECHAZADA, E.PROGRAMADA, E.RESUELTA, E.CERRADA},
    E.ASIGNADA: {E.ESCALADA, E.RESUELTA, E.PROGRAMADA, E.PENDIENTE, E.CERRADA},
    E.ESCALADA: {E.ASIGNADA, E.PROGRAMADA, E.PENDIENTE, E.RESUELTA, E.CERRADA},
    E.PROGRAMADA: {E.RESUELTA, E.PENDIENTE, E.CERRADA},
    E.RESUELTA: set(),
    E.CERRADA: set(),
    E.RECHAZADA: set(),
}

ASSIGNABLE_STATES = frozenset({E.PENDIENTE, E.ESCALADA})
MIN_DESCRIPTION = 10
MIN_VERIFIED_DESCRIPTION = 10
MIN_CLOSING_COMMENT = 5


def can_transition(current: EstadoIncidencia, target: EstadoIncidencia) -> bool:
    return target in INCIDENT_TRANSITIONS.get(current, set())


def _move(incidencia: Incidencia, target: EstadoIncidencia, now: datetime) -> None:
    current = incidencia.estado
    if current == target:
        return
    if not can_transition(current, target):
        raise IllegalTransitionError(f"Transición inválida: {current.value} -> {target.value}")
    incidencia.estado = target
    # closed_at tracks terminal states exactly
    incidencia.closed_at = now if target in TERMINAL_STATES else None
    log.info("incidencia %s: %s -> %s", incidencia.id, current.value, target.value)


def _system_comment(incidencia: Incidencia, actor: Actor, contenido: str, now: datetime) -> Comentario:
    comentario = Comentario(usuario_id=actor.id, contenido=contenido, created_at=now)
    incidencia.comentarios.append(comentario)
    return comentario


def _clean(value: str | None) -> str:
    return (value or "").strip()


def _require_min(field: str, value: str | None, size: int, message: str) -> str:
    cleaned = _clean(value)
    if len(cleaned) < size:
        raise ValidationError("Datos inválidos", {field: [message]})
    return cleaned


def open_incident(incidencia: Incidencia, actor: Actor) -> list[object]:
    """New incidents start PENDIENTE; urgent ones alert the building admins."""
    _require_min(
        "descripcion",
        incidencia.descripcion,
        MIN_DESCRIPTION,
        "Descripción debe tener al menos 10 caracteres",
    )
    incidencia.estado = E.PENDIENTE
    incidencia.closed_at = None
    if incidencia.prioridad == Prioridad.URGENTE:
        return [
            IncidentMarkedUrgent(
                incidencia_id=incidencia.id,
                edificio_id=incidencia.edificio_id,
                actor_id=actor.id,
                descripcion=incidencia.descripcion,
            )
        ]
    return []


def validate_conserje(incidencia: Incidencia, conserje: User | None) -> User:
    if (
        conserje is None
        or conserje.rol != Rol.CONSERJE
        or not conserje.is_active
        or incidencia.edificio_id not in conserje.edificio_ids
    ):
        raise ValidationError(
            "Conserje no encontrado o no pertenece al edificio",
            {"asignadoAId": ["Debe ser un conserje del edificio"]},
        )
    return conserje


def assign(incidencia: Incidencia, conserje: User | None, actor: Actor, now: datetime) -> list[object]:
    if incidencia.estado not in ASSIGNABLE_STATES:
        raise IllegalTransitionError("Solo se pueden asignar incidencias pendientes o escaladas")
    conserje = validate_conserje(incidencia, conserje)
    _move(incidencia, E.ASIGNADA, now)
    incidencia.asignado_a_id = conserje.id
    incidencia.asignado_el = now
    _system_comment(incidencia, actor, f"Incidencia asignada a {conserje.nombre}", now)
    return [
        IncidentAssigned(
            incidencia_id=incidencia.id,
            conserje_id=conserje.id,
            actor_id=actor.id,
            descripcion=incidencia.descripcion,
        )
    ]


def resolve_by_conserje(
    incidencia: Incidencia,
    actor: Actor,
    comentario_cierre: str | None,
    descripcion_verificada: str | None,
    now: datetime,
) -> list[object]:
    if incidencia.estado != E.ASIGNADA:
        raise IllegalTransitionError("Solo se pueden resolver incidencias asignadas")
    comentario_cierre = _require_min(
        "comentarioCierre",
        comentario_cierre,
        MIN_CLOSING_COMMENT,
        "Debe indicar cómo se resolvió",
    )
    _move(incidencia, E.RESUELTA, now)
    incidencia.verificado_el = now
    incidencia.descripcion_verificada = _clean(descripcion_verificada) or incidencia.descripcion
    incidencia.tipo_resolucion = TipoResolucion.CONSERJE
    incidencia.comentario_cierre = comentario_cierre
    _system_comment(incidencia, actor, f"Incidencia resuelta por conserje: {comentario_cierre}", now)
    return []


def escalate(
    incidencia: Incidencia,
    actor: Actor,
    descripcion_verificada: str | None,
    prioridad: Prioridad | None,
    now: datetime,
) -> list[object]:
    if incidencia.estado != E.ASIGNADA:
        raise IllegalTransitionError("Solo se pueden escalar incidencias asignadas")
    descripcion_verificada = _require_min(
        "descripcionVerificada",
        descripcion_verificada,
        MIN_VERIFIED_DESCRIPTION,
        "Describa la situación verificada",
    )
    _move(incidencia, E.ESCALADA, now)
    incidencia.verificado_el = now
    incidencia.escalada_el = now
    incidencia.descripcion_verificada = descripcion_verificada
    # escalation only ever raises priority
    if prioridad == Prioridad.URGENTE:
        incidencia.prioridad = prioridad
    _system_comment(
        incidencia,
        actor,
        f"Incidencia escalada a administrador. Verificación: {descripcion_verificada}",
        now,
    )
    return [
        IncidentEscalated(
            incidencia_id=incidencia.id,
            edificio_id=incidencia.edificio_id,
            actor_id=actor.id,
            descripcion=incidencia.descripcion,
            urgente=incidencia.prioridad == Prioridad.URGENTE,
        )
    ]


def check_coverage(empresa: Empresa, incidencias: list[Incidencia]) -> None:
    """Every incident linked to a visit must be a service type the company offers."""
    offered = set(empresa.tipos_servicio)
    missing: list[str] = []
    for incidencia in incidencias:
        tipo = incidencia.tipo_servicio
        if tipo not in offered and tipo.value not in missing:
            missing.append(tipo.value)
    if missing:
        raise ValidationError(
            f"La empresa no atiende los siguientes tipos de servicio: {', '.join(missing)}",
            {"incidenciaIds": missing},
        )


def reject(incidencia: Incidencia, actor: Actor, motivo: str | None, now: datetime) -> list[object]:
    if incidencia.estado != E.PENDIENTE:
        raise IllegalTransitionError("Solo se pueden rechazar incidencias en estado PENDIENTE")
    motivo = _require_min("motivoRechazo", motivo, MIN_CLOSING_COMMENT, "Debe indicar el motivo del rechazo")
    _move(incidencia, E.RECHAZADA, now)
    incidencia.rechazada_el = now
    incidencia.motivo_rechazo = motivo
    _system_comment(incidencia, actor, f"Incidencia rechazada. Motivo: {motivo}", now)
    return [
        IncidentRejected(
            incidencia_id=incidencia.id,
            reporter_id=incidencia.usuario_id,
            actor_id=actor.id,
            motivo=motivo,
        )
    ]


def apply_update(
    incidencia: Incidencia,
    actor: Actor,
    changes: dict[str, object],
    now: datetime,
    conserje: User | None = None,
) -> list[object]:
    """Generic field update, including the administrative state override.

    ``changes`` maps model attributes to new values; only keys present are
    applied. When ``asignado_a_id`` is set to a user, ``conserje`` must be
    that user loaded by the caller.
    """
    events: list[object] = []
    previous_priority = incidencia.prioridad
    target = changes.get("estado")
    lifecycle_change = (target is not None and target != incidencia.estado) or (
        "asignado_a_id" in changes and changes["asignado_a_id"] != incidencia.asignado_a_id
    )
    if incidencia.is_terminal and lifecycle_change:
        raise IllegalTransitionError(
            f"La incidencia está en estado {incidencia.estado.value} y no admite más cambios de estado"
        )

    if "descripcion" in changes:
        incidencia.descripcion = _require_min(
            "descripcion",
            changes["descripcion"],
            MIN_DESCRIPTION,
            "Descripción debe tener al menos 10 caracteres",
        )
    for field in ("tipo_servicio", "descripcion_verificada", "tipo_resolucion", "comentario_cierre"):
        if field in changes:
            setattr(incidencia, field, changes[field])
    if changes.get("prioridad") is not None:
        incidencia.prioridad = changes["prioridad"]

    if "asignado_a_id" in changes and changes["asignado_a_id"] != incidencia.asignado_a_id:
        if changes["asignado_a_id"] is None:
            incidencia.asignado_a_id = None
            incidencia.asignado_el = None
        else:
            conserje = validate_conserje(incidencia, conserje)
            incidencia.asignado_a_id = conserje.id
            incidencia.asignado_el = now
            events.append(
                IncidentAssigned(
                    incidencia_id=incidencia.id,
                    conserje_id=conserje.id,
                    actor_id=actor.id,
                    descripcion=incidencia.descripcion,
                )
            )

    if "motivo_rechazo" in changes and target != E.RECHAZADA:
        if incidencia.estado != E.RECHAZADA:
            raise ValidationError(
                "Datos inválidos",
                {"motivoRechazo": ["Solo aplica al rechazar la incidencia"]},
            )
        incidencia.motivo_rechazo = _require_min(
            "motivoRechazo",
            changes["motivo_rechazo"],
            MIN_CLOSING_COMMENT,
            "Debe indicar el motivo del rechazo",
        )

    if target is not None and target != incidencia.estado:
        if target == E.RECHAZADA:
            events.extend(reject(incidencia, actor, changes.get("motivo_rechazo"), now))
        else:
            events.extend(_override_state(incidencia, actor, target, now))
    if incidencia.estado == E.ASIGNADA and incidencia.asignado_a_id is None:
        raise ValidationError("Datos inválidos", {"asignadoAId": ["Una incidencia asignada requiere conserje"]})
    if "tipo_servicio" in changes and incidencia.visita is not None:
        check_coverage(incidencia.visita.empresa, [incidencia])

    if incidencia.prioridad == Prioridad.URGENTE and previous_priority != Prioridad.URGENTE:
        events.append(
            IncidentMarkedUrgent(
                incidencia_id=incidencia.id,
                edificio_id=incidencia.edificio_id,
                actor_id=actor.id,
                descripcion=incidencia.descripcion,
            )
        )
    return events


def _override_state(incidencia: Incidencia, actor: Actor, target: EstadoIncidencia, now: datetime) -> list[object]:
    if target == E.PROGRAMADA:
        raise IllegalTransitionError("El estado PROGRAMADA solo se asigna al programar una visita")
    if target == E.CERRADA:
        comentario = _require_min(
            "comentarioCierre",
            incidencia.comentario_cierre,
            MIN_CLOSING_COMMENT,
            "Debe indicar el motivo del cierre",
        )
        _move(incidencia, E.CERRADA, now)
        _system_comment(incidencia, actor, f"Incidencia cerrada por administrador: {comentario}", now)
        return []
    _move(incidencia, target, now)
    if target == E.PENDIENTE and incidencia.visita_id is not None:
        incidencia.visita = None
    return []


def add_comment(incidencia: Incidencia, actor: Actor, contenido: str | None, now: datetime) -> tuple[Comentario, list[object]]:
    if incidencia.estado == E.CERRADA:
        raise IllegalTransitionError("No se puede comentar una incidencia cerrada")
    contenido = _require_min("contenido", contenido, 1, "El comentario no puede estar vacío")
    comentario = _system_comment(incidencia, actor, contenido, now)
    event = CommentAdded(
        incidencia_id=incidencia.id,
        edificio_id=incidencia.edificio_id,
        actor_id=actor.id,
        reporter_id=incidencia.usuario_id,
        assignee_id=incidencia.asignado_a_id,
        notify_admins=actor.is_resident,
        descripcion=incidencia.descripcion,
        contenido=contenido,
    )
    return comentario, [event]


def schedule_for_visit(incidencia: Incidencia, visita: Visita, now: datetime) -> list[object]:
    if incidencia.is_terminal:
        raise IllegalTransitionError(
            f"La incidencia {incidencia.id} está {incidencia.estado.value} y no puede programarse"
        )
    _move(incidencia, E.PROGRAMADA, now)
    incidencia.visita = visita
    return [
        VisitScheduled(
            incidencia_id=incidencia.id,
            reporter_id=incidencia.usuario_id,
            assignee_id=incidencia.asignado_a_id,
            fecha=visita.fecha_programada,
            empresa=visita.empresa.nombre,
        )
    ]


def complete_by_visit(incidencia: Incidencia, now: datetime) -> bool:
    if incidencia.is_terminal:
        return False
    _move(incidencia, E.RESUELTA, now)
    incidencia.tipo_resolucion = TipoResolucion.EMPRESA_EXTERNA
    return True


def release_from_visit(incidencia: Incidencia, now: datetime) -> bool:
    incidencia.visita = None
    if incidencia.is_terminal:
        return False
    _move(incidencia, E.PENDIENTE, now)
    return True
