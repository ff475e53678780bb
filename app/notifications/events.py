"""
Domain events emitted by the incident lifecycle and the visit linkage.

Events are plain immutable records; they carry ids only and never touch
the session. ``NotificationDispatcher`` turns them into notification rows
and emails once the originating transaction has committed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class IncidentMarkedUrgent:
    incidencia_id: int
    edificio_id: int
    actor_id: int
    descripcion: str


@dataclass(frozen=True)
class IncidentAssigned:
    incidencia_id: int
    conserje_id: int
    actor_id: int
    descripcion: str


@dataclass(frozen=True)
class IncidentEscalated:
    incidencia_id: int
    edificio_id: int
    actor_id: int
    descripcion: str
    urgente: bool


@dataclass(frozen=True)
class IncidentRejected:
    incidencia_id: int
    reporter_id: int
    actor_id: int
    motivo: str


@dataclass(frozen=True)
class CommentAdded:
    incidencia_id: int
    edificio_id: int
    actor_id: int
    reporter_id: int
    assignee_id: int | None
    notify_admins: bool
    descripcion: str
    contenido: str


@dataclass(frozen=True)
class VisitScheduled:
    incidencia_id: int
    reporter_id: int
    assignee_id: int | None
    fecha: datetime
    empresa: str


DomainEvent = (
    IncidentMarkedUrgent
    | IncidentAssigned
    | IncidentEscalated
    | IncidentRejected
    | CommentAdded
    | VisitScheduled
)
