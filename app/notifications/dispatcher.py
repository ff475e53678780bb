from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from app.core import mail
from app.core.extensions import db
from app.core.mail import EmailMessage, Mailer
from app.core.models import ADMIN_ROLES, Membership, Notificacion, TipoNotificacion, User
from app.notifications.events import (
    CommentAdded,
    DomainEvent,
    IncidentAssigned,
    IncidentEscalated,
    IncidentMarkedUrgent,
    IncidentRejected,
    VisitScheduled,
)

log = logging.getLogger(__name__)


@dataclass
class Delivery:
    incidencia_id: int
    tipo: TipoNotificacion | None
    user_ids: list[int]
    subject: str = ""
    html: str = ""
    emails: list[str] = field(default_factory=list)


def building_admin_ids(edificio_id: int) -> list[int]:
    rows = (
        db.session.query(Membership.user_id)
        .join(User, User.id == Membership.user_id)
        .filter(Membership.edificio_id == edificio_id)
        .filter(User.rol.in_(ADMIN_ROLES))
        .order_by(Membership.user_id.asc())
        .all()
    )
    return [row.user_id for row in rows]


def _unique(ids: Iterable[int | None], exclude: int | None = None) -> list[int]:
    seen: list[int] = []
    for user_id in ids:
        if user_id is None or user_id == exclude or user_id in seen:
            continue
        seen.append(user_id)
    return seen


class NotificationDispatcher:
    """
    Consumes domain events after the primary transaction commits.

    Notification rows are written in their own transaction and emails are
    handed to the mailer. Nothing raised here reaches the caller: a failed
    side effect is logged and the triggering operation still succeeds.
    """

    def __init__(self, mailer: Mailer, base_url: str):
        self.mailer = mailer
        self.base_url = base_url.rstrip("/")

    def dispatch(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            try:
                delivery = self._plan(event)
            except Exception:
                log.exception("No se pudo resolver destinatarios para %s", type(event).__name__)
                continue
            if delivery is None or not delivery.user_ids:
                continue
            self._record(delivery)
            self._send(delivery)

    def _plan(self, event: DomainEvent) -> Delivery | None:
        if isinstance(event, IncidentMarkedUrgent):
            subject, html = mail.nueva_incidencia(self.base_url, event.incidencia_id, event.descripcion)
            return Delivery(
                event.incidencia_id,
                TipoNotificacion.URGENCIA,
                building_admin_ids(event.edificio_id),
                subject,
                html,
            )
        if isinstance(event, IncidentAssigned):
            subject, html = mail.incidencia_asignada(self.base_url, event.incidencia_id, event.descripcion)
            return Delivery(event.incidencia_id, TipoNotificacion.ASIGNACION, [event.conserje_id], subject, html)
        if isinstance(event, IncidentEscalated):
            subject, html = mail.incidencia_escalada(self.base_url, event.incidencia_id, event.descripcion)
            tipo = TipoNotificacion.URGENCIA if event.urgente else TipoNotificacion.RECORDATORIO
            return Delivery(event.incidencia_id, tipo, building_admin_ids(event.edificio_id), subject, html)
        if isinstance(event, IncidentRejected):
            subject, html = mail.incidencia_rechazada(self.base_url, event.incidencia_id, event.motivo)
            return Delivery(event.incidencia_id, TipoNotificacion.RECHAZO, [event.reporter_id], subject, html)
        if isinstance(event, CommentAdded):
            recipients = [event.reporter_id, event.assignee_id]
            if event.notify_admins:
                recipients.extend(building_admin_ids(event.edificio_id))
            subject, html = mail.nuevo_comentario(
                self.base_url, event.incidencia_id, event.descripcion, event.contenido
            )
            return Delivery(
                event.incidencia_id,
                TipoNotificacion.COMENTARIO,
                _unique(recipients, exclude=event.actor_id),
                subject,
                html,
            )
        if isinstance(event, VisitScheduled):
            fecha = event.fecha.strftime("%d/%m/%Y a las %H:%M")
            subject, html = mail.visita_programada(self.base_url, event.incidencia_id, fecha, event.empresa)
            # email only; the visit itself is visible on the incident
            return Delivery(
                event.incidencia_id,
                None,
                _unique([event.reporter_id, event.assignee_id]),
                subject,
                html,
            )
        log.warning("Evento sin manejador: %r", event)
        return None

    def _record(self, delivery: Delivery) -> None:
        try:
            if delivery.tipo is not None:
                db.session.add_all(
                    Notificacion(usuario_id=user_id, incidencia_id=delivery.incidencia_id, tipo=delivery.tipo)
                    for user_id in delivery.user_ids
                )
            users = User.query.filter(User.id.in_(delivery.user_ids)).order_by(User.id.asc()).all()
            delivery.emails = [user.email for user in users if user.email and user.is_active]
            db.session.commit()
        except Exception:
            log.exception(
                "Error registrando notificaciones %s para incidencia %s",
                delivery.tipo,
                delivery.incidencia_id,
            )
            db.session.rollback()

    def _send(self, delivery: Delivery) -> None:
        try:
            self.mailer.send_many(
                [EmailMessage(to=email, subject=delivery.subject, html=delivery.html) for email in delivery.emails]
            )
        except Exception:
            log.exception("Error encolando correos para incidencia %s", delivery.incidencia_id)
