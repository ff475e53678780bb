from __future__ import annotations

from sqlalchemy import update

from app.core.errors import ForbiddenError, NotFoundError
from app.core.extensions import db
from app.core.models import Notificacion
from app.core.tenancy import Actor


def notifications_for(actor: Actor, leida: bool | None = None) -> list[Notificacion]:
    query = Notificacion.query.filter(Notificacion.usuario_id == actor.id)
    if leida is not None:
        query = query.filter(Notificacion.leida.is_(leida))
    return query.order_by(Notificacion.created_at.desc(), Notificacion.id.desc()).all()


def unread_count(actor: Actor) -> int:
    return Notificacion.query.filter_by(usuario_id=actor.id, leida=False).count()


def _owned(actor: Actor, notificacion_id: int) -> Notificacion:
    notificacion = db.session.get(Notificacion, notificacion_id)
    if notificacion is None:
        raise NotFoundError("Notificación no encontrada")
    if notificacion.usuario_id != actor.id:
        raise ForbiddenError("No tiene acceso a esta notificación")
    return notificacion


def mark_notification(actor: Actor, notificacion_id: int, leida: bool) -> Notificacion:
    notificacion = _owned(actor, notificacion_id)
    notificacion.leida = leida
    db.session.commit()
    return notificacion


def delete_notification(actor: Actor, notificacion_id: int) -> None:
    db.session.delete(_owned(actor, notificacion_id))
    db.session.commit()


def mark_all_read(actor: Actor) -> int:
    result = db.session.execute(
        update(Notificacion)
        .where(Notificacion.usuario_id == actor.id, Notificacion.leida.is_(False))
        .values(leida=True)
    )
    db.session.commit()
    return result.rowcount


def clear_read(actor: Actor) -> int:
    count = Notificacion.query.filter_by(usuario_id=actor.id, leida=True).delete(synchronize_session=False)
    db.session.commit()
    return count
