from __future__ import annotations

from flask import request
from flask_login import login_required
from pydantic import AliasChoices, BaseModel, Field

from app.core.errors import ValidationError, success_response
from app.core.permissions import require_membership
from app.core.serializers import notificacion_dict
from app.core.tenancy import current_actor
from app.core.utils import load_payload
from app.notifications import notifications_bp
from app.notifications.services import (
    clear_read,
    delete_notification,
    mark_all_read,
    mark_notification,
    notifications_for,
    unread_count,
)


class NotificationPatch(BaseModel):
    leida: bool = Field(validation_alias=AliasChoices("read", "leida"))


def _read_filter() -> bool | None:
    raw = request.args.get("read", request.args.get("leida"))
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value not in {"true", "false"}:
        raise ValidationError("Datos inválidos", {"read": ["Debe ser true o false"]})
    return value == "true"


@notifications_bp.get("/notifications")
@login_required
@require_membership
def notifications_index():
    rows = notifications_for(current_actor(), _read_filter())
    return success_response([notificacion_dict(row) for row in rows])


@notifications_bp.get("/notifications/unread-count")
@login_required
@require_membership
def notifications_unread_count():
    return success_response({"count": unread_count(current_actor())})


@notifications_bp.patch("/notifications/<int:notificacion_id>")
@login_required
@require_membership
def notifications_update(notificacion_id: int):
    payload = load_payload(NotificationPatch)
    notificacion = mark_notification(current_actor(), notificacion_id, payload.leida)
    return success_response(notificacion_dict(notificacion))


@notifications_bp.delete("/notifications/<int:notificacion_id>")
@login_required
@require_membership
def notifications_delete(notificacion_id: int):
    delete_notification(current_actor(), notificacion_id)
    return success_response({"deleted": True})


@notifications_bp.post("/notifications/mark-all-read")
@login_required
@require_membership
def notifications_mark_all_read():
    return success_response({"count": mark_all_read(current_actor())})


@notifications_bp.post("/notifications/clear-read")
@login_required
@require_membership
def notifications_clear_read():
    return success_response({"count": clear_read(current_actor())})
