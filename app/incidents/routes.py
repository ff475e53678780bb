from __future__ import annotations

from flask import request
from flask_login import login_required

from app.core.errors import ValidationError, success_response
from app.core.models import EstadoIncidencia, Prioridad, TipoServicio
from app.core.permissions import require_membership
from app.core.serializers import comentario_dict, incidencia_dict
from app.core.tenancy import current_actor
from app.core.utils import load_payload, paginate_query, pagination_requested, query_int
from app.incidents import incidents_bp
from app.incidents.schemas import (
    AssignPayload,
    CommentPayload,
    EscalatePayload,
    IncidentCreate,
    IncidentUpdate,
    RejectPayload,
    ResolvePayload,
)
from app.incidents.services import (
    IncidentFilters,
    add_comment,
    assign_incident,
    create_incident,
    delete_incident,
    escalate_incident,
    get_incident,
    list_comments,
    reject_incident,
    resolve_incident,
    update_incident,
    visible_incidents,
)

DEFAULT_PAGE_SIZE = 50


def _enum_arg(enum_cls, *names: str):
    for name in names:
        raw = (request.args.get(name) or "").strip()
        if not raw:
            continue
        try:
            return enum_cls(raw.upper())
        except ValueError as exc:
            raise ValidationError("Datos inválidos", {name: [f"Valor no permitido: {raw}"]}) from exc
    return None


def _filters() -> IncidentFilters:
    return IncidentFilters(
        edificio_id=query_int("buildingId") or query_int("edificioId"),
        tipo_servicio=_enum_arg(TipoServicio, "serviceType", "tipoServicio"),
        estado=_enum_arg(EstadoIncidencia, "state", "estado"),
        prioridad=_enum_arg(Prioridad, "priority", "prioridad"),
    )


@incidents_bp.get("/incidents")
@login_required
@require_membership
def incidents_index():
    query = visible_incidents(current_actor(), _filters())
    if pagination_requested():
        return success_response(paginate_query(query, incidencia_dict, DEFAULT_PAGE_SIZE))
    return success_response([incidencia_dict(row) for row in query.all()])


@incidents_bp.post("/incidents")
@login_required
@require_membership
def incidents_create():
    incidencia = create_incident(current_actor(), load_payload(IncidentCreate))
    return success_response(incidencia_dict(incidencia, detail=True), 201)


@incidents_bp.get("/incidents/<int:incidencia_id>")
@login_required
@require_membership
def incidents_detail(incidencia_id: int):
    return success_response(incidencia_dict(get_incident(current_actor(), incidencia_id), detail=True))


@incidents_bp.patch("/incidents/<int:incidencia_id>")
@login_required
@require_membership
def incidents_update(incidencia_id: int):
    incidencia = update_incident(current_actor(), incidencia_id, load_payload(IncidentUpdate))
    return success_response(incidencia_dict(incidencia, detail=True))


@incidents_bp.delete("/incidents/<int:incidencia_id>")
@login_required
@require_membership
def incidents_delete(incidencia_id: int):
    delete_incident(current_actor(), incidencia_id)
    return success_response({"message": "Incidencia eliminada"})


@incidents_bp.post("/incidents/<int:incidencia_id>/assign")
@login_required
@require_membership
def incidents_assign(incidencia_id: int):
    incidencia = assign_incident(current_actor(), incidencia_id, load_payload(AssignPayload))
    return success_response(incidencia_dict(incidencia, detail=True))


@incidents_bp.post("/incidents/<int:incidencia_id>/resolve")
@login_required
@require_membership
def incidents_resolve(incidencia_id: int):
    incidencia = resolve_incident(current_actor(), incidencia_id, load_payload(ResolvePayload))
    return success_response(incidencia_dict(incidencia, detail=True))


@incidents_bp.post("/incidents/<int:incidencia_id>/escalate")
@login_required
@require_membership
def incidents_escalate(incidencia_id: int):
    incidencia = escalate_incident(current_actor(), incidencia_id, load_payload(EscalatePayload))
    return success_response(incidencia_dict(incidencia, detail=True))


@incidents_bp.post("/incidents/<int:incidencia_id>/reject")
@login_required
@require_membership
def incidents_reject(incidencia_id: int):
    incidencia = reject_incident(current_actor(), incidencia_id, load_payload(RejectPayload))
    return success_response(incidencia_dict(incidencia, detail=True))


@incidents_bp.get("/incidents/<int:incidencia_id>/comments")
@login_required
@require_membership
def incidents_comments(incidencia_id: int):
    return success_response([comentario_dict(c) for c in list_comments(current_actor(), incidencia_id)])


@incidents_bp.post("/incidents/<int:incidencia_id>/comments")
@login_required
@require_membership
def incidents_comment_create(incidencia_id: int):
    comentario = add_comment(current_actor(), incidencia_id, load_payload(CommentPayload))
    return success_response(comentario_dict(comentario), 201)
