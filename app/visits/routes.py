from __future__ import annotations

from flask import request
from flask_login import login_required

from app.core.errors import ValidationError, success_response
from app.core.models import EstadoVisita
from app.core.permissions import require_membership
from app.core.serializers import visita_dict
from app.core.tenancy import current_actor
from app.core.utils import load_payload, paginate_query, pagination_requested, query_datetime, query_int
from app.visits import visits_bp
from app.visits.schemas import VisitCreate, VisitUpdate
from app.visits.services import create_visit, delete_visit, get_visit, list_visits, update_visit

DEFAULT_PAGE_SIZE = 25


def _estado_arg() -> EstadoVisita | None:
    raw = (request.args.get("state") or request.args.get("estado") or "").strip()
    if not raw:
        return None
    try:
        return EstadoVisita(raw.upper())
    except ValueError as exc:
        raise ValidationError("Datos inválidos", {"state": [f"Valor no permitido: {raw}"]}) from exc


@visits_bp.get("/visits")
@login_required
@require_membership
def visits_index():
    query = list_visits(
        current_actor(),
        query_int("buildingId") or query_int("edificioId"),
        estado=_estado_arg(),
        desde=query_datetime("from") or query_datetime("desde"),
        hasta=query_datetime("to") or query_datetime("hasta"),
    )
    if pagination_requested():
        return success_response(paginate_query(query, visita_dict, DEFAULT_PAGE_SIZE))
    return success_response([visita_dict(row) for row in query.all()])


@visits_bp.post("/visits")
@login_required
@require_membership
def visits_create():
    visita = create_visit(current_actor(), load_payload(VisitCreate))
    return success_response(visita_dict(visita, detail=True), 201)


@visits_bp.get("/visits/<int:visita_id>")
@login_required
@require_membership
def visits_detail(visita_id: int):
    return success_response(visita_dict(get_visit(current_actor(), visita_id), detail=True))


@visits_bp.patch("/visits/<int:visita_id>")
@login_required
@require_membership
def visits_update(visita_id: int):
    visita = update_visit(current_actor(), visita_id, load_payload(VisitUpdate))
    return success_response(visita_dict(visita, detail=True))


@visits_bp.delete("/visits/<int:visita_id>")
@login_required
@require_membership
def visits_delete(visita_id: int):
    delete_visit(current_actor(), visita_id)
    return success_response({"deleted": True})
