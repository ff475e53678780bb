from __future__ import annotations

from flask import request
from flask_login import login_required

from app.core.errors import ValidationError, success_response
from app.core.models import Rol, TipoServicio
from app.core.permissions import require_membership, require_role
from app.core.serializers import edificio_dict, empresa_dict, user_dict
from app.core.tenancy import current_actor
from app.core.utils import load_payload
from app.directory import directory_bp
from app.directory.schemas import (
    BuildingCreate,
    BuildingUpdate,
    CompanyCreate,
    CompanyUpdate,
    UserCreate,
    UserUpdate,
)
from app.directory.services import (
    building_concierges,
    building_counts,
    building_stats,
    company_by_id,
    create_building,
    create_company,
    create_user,
    deactivate_user,
    delete_building,
    delete_company,
    get_building,
    get_user,
    list_buildings,
    list_companies,
    list_users,
    update_building,
    update_company,
    update_user,
    urgent_counts,
)

ADMINS = (Rol.ADMIN_PLATAFORMA, Rol.ADMIN_EDIFICIO)


@directory_bp.get("/buildings")
@login_required
@require_membership
def buildings_index():
    edificios = list_buildings(current_actor())
    urgentes = urgent_counts([edificio.id for edificio in edificios])
    return success_response(
        [{**edificio_dict(edificio), "urgentes": urgentes.get(edificio.id, 0)} for edificio in edificios]
    )


@directory_bp.post("/buildings")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def buildings_create():
    return success_response(edificio_dict(create_building(load_payload(BuildingCreate))), 201)


@directory_bp.get("/buildings/<int:edificio_id>")
@login_required
@require_membership
def buildings_detail(edificio_id: int):
    edificio = get_building(current_actor(), edificio_id)
    return success_response({**edificio_dict(edificio), "_count": building_counts(edificio)})


@directory_bp.patch("/buildings/<int:edificio_id>")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def buildings_update(edificio_id: int):
    return success_response(edificio_dict(update_building(edificio_id, load_payload(BuildingUpdate))))


@directory_bp.delete("/buildings/<int:edificio_id>")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def buildings_delete(edificio_id: int):
    delete_building(edificio_id)
    return success_response({"deleted": True})


@directory_bp.get("/buildings/<int:edificio_id>/concierges")
@login_required
@require_role(*ADMINS)
def buildings_concierges(edificio_id: int):
    return success_response(building_concierges(current_actor(), edificio_id))


@directory_bp.get("/buildings/<int:edificio_id>/stats")
@login_required
@require_membership
def buildings_stats(edificio_id: int):
    return success_response(building_stats(current_actor(), edificio_id))


@directory_bp.get("/companies")
@login_required
@require_membership
def companies_index():
    raw = (request.args.get("serviceType") or request.args.get("tipoServicio") or "").strip()
    tipo = None
    if raw:
        try:
            tipo = TipoServicio(raw.upper())
        except ValueError as exc:
            raise ValidationError("Datos inválidos", {"serviceType": [f"Valor no permitido: {raw}"]}) from exc
    return success_response([empresa_dict(empresa) for empresa in list_companies(tipo)])


@directory_bp.post("/companies")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def companies_create():
    return success_response(empresa_dict(create_company(load_payload(CompanyCreate))), 201)


@directory_bp.get("/companies/<int:empresa_id>")
@login_required
@require_membership
def companies_detail(empresa_id: int):
    return success_response(empresa_dict(company_by_id(empresa_id)))


@directory_bp.patch("/companies/<int:empresa_id>")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def companies_update(empresa_id: int):
    return success_response(empresa_dict(update_company(empresa_id, load_payload(CompanyUpdate))))


@directory_bp.delete("/companies/<int:empresa_id>")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def companies_delete(empresa_id: int):
    delete_company(empresa_id)
    return success_response({"deleted": True})


@directory_bp.get("/users")
@login_required
@require_role(*ADMINS)
def users_index():
    return success_response([user_dict(user, include_buildings=True) for user in list_users(current_actor())])


@directory_bp.post("/users")
@login_required
@require_role(*ADMINS)
def users_create():
    user = create_user(current_actor(), load_payload(UserCreate))
    return success_response(user_dict(user, include_buildings=True), 201)


@directory_bp.get("/users/<int:user_id>")
@login_required
@require_role(*ADMINS)
def users_detail(user_id: int):
    return success_response(user_dict(get_user(current_actor(), user_id), include_buildings=True))


@directory_bp.patch("/users/<int:user_id>")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def users_update(user_id: int):
    user = update_user(current_actor(), user_id, load_payload(UserUpdate))
    return success_response(user_dict(user, include_buildings=True))


@directory_bp.delete("/users/<int:user_id>")
@login_required
@require_role(Rol.ADMIN_PLATAFORMA)
def users_delete(user_id: int):
    return success_response(user_dict(deactivate_user(current_actor(), user_id)))
