from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func
from werkzeug.security import generate_password_hash

from app.core.errors import ConflictError, ForbiddenError, NotFoundError
from app.core.extensions import db
from app.core.models import (
    TERMINAL_STATES,
    Edificio,
    Empresa,
    EmpresaTipoServicio,
    EstadoIncidencia,
    EstadoVisita,
    Incidencia,
    Membership,
    Prioridad,
    Rol,
    TipoServicio,
    User,
    Visita,
    utcnow,
)
from app.core.permissions import NO_BUILDING_ACCESS, can_access_building, enforce
from app.core.tenancy import Actor
from app.core.utils import iso
from app.directory.schemas import (
    BuildingCreate,
    BuildingUpdate,
    CompanyCreate,
    CompanyUpdate,
    UserCreate,
    UserUpdate,
)

log = logging.getLogger(__name__)

ACTIVE_STATES = [estado for estado in EstadoIncidencia if estado not in TERMINAL_STATES]


# ---------------------------------------------------------------------------
# Buildings
# ---------------------------------------------------------------------------


def building_by_id(edificio_id: int) -> Edificio:
    edificio = db.session.get(Edificio, edificio_id)
    if edificio is None:
        raise NotFoundError("Edificio no encontrado")
    return edificio


def urgent_counts(edificio_ids: list[int]) -> dict[int, int]:
    if not edificio_ids:
        return {}
    rows = (
        db.session.query(Incidencia.edificio_id, func.count(Incidencia.id))
        .filter(Incidencia.edificio_id.in_(edificio_ids))
        .filter(Incidencia.prioridad == Prioridad.URGENTE)
        .filter(Incidencia.estado.in_(ACTIVE_STATES))
        .group_by(Incidencia.edificio_id)
        .all()
    )
    return {edificio_id: count for edificio_id, count in rows}


def list_buildings(actor: Actor) -> list[Edificio]:
    query = Edificio.query
    if not actor.is_platform_admin:
        query = query.filter(Edificio.id.in_(sorted(actor.building_ids)))
    return query.order_by(Edificio.nombre.asc()).all()


def get_building(actor: Actor, edificio_id: int) -> Edificio:
    edificio = building_by_id(edificio_id)
    enforce(can_access_building(actor, edificio.id))
    return edificio


def building_counts(edificio: Edificio) -> dict[str, int]:
    return {
        "incidencias": Incidencia.query.filter_by(edificio_id=edificio.id).count(),
        "visitas": Visita.query.filter_by(edificio_id=edificio.id).count(),
        "usuarios": len(edificio.memberships),
    }


def _ensure_unique_building_name(nombre: str, exclude_id: int | None = None) -> None:
    query = Edificio.query.filter(func.lower(Edificio.nombre) == nombre.lower())
    if exclude_id is not None:
        query = query.filter(Edificio.id != exclude_id)
    if query.first():
        raise ConflictError("Ya existe un edificio con ese nombre")


def create_building(payload: BuildingCreate) -> Edificio:
    _ensure_unique_building_name(payload.nombre)
    edificio = Edificio(nombre=payload.nombre, direccion=payload.direccion)
    db.session.add(edificio)
    db.session.commit()
    log.info("edificio %s creado", edificio.id)
    return edificio


def update_building(edificio_id: int, payload: BuildingUpdate) -> Edificio:
    edificio = building_by_id(edificio_id)
    if payload.nombre is not None:
        _ensure_unique_building_name(payload.nombre, exclude_id=edificio.id)
        edificio.nombre = payload.nombre
    if payload.direccion is not None:
        edificio.direccion = payload.direccion
    db.session.commit()
    return edificio


def delete_building(edificio_id: int) -> None:
    edificio = building_by_id(edificio_id)
    counts = building_counts(edificio)
    if counts["incidencias"] or counts["visitas"]:
        raise ConflictError("El edificio tiene incidencias o visitas registradas")
    db.session.delete(edificio)
    db.session.commit()
    stats_cache().invalidate(f"stats:{edificio_id}:")


def building_concierges(actor: Actor, edificio_id: int) -> list[dict[str, object]]:
    building_by_id(edificio_id)
    enforce(can_access_building(actor, edificio_id))
    active = (
        db.session.query(Incidencia.asignado_a_id, func.count(Incidencia.id).label("activas"))
        .filter(Incidencia.estado == EstadoIncidencia.ASIGNADA)
        .filter(Incidencia.asignado_a_id.is_not(None))
        .group_by(Incidencia.asignado_a_id)
        .subquery()
    )
    rows = (
        db.session.query(User, func.coalesce(active.c.activas, 0))
        .join(Membership, Membership.user_id == User.id)
        .outerjoin(active, active.c.asignado_a_id == User.id)
        .filter(Membership.edificio_id == edificio_id)
        .filter(User.rol == Rol.CONSERJE)
        .filter(User.is_active.is_(True))
        .order_by(User.nombre.asc())
        .all()
    )
    return [
        {"id": user.id, "nombre": user.nombre, "email": user.email, "incidenciasActivas": int(count)}
        for user, count in rows
    ]


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


def stats_cache():
    return current_app.extensions["stats_cache"]


def stats_key(actor: Actor, edificio_id: int) -> str:
    if actor.is_resident:
        return f"stats:{edificio_id}:user:{actor.id}"
    return f"stats:{edificio_id}:all"


def building_stats(actor: Actor, edificio_id: int) -> dict[str, object]:
    enforce(can_access_building(actor, edificio_id))
    building_by_id(edificio_id)
    return stats_cache().get_or_set(stats_key(actor, edificio_id), lambda: compute_stats(actor, edificio_id))


def compute_stats(actor: Actor, edificio_id: int) -> dict[str, object]:
    """Dashboard aggregates; residents only count their own incidents."""
    base = Incidencia.query.filter(Incidencia.edificio_id == edificio_id)
    if actor.is_resident:
        base = base.filter(Incidencia.usuario_id == actor.id)
    now = utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    urgentes = base.filter(Incidencia.prioridad == Prioridad.URGENTE).filter(Incidencia.estado.in_(ACTIVE_STATES))
    por_tipo = (
        base.filter(Incidencia.estado.in_(ACTIVE_STATES))
        .with_entities(Incidencia.tipo_servicio, func.count(Incidencia.id))
        .group_by(Incidencia.tipo_servicio)
        .order_by(Incidencia.tipo_servicio.asc())
        .all()
    )
    data: dict[str, object] = {
        "pendientes": base.filter(Incidencia.estado == EstadoIncidencia.PENDIENTE).count(),
        "urgentes": urgentes.count(),
        "programadas": base.filter(Incidencia.estado == EstadoIncidencia.PROGRAMADA).count(),
        "resueltasHoy": base.filter(
            Incidencia.estado.in_([EstadoIncidencia.RESUELTA, EstadoIncidencia.CERRADA]),
            Incidencia.closed_at >= today,
        ).count(),
        "porTipo": [{"tipo": TipoServicio(tipo).value, "cantidad": count} for tipo, count in por_tipo],
        "incidenciasUrgentes": [
            {
                "id": inc.id,
                "descripcion": inc.descripcion,
                "tipoServicio": inc.tipo_servicio.value,
                "createdAt": iso(inc.created_at),
                "reportadoPor": inc.usuario.nombre,
            }
            for inc in urgentes.order_by(Incidencia.created_at.desc(), Incidencia.id.desc()).limit(5).all()
        ],
    }
    if not actor.is_resident:
        visitas = (
            Visita.query.filter(
                Visita.edificio_id == edificio_id,
                Visita.estado == EstadoVisita.PROGRAMADA,
                Visita.fecha_programada >= now,
            )
            .order_by(Visita.fecha_programada.asc())
            .limit(5)
            .all()
        )
        data["proximasVisitas"] = [
            {
                "id": visita.id,
                "empresa": visita.empresa.nombre,
                "fecha": iso(visita.fecha_programada),
                "incidencias": len(visita.incidencias),
            }
            for visita in visitas
        ]
    return data


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------


def company_by_id(empresa_id: int) -> Empresa:
    empresa = db.session.get(Empresa, empresa_id)
    if empresa is None:
        raise NotFoundError("Empresa no encontrada")
    return empresa


def list_companies(tipo_servicio: TipoServicio | None = None) -> list[Empresa]:
    query = Empresa.query
    if tipo_servicio is not None:
        query = query.filter(Empresa.tipos.any(EmpresaTipoServicio.tipo_servicio == tipo_servicio))
    return query.order_by(Empresa.nombre.asc()).all()


def _ensure_unique_company_name(nombre: str, exclude_id: int | None = None) -> None:
    query = Empresa.query.filter(func.lower(Empresa.nombre) == nombre.lower())
    if exclude_id is not None:
        query = query.filter(Empresa.id != exclude_id)
    if query.first():
        raise ConflictError("Ya existe una empresa con ese nombre")


def create_company(payload: CompanyCreate) -> Empresa:
    _ensure_unique_company_name(payload.nombre)
    empresa = Empresa(nombre=payload.nombre, telefono=payload.telefono, email=payload.email)
    empresa.tipos = [EmpresaTipoServicio(tipo_servicio=tipo) for tipo in payload.tipos_servicio]
    db.session.add(empresa)
    db.session.commit()
    log.info("empresa %s creada", empresa.id)
    return empresa


def update_company(empresa_id: int, payload: CompanyUpdate) -> Empresa:
    empresa = company_by_id(empresa_id)
    fields = payload.model_fields_set
    if payload.nombre is not None:
        _ensure_unique_company_name(payload.nombre, exclude_id=empresa.id)
        empresa.nombre = payload.nombre
    if "telefono" in fields:
        empresa.telefono = payload.telefono
    if "email" in fields:
        empresa.email = payload.email
    if payload.tipos_servicio is not None:
        # flush the removals first so the unique pair can be re-inserted
        empresa.tipos.clear()
        db.session.flush()
        empresa.tipos = [EmpresaTipoServicio(tipo_servicio=tipo) for tipo in payload.tipos_servicio]
        db.session.flush()
    db.session.commit()
    return empresa


def delete_company(empresa_id: int) -> None:
    empresa = company_by_id(empresa_id)
    if Visita.query.filter_by(empresa_id=empresa.id).first():
        raise ConflictError("La empresa tiene visitas registradas")
    db.session.delete(empresa)
    db.session.commit()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def user_by_id(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("Usuario no encontrado")
    return user


def list_users(actor: Actor) -> list[User]:
    query = User.query
    if not actor.is_platform_admin:
        member_ids = db.session.query(Membership.user_id).filter(
            Membership.edificio_id.in_(sorted(actor.building_ids))
        )
        query = query.filter(User.id.in_(member_ids))
    return query.order_by(User.nombre.asc(), User.id.asc()).all()


def get_user(actor: Actor, user_id: int) -> User:
    user = user_by_id(user_id)
    if not actor.is_platform_admin and not actor.building_ids.intersection(user.edificio_ids):
        raise ForbiddenError("No tiene acceso a este usuario")
    return user


def _check_buildings(actor: Actor, edificio_ids: list[int]) -> None:
    existing = {row.id for row in Edificio.query.filter(Edificio.id.in_(edificio_ids)).all()}
    missing = [str(edificio_id) for edificio_id in edificio_ids if edificio_id not in existing]
    if missing:
        raise NotFoundError(f"Edificios no encontrados: {', '.join(missing)}")
    for edificio_id in edificio_ids:
        if not can_access_building(actor, edificio_id):
            raise ForbiddenError(NO_BUILDING_ACCESS)


def create_user(actor: Actor, payload: UserCreate) -> User:
    if payload.rol == Rol.ADMIN_PLATAFORMA and not actor.is_platform_admin:
        raise ForbiddenError("Solo un administrador de plataforma puede crear otro administrador de plataforma")
    _check_buildings(actor, payload.edificio_ids)
    if User.query.filter(func.lower(User.email) == payload.email).first():
        raise ConflictError("El email ya está registrado")
    user = User(
        email=payload.email,
        nombre=payload.nombre,
        password_hash=generate_password_hash(payload.password),
        rol=payload.rol,
    )
    user.memberships = [Membership(edificio_id=edificio_id) for edificio_id in payload.edificio_ids]
    db.session.add(user)
    db.session.commit()
    log.info("usuario %s (%s) creado por %s", user.id, user.rol.value, actor.id)
    return user


def _active_assignment_buildings(user_id: int) -> set[int]:
    rows = (
        db.session.query(Incidencia.edificio_id)
        .filter(Incidencia.asignado_a_id == user_id)
        .filter(Incidencia.estado.in_(ACTIVE_STATES))
        .distinct()
        .all()
    )
    return {row.edificio_id for row in rows}


def update_user(actor: Actor, user_id: int, payload: UserUpdate) -> User:
    user = user_by_id(user_id)
    if payload.edificio_ids is not None:
        if not payload.edificio_ids:
            raise ConflictError("Debe asignar al menos un edificio")
        _check_buildings(actor, payload.edificio_ids)
    assigned_in = _active_assignment_buildings(user.id)
    if assigned_in and payload.rol is not None and payload.rol != Rol.CONSERJE:
        raise ConflictError("El conserje tiene incidencias asignadas activas")
    if assigned_in and payload.edificio_ids is not None and assigned_in - set(payload.edificio_ids):
        raise ConflictError("El conserje tiene incidencias asignadas activas en los edificios retirados")
    if payload.activo is False and user.id == actor.id:
        raise ConflictError("No puede desactivar su propio usuario")
    if payload.nombre is not None:
        user.nombre = payload.nombre
    if payload.rol is not None:
        user.rol = payload.rol
    if payload.password is not None:
        user.password_hash = generate_password_hash(payload.password)
    if payload.activo is not None:
        user.is_active = payload.activo
    if payload.edificio_ids is not None:
        user.memberships.clear()
        db.session.flush()
        user.memberships = [Membership(edificio_id=edificio_id) for edificio_id in payload.edificio_ids]
    db.session.commit()
    return user


def deactivate_user(actor: Actor, user_id: int) -> User:
    """Users own incidents and comments, so removal only disables the login."""
    user = user_by_id(user_id)
    if user.id == actor.id:
        raise ConflictError("No puede desactivar su propio usuario")
    user.is_active = False
    db.session.commit()
    log.info("usuario %s desactivado por %s", user.id, actor.id)
    return user
