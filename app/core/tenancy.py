from __future__ import annotations

from dataclasses import dataclass

from flask import g
from flask_login import current_user

from app.core.models import ADMIN_ROLES, Membership, Rol


@dataclass(frozen=True)
class Actor:
    id: int
    rol: Rol
    building_ids: frozenset[int]

    @property
    def is_platform_admin(self) -> bool:
        return self.rol == Rol.ADMIN_PLATAFORMA

    @property
    def is_admin(self) -> bool:
        return self.rol in ADMIN_ROLES

    @property
    def is_conserje(self) -> bool:
        return self.rol == Rol.CONSERJE

    @property
    def is_resident(self) -> bool:
        return self.rol == Rol.RESIDENTE


def actor_for_user(user) -> Actor:
    building_ids = frozenset(
        row.edificio_id for row in Membership.query.filter_by(user_id=user.id).all()
    )
    return Actor(id=user.id, rol=Rol(user.rol), building_ids=building_ids)


def load_tenant_context() -> None:
    # Memberships are read from the database on every request, never from the client.
    g.actor = None
    if not current_user.is_authenticated:
        return
    g.actor = actor_for_user(current_user)


def current_actor() -> Actor:
    return g.actor
