from __future__ import annotations

import logging

from flask import Blueprint, g, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from app.core.errors import error_response, success_response
from app.core.models import User
from app.core.serializers import user_dict

log = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _credentials() -> tuple[str, str]:
    payload = request.get_json(silent=True) or request.form
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    return email, password


@auth_bp.post("/login")
def login_post():
    email, password = _credentials()
    if not email or not password:
        return error_response("Email y contraseña son obligatorios", 400)
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        log.info("Login fallido para %s", email)
        return error_response("Credenciales inválidas", 401)
    if not login_user(user):
        return error_response("Usuario inactivo", 403)
    return success_response(user_dict(user, include_buildings=True))


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return success_response({"loggedOut": True})


@auth_bp.get("/me")
@login_required
def me():
    data = user_dict(current_user, include_buildings=True)
    data["edificioIds"] = sorted(g.actor.building_ids) if g.actor else []
    return success_response(data)
