from __future__ import annotations

import logging

from flask import Flask, jsonify
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from app.core.extensions import db

log = logging.getLogger(__name__)


class ServiceError(ValueError):
    status_code = 400


class ValidationError(ServiceError):
    def __init__(self, message: str = "Datos inválidos", errors: dict[str, list[str]] | None = None):
        super().__init__(message)
        self.errors = errors or {}


class NotFoundError(ServiceError):
    status_code = 404


class ForbiddenError(ServiceError):
    status_code = 403


class IllegalTransitionError(ServiceError):
    pass


class ConflictError(ServiceError):
    pass


def from_pydantic(exc: PydanticValidationError) -> ValidationError:
    errors: dict[str, list[str]] = {}
    for issue in exc.errors():
        path = ".".join(str(part) for part in issue.get("loc", ())) or "body"
        message = str(issue.get("msg", "Valor inválido"))
        # field_validator messages come prefixed by pydantic
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(path, []).append(message)
    return ValidationError("Datos inválidos", errors)


def success_response(data: object, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def error_response(error: str, status: int = 400, errors: dict[str, list[str]] | None = None):
    body: dict[str, object] = {"success": False, "error": error}
    if errors:
        body["errors"] = errors
    return jsonify(body), status


_HTTP_MESSAGES = {
    401: "No autorizado",
    403: "No tiene permisos para esta acción",
    404: "Recurso no encontrado",
    405: "Método no permitido",
}


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PydanticValidationError)
    def handle_pydantic(exc: PydanticValidationError):
        db.session.rollback()
        converted = from_pydantic(exc)
        return error_response(str(converted), 400, converted.errors)

    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        db.session.rollback()
        errors = exc.errors if isinstance(exc, ValidationError) else None
        return error_response(str(exc), exc.status_code, errors)

    @app.errorhandler(ValueError)
    def handle_value_error(exc: ValueError):
        db.session.rollback()
        return error_response(str(exc), 400)

    @app.errorhandler(HTTPException)
    def handle_http(exc: HTTPException):
        status = exc.code or 500
        message = exc.description
        if not message or message == type(exc).description:
            message = _HTTP_MESSAGES.get(status, exc.name)
        return error_response(message, status)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        log.exception("Error no controlado: %s", exc)
        db.session.rollback()
        return error_response("Error interno del servidor", 500)
