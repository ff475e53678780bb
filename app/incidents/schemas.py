"""
Request payloads for the incident endpoints.

Fields are named after the model attributes; the accepted JSON keys are
the API names (``buildingId``) and the Spanish camelCase names used by
the serializers (``edificioId``).
"""
from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.core.models import EstadoIncidencia, Prioridad, TipoResolucion, TipoServicio


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _min_text(value: str | None, size: int, message: str) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if len(cleaned) < size:
        raise ValueError(message)
    return cleaned


class IncidentCreate(BaseModel):
    edificio_id: int = Field(validation_alias=_alias("buildingId", "edificioId"))
    tipo_servicio: TipoServicio = Field(validation_alias=_alias("serviceType", "tipoServicio"))
    descripcion: str = Field(validation_alias=_alias("description", "descripcion"))
    prioridad: Prioridad = Field(default=Prioridad.NORMAL, validation_alias=_alias("priority", "prioridad"))

    @field_validator("descripcion")
    @classmethod
    def descripcion_min(cls, v: str) -> str:
        return _min_text(v, 10, "Descripción debe tener al menos 10 caracteres")


class IncidentUpdate(BaseModel):
    """Generic update; only the keys present in the payload are applied."""

    model_config = ConfigDict(extra="forbid")

    descripcion: str | None = Field(default=None, validation_alias=_alias("description", "descripcion"))
    tipo_servicio: TipoServicio | None = Field(default=None, validation_alias=_alias("serviceType", "tipoServicio"))
    prioridad: Prioridad | None = Field(default=None, validation_alias=_alias("priority", "prioridad"))
    estado: EstadoIncidencia | None = Field(default=None, validation_alias=_alias("state", "estado"))
    asignado_a_id: int | None = Field(default=None, validation_alias=_alias("assigneeId", "asignadoAId"))
    descripcion_verificada: str | None = Field(
        default=None,
        validation_alias=_alias("verifiedDescription", "descripcionVerificada"),
    )
    tipo_resolucion: TipoResolucion | None = Field(
        default=None,
        validation_alias=_alias("resolutionKind", "tipoResolucion"),
    )
    comentario_cierre: str | None = Field(default=None, validation_alias=_alias("closingComment", "comentarioCierre"))
    motivo_rechazo: str | None = Field(default=None, validation_alias=_alias("rejectionReason", "motivoRechazo"))

    @field_validator("descripcion")
    @classmethod
    def descripcion_min(cls, v: str | None) -> str | None:
        return _min_text(v, 10, "Descripción debe tener al menos 10 caracteres")

    @field_validator("tipo_servicio", "estado")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("No puede ser nulo")
        return v

    def changes(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class AssignPayload(BaseModel):
    asignado_a_id: int = Field(validation_alias=_alias("assigneeId", "conserjeId", "asignadoAId"))


class ResolvePayload(BaseModel):
    comentario_cierre: str = Field(validation_alias=_alias("closingComment", "comentarioCierre"))
    descripcion_verificada: str | None = Field(
        default=None,
        validation_alias=_alias("verifiedDescription", "descripcionVerificada"),
    )

    @field_validator("comentario_cierre")
    @classmethod
    def comentario_min(cls, v: str) -> str:
        return _min_text(v, 5, "Debe indicar cómo se resolvió")


class EscalatePayload(BaseModel):
    descripcion_verificada: str = Field(validation_alias=_alias("verifiedDescription", "descripcionVerificada"))
    prioridad: Prioridad | None = Field(default=None, validation_alias=_alias("priority", "prioridad"))

    @field_validator("descripcion_verificada")
    @classmethod
    def verificada_min(cls, v: str) -> str:
        return _min_text(v, 10, "Describa la situación verificada")


class RejectPayload(BaseModel):
    motivo_rechazo: str = Field(validation_alias=_alias("rejectionReason", "motivoRechazo", "motivo"))

    @field_validator("motivo_rechazo")
    @classmethod
    def motivo_min(cls, v: str) -> str:
        return _min_text(v, 5, "Debe indicar el motivo del rechazo")


class CommentPayload(BaseModel):
    contenido: str = Field(validation_alias=_alias("content", "contenido"))

    @field_validator("contenido")
    @classmethod
    def contenido_min(cls, v: str) -> str:
        return _min_text(v, 1, "El comentario no puede estar vacío")
