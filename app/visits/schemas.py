from __future__ import annotations

from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.core.models import EstadoVisita


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class VisitCreate(BaseModel):
    edificio_id: int = Field(validation_alias=AliasChoices("buildingId", "edificioId"))
    empresa_id: int = Field(validation_alias=AliasChoices("companyId", "empresaId"))
    fecha_programada: datetime = Field(validation_alias=AliasChoices("scheduledAt", "fechaProgramada"))
    notas: str | None = Field(default=None, validation_alias=AliasChoices("notes", "notas"))
    incidencia_ids: list[int] = Field(default_factory=list, validation_alias=AliasChoices("incidentIds", "incidenciaIds"))

    @field_validator("fecha_programada")
    @classmethod
    def fecha_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class VisitUpdate(BaseModel):
    """``incidencia_ids`` replaces the linked set when present, even if empty."""

    model_config = ConfigDict(extra="forbid")

    fecha_programada: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("scheduledAt", "fechaProgramada"),
    )
    notas: str | None = Field(default=None, validation_alias=AliasChoices("notes", "notas"))
    estado: EstadoVisita | None = Field(default=None, validation_alias=AliasChoices("state", "estado"))
    incidencia_ids: list[int] | None = Field(
        default=None,
        validation_alias=AliasChoices("incidentIds", "incidenciaIds"),
    )

    @field_validator("fecha_programada")
    @classmethod
    def fecha_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)
