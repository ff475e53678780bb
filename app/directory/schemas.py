from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.core.models import Rol, TipoServicio


def _min_text(value: str | None, size: int, message: str) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if len(cleaned) < size:
        raise ValueError(message)
    return cleaned


def _email(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().lower()
    if not cleaned:
        return None
    local, _, domain = cleaned.partition("@")
    if not local or "." not in domain:
        raise ValueError("Email inválido")
    return cleaned


class BuildingCreate(BaseModel):
    nombre: str = Field(validation_alias=AliasChoices("name", "nombre"))
    direccion: str = Field(validation_alias=AliasChoices("address", "direccion"))

    @field_validator("nombre")
    @classmethod
    def nombre_min(cls, v: str) -> str:
        return _min_text(v, 2, "Nombre debe tener al menos 2 caracteres")

    @field_validator("direccion")
    @classmethod
    def direccion_min(cls, v: str) -> str:
        return _min_text(v, 5, "Dirección debe tener al menos 5 caracteres")


class BuildingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    nombre: str | None = Field(default=None, validation_alias=AliasChoices("name", "nombre"))
    direccion: str | None = Field(default=None, validation_alias=AliasChoices("address", "direccion"))

    @field_validator("nombre")
    @classmethod
    def nombre_min(cls, v: str | None) -> str | None:
        return _min_text(v, 2, "Nombre debe tener al menos 2 caracteres")

    @field_validator("direccion")
    @classmethod
    def direccion_min(cls, v: str | None) -> str | None:
        return _min_text(v, 5, "Dirección debe tener al menos 5 caracteres")


class CompanyCreate(BaseModel):
    nombre: str = Field(validation_alias=AliasChoices("name", "nombre"))
    telefono: str | None = Field(default=None, validation_alias=AliasChoices("phone", "telefono"))
    email: str | None = None
    tipos_servicio: list[TipoServicio] = Field(validation_alias=AliasChoices("serviceTypes", "tiposServicio"))

    @field_validator("nombre")
    @classmethod
    def nombre_min(cls, v: str) -> str:
        return _min_text(v, 2, "Nombre debe tener al menos 2 caracteres")

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str | None) -> str | None:
        return _email(v)

    @field_validator("tipos_servicio")
    @classmethod
    def al_menos_un_tipo(cls, v: list[TipoServicio]) -> list[TipoServicio]:
        if not v:
            raise ValueError("Debe seleccionar al menos un tipo de servicio")
        return list(dict.fromkeys(v))


class CompanyUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    nombre: str | None = Field(default=None, validation_alias=AliasChoices("name", "nombre"))
    telefono: str | None = Field(default=None, validation_alias=AliasChoices("phone", "telefono"))
    email: str | None = None
    tipos_servicio: list[TipoServicio] | None = Field(
        default=None,
        validation_alias=AliasChoices("serviceTypes", "tiposServicio"),
    )

    @field_validator("nombre")
    @classmethod
    def nombre_min(cls, v: str | None) -> str | None:
        return _min_text(v, 2, "Nombre debe tener al menos 2 caracteres")

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str | None) -> str | None:
        return _email(v)

    @field_validator("tipos_servicio")
    @classmethod
    def al_menos_un_tipo(cls, v: list[TipoServicio] | None) -> list[TipoServicio] | None:
        if v is not None and not v:
            raise ValueError("Debe seleccionar al menos un tipo de servicio")
        return list(dict.fromkeys(v)) if v else v


class UserCreate(BaseModel):
    email: str
    password: str
    nombre: str = Field(validation_alias=AliasChoices("name", "nombre"))
    rol: Rol = Field(validation_alias=AliasChoices("role", "rol"))
    edificio_ids: list[int] = Field(validation_alias=AliasChoices("buildingIds", "edificioIds"))

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        cleaned = _email(v)
        if cleaned is None:
            raise ValueError("Email inválido")
        return cleaned

    @field_validator("password")
    @classmethod
    def password_min(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("La contraseña debe tener al menos 6 caracteres")
        return v

    @field_validator("nombre")
    @classmethod
    def nombre_min(cls, v: str) -> str:
        return _min_text(v, 2, "Nombre debe tener al menos 2 caracteres")

    @field_validator("edificio_ids")
    @classmethod
    def al_menos_un_edificio(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("Debe asignar al menos un edificio")
        return sorted(set(v))


class UserUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    nombre: str | None = Field(default=None, validation_alias=AliasChoices("name", "nombre"))
    rol: Rol | None = Field(default=None, validation_alias=AliasChoices("role", "rol"))
    password: str | None = None
    activo: bool | None = Field(default=None, validation_alias=AliasChoices("active", "activo"))
    edificio_ids: list[int] | None = Field(default=None, validation_alias=AliasChoices("buildingIds", "edificioIds"))

    @field_validator("nombre")
    @classmethod
    def nombre_min(cls, v: str | None) -> str | None:
        return _min_text(v, 2, "Nombre debe tener al menos 2 caracteres")

    @field_validator("password")
    @classmethod
    def password_min(cls, v: str | None) -> str | None:
        if v is not None and len(v) < 6:
            raise ValueError("La contraseña debe tener al menos 6 caracteres")
        return v

    @field_validator("edificio_ids")
    @classmethod
    def edificios_unicos(cls, v: list[int] | None) -> list[int] | None:
        return sorted(set(v)) if v is not None else None
