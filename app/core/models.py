from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash

from app.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Rol(str, Enum):
    ADMIN_PLATAFORMA = "ADMIN_PLATAFORMA"
    ADMIN_EDIFICIO = "ADMIN_EDIFICIO"
    CONSERJE = "CONSERJE"
    RESIDENTE = "RESIDENTE"


ADMIN_ROLES = (Rol.ADMIN_PLATAFORMA, Rol.ADMIN_EDIFICIO)


class TipoServicio(str, Enum):
    ELECTRICIDAD = "ELECTRICIDAD"
    AGUA_GAS = "AGUA_GAS"
    LIMPIEZA = "LIMPIEZA"
    SEGURIDAD = "SEGURIDAD"
    INFRAESTRUCTURA = "INFRAESTRUCTURA"
    AREAS_COMUNES = "AREAS_COMUNES"


class Prioridad(str, Enum):
    NORMAL = "NORMAL"
    URGENTE = "URGENTE"


class EstadoIncidencia(str, Enum):
    PENDIENTE = "PENDIENTE"
    ASIGNADA = "ASIGNADA"
    ESCALADA = "ESCALADA"
    PROGRAMADA = "PROGRAMADA"
    RESUELTA = "RESUELTA"
    CERRADA = "CERRADA"
    RECHAZADA = "RECHAZADA"


TERMINAL_STATES = frozenset(
    {EstadoIncidencia.RESUELTA, EstadoIncidencia.CERRADA, EstadoIncidencia.RECHAZADA}
)


class EstadoVisita(str, Enum):
    PROGRAMADA = "PROGRAMADA"
    EN_PROGRESO = "EN_PROGRESO"
    COMPLETADA = "COMPLETADA"
    CANCELADA = "CANCELADA"


class TipoResolucion(str, Enum):
    CONSERJE = "CONSERJE"
    EMPRESA_EXTERNA = "EMPRESA_EXTERNA"


class TipoNotificacion(str, Enum):
    ASIGNACION = "ASIGNACION"
    URGENCIA = "URGENCIA"
    ESCALADA = "ESCALADA"
    RECHAZO = "RECHAZO"
    COMENTARIO = "COMENTARIO"
    RECORDATORIO = "RECORDATORIO"


class Edificio(db.Model):
    __tablename__ = "edificio"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(120), unique=True, nullable=False)
    direccion: Mapped[str] = mapped_column(db.String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    memberships = relationship("Membership", back_populates="edificio", cascade="all, delete-orphan")


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    rol: Mapped[Rol] = mapped_column(SAEnum(Rol, name="rol"), nullable=False, default=Rol.RESIDENTE)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    memberships = relationship("Membership", back_populates="user", cascade="all, delete-orphan")

    @property
    def edificio_ids(self) -> list[int]:
        return sorted(m.edificio_id for m in self.memberships)


class Membership(db.Model):
    __tablename__ = "membership"
    __table_args__ = (UniqueConstraint("user_id", "edificio_id", name="uq_membership_user_edificio"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    edificio_id: Mapped[int] = mapped_column(ForeignKey("edificio.id"), nullable=False, index=True)

    user = relationship("User", back_populates="memberships")
    edificio = relationship("Edificio", back_populates="memberships")


class Empresa(db.Model):
    __tablename__ = "empresa"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(120), unique=True, nullable=False)
    telefono: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    tipos = relationship("EmpresaTipoServicio", back_populates="empresa", cascade="all, delete-orphan")
    visitas = relationship("Visita", back_populates="empresa")

    @property
    def tipos_servicio(self) -> list[TipoServicio]:
        return sorted((t.tipo_servicio for t in self.tipos), key=lambda t: t.value)


class EmpresaTipoServicio(db.Model):
    __tablename__ = "empresa_tipo_servicio"
    __table_args__ = (UniqueConstraint("empresa_id", "tipo_servicio", name="uq_empresa_tipo_servicio"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    empresa_id: Mapped[int] = mapped_column(ForeignKey("empresa.id"), nullable=False, index=True)
    tipo_servicio: Mapped[TipoServicio] = mapped_column(
        SAEnum(TipoServicio, name="tipo_servicio"),
        nullable=False,
    )

    empresa = relationship("Empresa", back_populates="tipos")


class Visita(db.Model):
    __tablename__ = "visita"
    __table_args__ = (Index("ix_visita_edificio_estado_fecha", "edificio_id", "estado", "fecha_programada"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    edificio_id: Mapped[int] = mapped_column(ForeignKey("edificio.id"), nullable=False)
    empresa_id: Mapped[int] = mapped_column(ForeignKey("empresa.id"), nullable=False, index=True)
    fecha_programada: Mapped[datetime] = mapped_column(nullable=False)
    notas: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    estado: Mapped[EstadoVisita] = mapped_column(
        SAEnum(EstadoVisita, name="estado_visita"),
        nullable=False,
        default=EstadoVisita.PROGRAMADA,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    edificio = relationship("Edificio")
    empresa = relationship("Empresa", back_populates="visitas")
    incidencias = relationship("Incidencia", back_populates="visita")


class Incidencia(db.Model):
    __tablename__ = "incidencia"
    __table_args__ = (
        Index("ix_incidencia_edificio_estado", "edificio_id", "estado"),
        Index("ix_incidencia_edificio_prioridad_created", "edificio_id", "prioridad", "created_at"),
        CheckConstraint(
            "(closed_at IS NOT NULL) = (estado IN ('RESUELTA', 'CERRADA', 'RECHAZADA'))",
            name="ck_incidencia_closed_at",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    edificio_id: Mapped[int] = mapped_column(ForeignKey("edificio.id"), nullable=False)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    tipo_servicio: Mapped[TipoServicio] = mapped_column(
        SAEnum(TipoServicio, name="tipo_servicio"),
        nullable=False,
    )
    descripcion: Mapped[str] = mapped_column(db.Text, nullable=False)
    prioridad: Mapped[Prioridad] = mapped_column(
        SAEnum(Prioridad, name="prioridad"),
        nullable=False,
        default=Prioridad.NORMAL,
    )
    estado: Mapped[EstadoIncidencia] = mapped_column(
        SAEnum(EstadoIncidencia, name="estado_incidencia"),
        nullable=False,
        default=EstadoIncidencia.PENDIENTE,
    )
    asignado_a_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True, index=True)
    asignado_el: Mapped[datetime | None] = mapped_column(nullable=True)
    verificado_el: Mapped[datetime | None] = mapped_column(nullable=True)
    escalada_el: Mapped[datetime | None] = mapped_column(nullable=True)
    rechazada_el: Mapped[datetime | None] = mapped_column(nullable=True)
    descripcion_verificada: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    tipo_resolucion: Mapped[TipoResolucion | None] = mapped_column(
        SAEnum(TipoResolucion, name="tipo_resolucion"),
        nullable=True,
    )
    comentario_cierre: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    motivo_rechazo: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    visita_id: Mapped[int | None] = mapped_column(ForeignKey("visita.id"), nullable=True, index=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    edificio = relationship("Edificio")
    usuario = relationship("User", foreign_keys=[usuario_id])
    asignado_a = relationship("User", foreign_keys=[asignado_a_id])
    visita = relationship("Visita", back_populates="incidencias")
    comentarios = relationship(
        "Comentario",
        back_populates="incidencia",
        cascade="all, delete-orphan",
        order_by="Comentario.created_at",
    )
    notificaciones = relationship("Notificacion", back_populates="incidencia", cascade="all, delete-orphan")

    @property
    def is_terminal(self) -> bool:
        return self.estado in TERMINAL_STATES


class Comentario(db.Model):
    __tablename__ = "comentario"

    id: Mapped[int] = mapped_column(primary_key=True)
    incidencia_id: Mapped[int] = mapped_column(ForeignKey("incidencia.id"), nullable=False, index=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    contenido: Mapped[str] = mapped_column(db.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    incidencia = relationship("Incidencia", back_populates="comentarios")
    usuario = relationship("User")


class Notificacion(db.Model):
    __tablename__ = "notificacion"
    __table_args__ = (Index("ix_notificacion_usuario_leida", "usuario_id", "leida"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    incidencia_id: Mapped[int] = mapped_column(ForeignKey("incidencia.id"), nullable=False, index=True)
    tipo: Mapped[TipoNotificacion] = mapped_column(
        SAEnum(TipoNotificacion, name="tipo_notificacion"),
        nullable=False,
    )
    leida: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    incidencia = relationship("Incidencia", back_populates="notificaciones")
    usuario = relationship("User")


def seed_demo_data(session) -> None:
    edificio = Edificio(nombre="Edificio Los Aromos", direccion="Av. Los Aromos 1234, Santiago")
    otro = Edificio(nombre="Torre Central", direccion="Calle Central 55, Santiago")
    session.add_all([edificio, otro])
    session.flush()

    users = [
        User(
            email="plataforma@incidencias.local",
            nombre="Admin Plataforma",
            password_hash=generate_password_hash("plataforma123"),
            rol=Rol.ADMIN_PLATAFORMA,
        ),
        User(
            email="admin@incidencias.local",
            nombre="Admin Edificio",
            password_hash=generate_password_hash("admin123"),
            rol=Rol.ADMIN_EDIFICIO,
        ),
        User(
            email="conserje@incidencias.local",
            nombre="Conserje Turno Día",
            password_hash=generate_password_hash("conserje123"),
            rol=Rol.CONSERJE,
        ),
        User(
            email="residente@incidencias.local",
            nombre="Residente Depto 101",
            password_hash=generate_password_hash("residente123"),
            rol=Rol.RESIDENTE,
        ),
    ]
    session.add_all(users)
    session.flush()
    _plataforma, admin, conserje, residente = users
    session.add_all(
        [
            Membership(user_id=admin.id, edificio_id=edificio.id),
            Membership(user_id=conserje.id, edificio_id=edificio.id),
            Membership(user_id=residente.id, edificio_id=edificio.id),
        ]
    )

    electrica = Empresa(nombre="Electro Servicios Ltda.", telefono="+56 2 2345 6789", email="contacto@electro.local")
    electrica.tipos = [EmpresaTipoServicio(tipo_servicio=TipoServicio.ELECTRICIDAD)]
    gasfiter = Empresa(nombre="Gasfitería Express", telefono="+56 9 8765 4321", email="ventas@gasfiter.local")
    gasfiter.tipos = [
        EmpresaTipoServicio(tipo_servicio=TipoServicio.AGUA_GAS),
        EmpresaTipoServicio(tipo_servicio=TipoServicio.INFRAESTRUCTURA),
    ]
    session.add_all([electrica, gasfiter])
    session.flush()

    session.add(
        Incidencia(
            edificio_id=edificio.id,
            usuario_id=residente.id,
            tipo_servicio=TipoServicio.LIMPIEZA,
            descripcion="Basura acumulada en la sala de reciclaje del subterráneo",
            prioridad=Prioridad.NORMAL,
        )
    )
    session.add(
        Visita(
            edificio_id=edificio.id,
            empresa_id=gasfiter.id,
            fecha_programada=utcnow() + timedelta(days=3),
            notas="Revisión anual de calderas",
        )
    )
    session.commit()
