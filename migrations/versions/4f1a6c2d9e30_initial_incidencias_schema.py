"""initial incidencias schema

Revision ID: 4f1a6c2d9e30
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "4f1a6c2d9e30"
down_revision = None
branch_labels = None
depends_on = None

ROLES = ("ADMIN_PLATAFORMA", "ADMIN_EDIFICIO", "CONSERJE", "RESIDENTE")
TIPOS_SERVICIO = ("ELECTRICIDAD", "AGUA_GAS", "LIMPIEZA", "SEGURIDAD", "INFRAESTRUCTURA", "AREAS_COMUNES")
PRIORIDADES = ("NORMAL", "URGENTE")
ESTADOS_INCIDENCIA = ("PENDIENTE", "ASIGNADA", "ESCALADA", "PROGRAMADA", "RESUELTA", "CERRADA", "RECHAZADA")
ESTADOS_VISITA = ("PROGRAMADA", "EN_PROGRESO", "COMPLETADA", "CANCELADA")
TIPOS_RESOLUCION = ("CONSERJE", "EMPRESA_EXTERNA")
TIPOS_NOTIFICACION = ("ASIGNACION", "URGENCIA", "ESCALADA", "RECHAZO", "COMENTARIO", "RECORDATORIO")


def upgrade():
    op.create_table(
        "edificio",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("direccion", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nombre"),
    )
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("rol", sa.Enum(*ROLES, name="rol"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "membership",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("edificio_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["edificio_id"], ["edificio.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "edificio_id", name="uq_membership_user_edificio"),
    )
    with op.batch_alter_table("membership", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_membership_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_membership_edificio_id"), ["edificio_id"], unique=False)

    op.create_table(
        "empresa",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("telefono", sa.String(length=40), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nombre"),
    )
    op.create_table(
        "empresa_tipo_servicio",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("empresa_id", sa.Integer(), nullable=False),
        sa.Column("tipo_servicio", sa.Enum(*TIPOS_SERVICIO, name="tipo_servicio"), nullable=False),
        sa.ForeignKeyConstraint(["empresa_id"], ["empresa.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("empresa_id", "tipo_servicio", name="uq_empresa_tipo_servicio"),
    )
    with op.batch_alter_table("empresa_tipo_servicio", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_empresa_tipo_servicio_empresa_id"), ["empresa_id"], unique=False)

    op.create_table(
        "visita",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("edificio_id", sa.Integer(), nullable=False),
        sa.Column("empresa_id", sa.Integer(), nullable=False),
        sa.Column("fecha_programada", sa.DateTime(), nullable=False),
        sa.Column("notas", sa.Text(), nullable=True),
        sa.Column("estado", sa.Enum(*ESTADOS_VISITA, name="estado_visita"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["edificio_id"], ["edificio.id"]),
        sa.ForeignKeyConstraint(["empresa_id"], ["empresa.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("visita", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_visita_empresa_id"), ["empresa_id"], unique=False)
    op.create_index(
        "ix_visita_edificio_estado_fecha",
        "visita",
        ["edificio_id", "estado", "fecha_programada"],
        unique=False,
    )

    op.create_table(
        "incidencia",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("edificio_id", sa.Integer(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("tipo_servicio", postgresql.ENUM(*TIPOS_SERVICIO, name="tipo_servicio", create_type=False), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=False),
        sa.Column("prioridad", sa.Enum(*PRIORIDADES, name="prioridad"), nullable=False),
        sa.Column("estado", sa.Enum(*ESTADOS_INCIDENCIA, name="estado_incidencia"), nullable=False),
        sa.Column("asignado_a_id", sa.Integer(), nullable=True),
        sa.Column("asignado_el", sa.DateTime(), nullable=True),
        sa.Column("verificado_el", sa.DateTime(), nullable=True),
        sa.Column("escalada_el", sa.DateTime(), nullable=True),
        sa.Column("rechazada_el", sa.DateTime(), nullable=True),
        sa.Column("descripcion_verificada", sa.Text(), nullable=True),
        sa.Column("tipo_resolucion", sa.Enum(*TIPOS_RESOLUCION, name="tipo_resolucion"), nullable=True),
        sa.Column("comentario_cierre", sa.Text(), nullable=True),
        sa.Column("motivo_rechazo", sa.Text(), nullable=True),
        sa.Column("visita_id", sa.Integer(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "(closed_at IS NOT NULL) = (estado IN ('RESUELTA', 'CERRADA', 'RECHAZADA'))",
            name="ck_incidencia_closed_at",
        ),
        sa.ForeignKeyConstraint(["asignado_a_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["edificio_id"], ["edificio.id"]),
        sa.ForeignKeyConstraint(["usuario_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["visita_id"], ["visita.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("incidencia", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_incidencia_usuario_id"), ["usuario_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_incidencia_asignado_a_id"), ["asignado_a_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_incidencia_visita_id"), ["visita_id"], unique=False)
    op.create_index("ix_incidencia_edificio_estado", "incidencia", ["edificio_id", "estado"], unique=False)
    op.create_index(
        "ix_incidencia_edificio_prioridad_created",
        "incidencia",
        ["edificio_id", "prioridad", "created_at"],
        unique=False,
    )

    op.create_table(
        "comentario",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("incidencia_id", sa.Integer(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("contenido", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["incidencia_id"], ["incidencia.id"]),
        sa.ForeignKeyConstraint(["usuario_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("comentario", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_comentario_incidencia_id"), ["incidencia_id"], unique=False)

    op.create_table(
        "notificacion",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("incidencia_id", sa.Integer(), nullable=False),
        sa.Column("tipo", sa.Enum(*TIPOS_NOTIFICACION, name="tipo_notificacion"), nullable=False),
        sa.Column("leida", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["incidencia_id"], ["incidencia.id"]),
        sa.ForeignKeyConstraint(["usuario_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("notificacion", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_notificacion_incidencia_id"), ["incidencia_id"], unique=False)
    op.create_index("ix_notificacion_usuario_leida", "notificacion", ["usuario_id", "leida"], unique=False)


def downgrade():
    op.drop_index("ix_notificacion_usuario_leida", table_name="notificacion")
    op.drop_table("notificacion")
    op.drop_table("comentario")
    op.drop_index("ix_incidencia_edificio_prioridad_created", table_name="incidencia")
    op.drop_index("ix_incidencia_edificio_estado", table_name="incidencia")
    op.drop_table("incidencia")
    op.drop_index("ix_visita_edificio_estado_fecha", table_name="visita")
    op.drop_table("visita")
    op.drop_table("empresa_tipo_servicio")
    op.drop_table("empresa")
    op.drop_table("membership")
    op.drop_table("user_account")
    op.drop_table("edificio")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "tipo_notificacion",
            "tipo_resolucion",
            "estado_incidencia",
            "prioridad",
            "estado_visita",
            "tipo_servicio",
            "rol",
        ):
            op.execute(sa.text(f"DROP TYPE IF EXISTS {enum_name}"))
