from __future__ import annotations

from app.core.models import (
    Comentario,
    Edificio,
    Empresa,
    Incidencia,
    Notificacion,
    User,
    Visita,
)
from app.core.utils import iso


def _value(enum_value) -> str | None:
    return enum_value.value if enum_value is not None else None


def user_ref(user: User | None) -> dict[str, object] | None:
    if user is None:
        return None
    return {"id": user.id, "nombre": user.nombre, "email": user.email}


def user_dict(user: User, include_buildings: bool = False) -> dict[str, object]:
    data: dict[str, object] = {
        "id": user.id,
        "email": user.email,
        "nombre": user.nombre,
        "rol": _value(user.rol),
        "activo": user.is_active,
        "createdAt": iso(user.created_at),
    }
    if include_buildings:
        data["edificios"] = [
            {"id": m.edificio.id, "nombre": m.edificio.nombre} for m in user.memberships
        ]
    return data


def edificio_dict(edificio: Edificio) -> dict[str, object]:
    return {
        "id": edificio.id,
        "nombre": edificio.nombre,
        "direccion": edificio.direccion,
        "createdAt": iso(edificio.created_at),
    }


def empresa_dict(empresa: Empresa) -> dict[str, object]:
    return {
        "id": empresa.id,
        "nombre": empresa.nombre,
        "telefono": empresa.telefono,
        "email": empresa.email,
        "tiposServicio": [t.value for t in empresa.tipos_servicio],
    }


def comentario_dict(comentario: Comentario) -> dict[str, object]:
    usuario = comentario.usuario
    return {
        "id": comentario.id,
        "incidenciaId": comentario.incidencia_id,
        "contenido": comentario.contenido,
        "createdAt": iso(comentario.created_at),
        "usuario": {"id": usuario.id, "nombre": usuario.nombre, "rol": _value(usuario.rol)} if usuario else None,
    }


def incidencia_dict(incidencia: Incidencia, detail: bool = False) -> dict[str, object]:
    data: dict[str, object] = {
        "id": incidencia.id,
        "edificioId": incidencia.edificio_id,
        "usuarioId": incidencia.usuario_id,
        "tipoServicio": _value(incidencia.tipo_servicio),
        "descripcion": incidencia.descripcion,
        "prioridad": _value(incidencia.prioridad),
        "estado": _value(incidencia.estado),
        "asignadoAId": incidencia.asignado_a_id,
        "asignadoEl": iso(incidencia.asignado_el),
        "verificadoEl": iso(incidencia.verificado_el),
        "escaladaEl": iso(incidencia.escalada_el),
        "rechazadaEl": iso(incidencia.rechazada_el),
        "descripcionVerificada": incidencia.descripcion_verificada,
        "tipoResolucion": _value(incidencia.tipo_resolucion),
        "comentarioCierre": incidencia.comentario_cierre,
        "motivoRechazo": incidencia.motivo_rechazo,
        "visitaId": incidencia.visita_id,
        "closedAt": iso(incidencia.closed_at),
        "createdAt": iso(incidencia.created_at),
        "updatedAt": iso(incidencia.updated_at),
        "usuario": user_ref(incidencia.usuario),
    }
    if incidencia.visita is not None:
        data["visita"] = {
            "id": incidencia.visita.id,
            "fechaProgramada": iso(incidencia.visita.fecha_programada),
            "empresa": {"nombre": incidencia.visita.empresa.nombre},
        }
    if detail:
        data["edificio"] = {"id": incidencia.edificio.id, "nombre": incidencia.edificio.nombre}
        data["asignadoA"] = user_ref(incidencia.asignado_a)
        data["comentarios"] = [comentario_dict(c) for c in incidencia.comentarios]
    return data


def visita_dict(visita: Visita, detail: bool = False) -> dict[str, object]:
    data: dict[str, object] = {
        "id": visita.id,
        "edificioId": visita.edificio_id,
        "empresaId": visita.empresa_id,
        "fechaProgramada": iso(visita.fecha_programada),
        "notas": visita.notas,
        "estado": _value(visita.estado),
        "createdAt": iso(visita.created_at),
        "empresa": {
            "id": visita.empresa.id,
            "nombre": visita.empresa.nombre,
            "telefono": visita.empresa.telefono,
            "email": visita.empresa.email,
        },
        "incidencias": [
            {
                "id": inc.id,
                "descripcion": inc.descripcion,
                "tipoServicio": _value(inc.tipo_servicio),
                "prioridad": _value(inc.prioridad),
                "estado": _value(inc.estado),
            }
            for inc in sorted(visita.incidencias, key=lambda i: i.id)
        ],
    }
    if detail:
        data["edificio"] = {"id": visita.edificio.id, "nombre": visita.edificio.nombre}
    return data


def notificacion_dict(notificacion: Notificacion) -> dict[str, object]:
    incidencia = notificacion.incidencia
    return {
        "id": notificacion.id,
        "usuarioId": notificacion.usuario_id,
        "incidenciaId": notificacion.incidencia_id,
        "tipo": _value(notificacion.tipo),
        "leida": notificacion.leida,
        "createdAt": iso(notificacion.created_at),
        "incidencia": {
            "id": incidencia.id,
            "descripcion": incidencia.descripcion,
            "tipoServicio": _value(incidencia.tipo_servicio),
            "prioridad": _value(incidencia.prioridad),
            "estado": _value(incidencia.estado),
            "edificioId": incidencia.edificio_id,
        },
    }
