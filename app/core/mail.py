from __future__ import annotations

import logging
import smtplib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from email.mime.text import MIMEText
from html import escape

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class Mailer:
    """
    Best-effort email delivery.

    Backends:
    - ``smtp``: plain SMTP (STARTTLS optional) using MAIL_* settings.
    - ``memory``: messages are appended to ``outbox``; used by tests.
    - ``log``: messages are only logged.

    ``send`` never raises: delivery failures are logged and reported as False.
    """

    def __init__(self, config: dict[str, object]):
        self.backend = str(config.get("MAIL_BACKEND") or "log").lower()
        self.host = str(config.get("MAIL_SERVER") or "")
        self.port = int(config.get("MAIL_PORT") or 587)
        self.username = str(config.get("MAIL_USERNAME") or "")
        self.password = str(config.get("MAIL_PASSWORD") or "")
        self.use_tls = bool(config.get("MAIL_USE_TLS"))
        self.sender = str(config.get("MAIL_SENDER") or "no-reply@incidencias.local")
        self.outbox: list[EmailMessage] = []
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="mailer") if config.get("MAIL_ASYNC") else None
        if self.backend == "smtp" and not self.host:
            log.warning("MAIL_BACKEND=smtp sin MAIL_SERVER; los correos solo se registrarán")
            self.backend = "log"

    def send(self, message: EmailMessage) -> bool:
        try:
            return self._deliver(message)
        except Exception as exc:
            log.warning("Error al enviar email a %s (%s): %s", message.to, message.subject, exc)
            return False

    def send_many(self, messages: list[EmailMessage]) -> None:
        if not messages:
            return
        if self._executor is None:
            for message in messages:
                self.send(message)
            return
        for message in messages:
            self._executor.submit(self.send, message)

    def _deliver(self, message: EmailMessage) -> bool:
        if self.backend == "memory":
            self.outbox.append(message)
            return True
        if self.backend != "smtp":
            log.info("Email (no enviado) -> %s : %s", message.to, message.subject)
            return False

        msg = MIMEText(message.html, "html", _charset="utf-8")
        msg["Subject"] = message.subject
        msg["From"] = self.sender
        msg["To"] = message.to

        server = smtplib.SMTP(self.host, self.port, timeout=10)
        try:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(self.sender, [message.to], msg.as_string())
            return True
        finally:
            server.quit()


def _short_id(incidencia_id: int) -> str:
    return f"{incidencia_id:06d}"


def _link(base_url: str, incidencia_id: int, label: str = "Ver Incidencia") -> str:
    return f'<a href="{base_url}/incidencias?id={incidencia_id}">{label}</a>'


def nueva_incidencia(base_url: str, incidencia_id: int, descripcion: str) -> tuple[str, str]:
    return (
        f"Nueva Incidencia Urgente #{_short_id(incidencia_id)}",
        "<h2>Se ha reportado una incidencia urgente</h2>"
        f"<p><strong>Descripción:</strong> {escape(descripcion)}</p>"
        f"{_link(base_url, incidencia_id)}",
    )


def incidencia_asignada(base_url: str, incidencia_id: int, descripcion: str) -> tuple[str, str]:
    return (
        f"Te han asignado una nueva incidencia #{_short_id(incidencia_id)}",
        "<h2>Tienes una nueva tarea asignada</h2>"
        f"<p><strong>Incidencia:</strong> {escape(descripcion)}</p>"
        "<p>Por favor, revisa los detalles y comienza la mantención.</p>"
        f"{_link(base_url, incidencia_id)}",
    )


def incidencia_escalada(base_url: str, incidencia_id: int, descripcion: str) -> tuple[str, str]:
    return (
        f"Incidencia Escalada #{_short_id(incidencia_id)}",
        "<h2>Una incidencia requiere atención administrativa</h2>"
        f"<p><strong>Incidencia:</strong> {escape(descripcion)}</p>"
        "<p>Ha sido escalada por el personal de mantención.</p>"
        f"{_link(base_url, incidencia_id)}",
    )


def incidencia_rechazada(base_url: str, incidencia_id: int, motivo: str) -> tuple[str, str]:
    return (
        f"Incidencia Rechazada #{_short_id(incidencia_id)}",
        "<h2>Su incidencia fue rechazada</h2>"
        f"<p><strong>Motivo:</strong> {escape(motivo)}</p>"
        f"{_link(base_url, incidencia_id)}",
    )


def nuevo_comentario(base_url: str, incidencia_id: int, descripcion: str, comentario: str) -> tuple[str, str]:
    return (
        f"Nuevo comentario en incidencia #{_short_id(incidencia_id)}",
        "<h2>Hay una nueva actualización</h2>"
        f"<p><strong>Incidencia:</strong> {escape(descripcion)}</p>"
        f'<p><strong>Comentario:</strong> "{escape(comentario)}"</p>'
        f"{_link(base_url, incidencia_id)}",
    )


def visita_programada(base_url: str, incidencia_id: int, fecha: str, empresa: str) -> tuple[str, str]:
    return (
        "Visita técnica programada para su incidencia",
        "<h2>Se ha programado una visita técnica</h2>"
        f"<p><strong>Empresa:</strong> {escape(empresa)}</p>"
        f"<p><strong>Fecha y hora:</strong> {escape(fecha)}</p>"
        "<p>Un técnico visitará su edificio para resolver la incidencia pendiente.</p>"
        f"{_link(base_url, incidencia_id, 'Ver Detalles')}",
    )
