from flask import Blueprint

incidents_bp = Blueprint("incidents", __name__, url_prefix="/api")

from app.incidents import routes  # noqa: E402,F401
