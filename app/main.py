from __future__ import annotations

from flask import Flask, Response, jsonify, request

from app.scraper import db
from app.scraper.healthcheck import run_health_checks
from app.scraper.logging_utils import _scraper_event
from app.scraper.utils import ensure_dirs

app = Flask(__name__)

# Initialise storage paths and SQLite schema on import so WSGI entrypoints
# also have the expected environment ready.
ensure_dirs()
db.initialize_schema()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@app.after_request
def add_cors_headers(response: Response) -> Response:
    response.headers.update(CORS_HEADERS)
    return response


@app.route("/api/products", methods=["GET", "OPTIONS"])
def api_products() -> Response:
    """Return every stored product as a JSON list."""

    if request.method == "OPTIONS":
        return Response(status=200)

    try:
        products = db.list_products()
    except db.PersistenceError as exc:
        _scraper_event("error", phase="api", route="/api/products", error=str(exc))
        return jsonify({"ok": False, "error": "database_error"}), 500
    return jsonify([product.to_dict() for product in products])


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem, and DB."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status
