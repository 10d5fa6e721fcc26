from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional

import click
from flask import Flask, Response, jsonify, make_response, request
from flask_mysqldb import MySQL
from werkzeug.exceptions import BadRequest, HTTPException

from config import Config, configure_logging
from errors import DuplicateEntity, NotFound, ServiceError, UnsupportedFormat
from exporter import ReportExporter
from services import CrudService, build_services


mysql = MySQL()

_ENV_KEYS = (
	"MYSQL_USER",
	"MYSQL_PASSWORD",
	"MYSQL_HOST",
	"MYSQL_DB",
	"MYSQL_PORT",
	"MYSQL_CURSORCLASS",
	"LOG_LEVEL",
	"SCHEMA_PATH",
)


def api_response(payload: Any, status: int = 200) -> Response:
	return make_response(jsonify(payload), status)


def error_response(message: str, status: int) -> Response:
	return api_response({"message": message}, status=status)


def _status_for(exc: ServiceError) -> int:
	if isinstance(exc, NotFound):
		return 404
	if isinstance(exc, DuplicateEntity):
		return 409
	return 500


def load_schema(path: str) -> List[str]:
	"""Split a schema script into single statements, dropping `--` comment lines."""
	with open(path, encoding="utf-8") as fh:
		lines = [ln for ln in fh.read().splitlines() if not ln.strip().startswith("--")]
	return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


def apply_schema(db: Any, statements: List[str]) -> int:
	conn = db.connection
	cur = conn.cursor()
	for stmt in statements:
		cur.execute(stmt)
	conn.commit()
	return len(statements)


def register_entity_routes(app: Flask, service: CrudService) -> None:
	e = service.entity
	base = f"/{e.prefix}"
	log = app.logger

	def get_all() -> Response:
		try:
			records = service.get_all()
		except ServiceError:
			log.exception("Error retrieving %s", e.plural)
			return error_response(f"Failed to retrieve {e.plural}", 500)
		if not records:
			log.info(e.empty_message)
			return error_response(e.empty_message, 404)
		log.info("Retrieved all %s successfully.", e.plural)
		return api_response(records)

	def get_by_id(record_id: int) -> Response:
		try:
			record = service.get(record_id)
		except NotFound:
			log.info("%s %s not found", e.label, record_id)
			return error_response(e.not_found_message, 404)
		except ServiceError:
			log.exception("Failed to get %s with ID %s", e.label, record_id)
			return error_response(f"Failed to get {e.label}", 500)
		return api_response(record)

	def create() -> Response:
		record = e.parse(request.get_json(silent=True))
		try:
			created = service.create(record)
		except DuplicateEntity:
			log.info("%s creation failed: duplicate", e.label)
			return error_response(e.duplicate_message, 409)
		except ServiceError:
			log.exception("Failed to create %s", e.label)
			return error_response(f"Failed to create {e.label}", 500)
		log.info("Created %s %s", e.label, created[e.id_column])
		resp = api_response(created, status=201)
		resp.headers["Location"] = f"{base}/all"
		return resp

	def update() -> Response:
		record = e.parse(request.get_json(silent=True), with_id=True)
		try:
			updated = service.update(record)
		except (NotFound, DuplicateEntity) as exc:
			log.info("%s update rejected: %s", e.label, exc)
			message = e.not_found_message if isinstance(exc, NotFound) else e.duplicate_message
			return error_response(message, _status_for(exc))
		except ServiceError:
			log.exception("Failed to update %s", e.label)
			return error_response(f"Failed to update {e.label}", 500)
		return api_response(updated)

	def delete(record_id: int) -> Response:
		try:
			deleted = service.delete(record_id)
		except NotFound:
			log.info(e.missing_message)
			return error_response(e.missing_message, 404)
		except ServiceError:
			log.exception("Error deleting %s with id %s", e.label, record_id)
			return error_response(f"Failed to delete {e.label}", 500)
		return api_response(deleted)

	app.add_url_rule(f"{base}/all", f"{e.name}_get_all", get_all, methods=["GET"])
	app.add_url_rule(f"{base}/get-all", f"{e.name}_get_all_alias", get_all, methods=["GET"])
	app.add_url_rule(f"{base}/by-id/<int:record_id>", f"{e.name}_get", get_by_id, methods=["GET"])
	app.add_url_rule(f"{base}/create", f"{e.name}_create", create, methods=["POST"])
	app.add_url_rule(f"{base}/update", f"{e.name}_update", update, methods=["PUT"])
	app.add_url_rule(f"{base}/delete/<int:record_id>", f"{e.name}_delete", delete, methods=["DELETE"])


def create_app(config: Optional[Mapping[str, Any]] = None, db: Any = None) -> Flask:
	"""Build the API. `db` replaces the MySQL extension (anything exposing `.connection`)."""
	app = Flask(__name__)
	app.config.from_object(Config)

	# Ensure env vars always take precedence (Config class attributes are evaluated at import time).
	for key in _ENV_KEYS:
		value = os.getenv(key)
		if value is not None:
			app.config[key] = value
	app.config["MYSQL_PORT"] = int(app.config["MYSQL_PORT"])
	if config:
		app.config.update(config)

	configure_logging(app.config["LOG_LEVEL"])

	if db is None:
		mysql.init_app(app)
		db = mysql

	services: Dict[str, CrudService] = build_services(db)
	app.extensions["inventory_services"] = services
	for service in services.values():
		register_entity_routes(app, service)

	@app.get("/health")
	def health() -> Response:
		return api_response({"status": "ok"})

	@app.get("/download")
	def download() -> Response:
		exporter = ReportExporter(services["sales"], services["customer"], services["product"])
		try:
			body, content_type, filename = exporter.export(request.args.get("format"))
		except UnsupportedFormat as exc:
			app.logger.info("Rejected download: %s", exc)
			return error_response("format must be 'csv' or 'xlsx'", 400)
		except ServiceError:
			app.logger.exception("Failed to generate file")
			return error_response("Failed to generate file", 500)
		resp = make_response(body, 200)
		resp.headers["Content-Type"] = content_type
		resp.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
		return resp

	@app.cli.command("init-db")
	def init_db() -> None:
		"""Create the tables described in schema.sql."""
		count = apply_schema(db, load_schema(app.config["SCHEMA_PATH"]))
		click.echo(f"Applied {count} schema statements.")

	# -------------------------
	# Consistent JSON errors
	# -------------------------
	@app.errorhandler(BadRequest)
	def _bad_request(err: BadRequest):
		return error_response(str(err.description or "Bad request"), 400)

	@app.errorhandler(HTTPException)
	def _http_error(err: HTTPException):
		return error_response(err.name, err.code or 500)

	@app.errorhandler(Exception)
	def _unhandled(err: Exception):
		app.logger.exception("Unhandled error")
		return error_response("Internal server error", 500)

	return app


app = create_app()


if __name__ == "__main__":
	port = int(os.getenv("PORT", 5000))
	app.run(host="0.0.0.0", port=port, debug=True)
