# -*- coding: utf-8 -*-
"""
IONM Board Server: Flask API (Waitress) over the staff record store.
- API:
    • GET    /api/health, /healthz
    • GET    /api/staff                      -> {"items": [...], "seq": N}
    • POST   /api/staff {item|name,pin,role} -> register a staff member (roster, prep)
    • PATCH  /api/staff/<id> {fields}
    • DELETE /api/staff/<id>
    • POST   /api/staff/<id>/status {status}
    • POST   /api/staff/<id>/relief {kind, action}
    • POST   /api/staff/batch {updates: [{id, fields}]}
    • POST   /api/staff/bulk {filter: {field, op, value}, fields}
    • GET    /api/changes?since=N[&wait=S]   -> change log for polling clients
    • GET    /api/board                      -> derived slots, roster, conflicts
    • GET    /api/team                       -> assigned staff in board order
    • POST   /api/board/drop {draggedStaffId, sourceKind, draggedDuty, targetSlotLabel}
    • POST   /api/board/duty {label, text}
    • POST   /api/board/reset {confirm: true}
- The board is recomputed from the store on every request; the server keeps
  no board state of its own.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from waitress import serve

from .board import AssignmentBoard
from .config import CONFIG
from .derivation import derive, team_status
from .errors import ConfirmationRequired, RecordNotFound, StoreUnavailable, WriteFailed
from .logging_setup import get_logger
from .models import FieldFilter, MovePayload, RecordUpdate, StaffRecord
from .mutations import lunch_break_update, status_update
from .store.base import StaffStore, new_staff_record

logger = get_logger(__name__)

MAX_WAIT_SECONDS = 10.0


def _error(message: str, status: int):
    return jsonify({"ok": False, "error": message}), status


def _json_body() -> Optional[Dict[str, Any]]:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else None


def _fields(data: Dict[str, Any]) -> Dict[str, Any]:
    fields = data.get("fields")
    if not isinstance(fields, dict) or not fields:
        raise ValueError("fields must be a non-empty object")
    return fields


def create_app(store: StaffStore) -> Flask:
    app = Flask(__name__)
    app.config["STAFF_STORE"] = store

    @app.errorhandler(RecordNotFound)
    def _not_found(exc: RecordNotFound):
        return _error(str(exc), 404)

    @app.errorhandler(ConfirmationRequired)
    def _needs_confirm(exc: ConfirmationRequired):
        return _error(str(exc), 409)

    @app.errorhandler(StoreUnavailable)
    def _unavailable(exc: StoreUnavailable):
        logger.warning("Store unavailable: %s", exc)
        return _error(str(exc), 503)

    @app.errorhandler(WriteFailed)
    def _write_failed(exc: WriteFailed):
        logger.warning("Write failed: %s", exc)
        return _error(str(exc), 409)

    @app.errorhandler(ValueError)
    def _bad_request(exc: ValueError):
        return _error(str(exc), 400)

    @app.route("/api/health", methods=["GET"])
    def api_health():
        return jsonify({"ok": True, "ts": datetime.utcnow().isoformat() + "Z"})

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return jsonify({"ok": True})

    # ---------- staff records ----------
    @app.route("/api/staff", methods=["GET"])
    def api_staff_list():
        seq = store.latest_seq()
        items = [rec.to_dict() for rec in store.fetch_all()]
        return jsonify({"ok": True, "items": items, "seq": seq})

    @app.route("/api/staff", methods=["POST"])
    def api_staff_create():
        data = _json_body()
        if data is None:
            return _error("invalid json", 400)
        item = data.get("item")
        if isinstance(item, dict):
            record = StaffRecord.from_dict(item)
        else:
            record = new_staff_record(data.get("name", ""), pin=data.get("pin", ""), role=data.get("role"))
        created = store.insert(record)
        logger.info("Registered staff %s (%s)", created.name, created.id)
        return jsonify({"ok": True, "item": created.to_dict()}), 201

    @app.route("/api/staff/<staff_id>", methods=["PATCH"])
    def api_staff_update(staff_id: str):
        data = _json_body()
        if data is None:
            return _error("invalid json", 400)
        updated = store.update(staff_id, _fields(data))
        return jsonify({"ok": True, "item": updated.to_dict()})

    @app.route("/api/staff/<staff_id>", methods=["DELETE"])
    def api_staff_delete(staff_id: str):
        removed = store.delete(staff_id)
        logger.info("Removed staff %s (%s)", removed.name, removed.id)
        return jsonify({"ok": True, "item": removed.to_dict()})

    @app.route("/api/staff/<staff_id>/status", methods=["POST"])
    def api_staff_status(staff_id: str):
        data = _json_body() or {}
        updated = store.update(staff_id, status_update(str(data.get("status", ""))))
        return jsonify({"ok": True, "item": updated.to_dict()})

    @app.route("/api/staff/<staff_id>/relief", methods=["POST"])
    def api_staff_relief(staff_id: str):
        data = _json_body() or {}
        fields = lunch_break_update(str(data.get("kind", "")), str(data.get("action", "")))
        updated = store.update(staff_id, fields)
        return jsonify({"ok": True, "item": updated.to_dict()})

    @app.route("/api/staff/batch", methods=["POST"])
    def api_staff_batch():
        data = _json_body()
        if data is None or not isinstance(data.get("updates"), list):
            return _error("updates must be a list", 400)
        updates = [RecordUpdate.from_dict(item) for item in data["updates"]]
        changed = store.apply_batch(updates)
        return jsonify({"ok": True, "changed": changed})

    @app.route("/api/staff/bulk", methods=["POST"])
    def api_staff_bulk():
        data = _json_body()
        if data is None or not isinstance(data.get("filter"), dict):
            return _error("filter must be an object", 400)
        changed = store.bulk_update(FieldFilter.from_dict(data["filter"]), _fields(data))
        return jsonify({"ok": True, "changed": changed})

    @app.route("/api/changes", methods=["GET"])
    def api_changes():
        try:
            since = int(request.args.get("since", "0"))
            wait = float(request.args.get("wait", "0") or 0)
        except ValueError:
            return _error("since and wait must be numbers", 400)
        wait = min(max(wait, 0.0), MAX_WAIT_SECONDS)
        latest, events = store.events_since(since, timeout=wait)
        payload = [event.to_dict() for event in events] if events is not None else None
        return jsonify({"ok": True, "seq": latest, "events": payload})

    # ---------- board ----------
    def _board() -> AssignmentBoard:
        board = AssignmentBoard(store)
        if not board.refresh():
            raise StoreUnavailable(board.banner or "store unavailable")
        return board

    @app.route("/api/board", methods=["GET"])
    def api_board():
        view = derive(store.fetch_all())
        return jsonify({"ok": True, **view.to_dict()})

    @app.route("/api/team", methods=["GET"])
    def api_team():
        items = [rec.to_dict() for rec in team_status(store.fetch_all())]
        return jsonify({"ok": True, "items": items})

    @app.route("/api/board/drop", methods=["POST"])
    def api_board_drop():
        data = _json_body()
        if data is None:
            return _error("invalid json", 400)
        payload = MovePayload.from_dict(data)
        updates = _board().move(payload)
        return jsonify({"ok": True, "updates": [u.to_dict() for u in updates]})

    @app.route("/api/board/duty", methods=["POST"])
    def api_board_duty():
        data = _json_body()
        if data is None or "label" not in data:
            return _error("label is required", 400)
        board = _board()
        board.on_duty_edit(str(data["label"]), str(data.get("text") or ""))
        updates = board.on_duty_commit(str(data["label"]))
        return jsonify({"ok": True, "updates": [u.to_dict() for u in updates]})

    @app.route("/api/board/reset", methods=["POST"])
    def api_board_reset():
        data = _json_body() or {}
        changed = _board().reset_board(confirmed=data.get("confirm") is True)
        return jsonify({"ok": True, "changed": changed})

    return app


def run_server(store: StaffStore, host: Optional[str] = None, port: Optional[int] = None) -> None:
    host = host or CONFIG.api_host
    port = port or CONFIG.api_port
    logger.info("Serving IONM board on http://%s:%s", host, port)
    serve(create_app(store), host=host, port=port, threads=CONFIG.server_threads)


__all__ = ["create_app", "run_server", "MAX_WAIT_SECONDS"]
