# Overview: JSON envelope helpers shared by the API blueprints.

from __future__ import annotations

from flask import jsonify


def success_response(message: str, data=None, status: int = 200):
    return jsonify({
        "message": message,
        "data": data,
        "error": False,
        "success": True,
    }), status


def error_response(message: str, status: int, *, errors: list[str] | None = None):
    body = {
        "message": message,
        "data": None,
        "error": True,
        "success": False,
    }
    if errors:
        body["errors"] = errors
    return jsonify(body), status
