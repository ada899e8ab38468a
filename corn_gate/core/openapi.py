"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema (served by Swagger UI at ``/docs``) with:
- Tags metadata
- The client identifier header on purchase operations; the header name is
  configurable, so it is read from the request in code rather than declared
  as a FastAPI ``Header`` parameter

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from corn_gate.core.config import settings

_TAGS = [
    {
        "name": "Corn",
        "description": "Corn purchases, limited to one per client per cooldown window.",
    },
    {
        "name": "Health",
        "description": "Liveness and readiness checks.",
    },
]


def _client_id_parameter() -> Dict[str, Any]:
    return {
        "name": settings.app.client_id_header,
        "in": "header",
        "required": True,
        "description": "Opaque client identifier; purchases are limited per identifier.",
        "schema": {"type": "string", "minLength": 1},
    }


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and the client header."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        header_param = _client_id_parameter()
        for path, methods in schema.get("paths", {}).items():
            if not path.startswith("/corn/"):
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                params = method_obj.setdefault("parameters", [])
                if not any(p.get("name") == header_param["name"] for p in params):
                    params.append(dict(header_param))

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
