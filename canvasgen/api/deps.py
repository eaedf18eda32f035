"""FastAPI dependencies resolving the components built at startup."""

from __future__ import annotations

from fastapi import Request

from canvasgen.services.container import GenerationServices


def get_services(request: Request) -> GenerationServices:
    return request.app.state.services
