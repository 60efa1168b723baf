import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from aiohttp import web

from src.application.status_service import StatusService
from src.domain.exceptions import RepositoryNotFoundException, UpstreamFailureException
from src.domain.models import RepositoryRecord
from src.infrastructure.platform_clients import PlatformClient, build_platform_clients
from src.infrastructure.registry import InMemoryRepositoryRegistry

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"
DASHBOARD_PAGE = STATIC_DIR / "index.html"

# Any origin may call the API; preflights are answered here since no route declares OPTIONS.
CORS_ALLOW_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"
MISSING_FIELD = "undefined"

registry_key = web.AppKey("registry", InMemoryRepositoryRegistry)
status_service_key = web.AppKey("status_service", StatusService)

routes = web.RouteTableDef()


def _apply_cors_headers(headers) -> None:
    headers["Access-Control-Allow-Origin"] = "*"


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
        response = web.Response(status=204)
        _apply_cors_headers(response.headers)
        response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
        requested_headers = request.headers.get("Access-Control-Request-Headers")
        if requested_headers:
            response.headers["Access-Control-Allow-Headers"] = requested_headers
            response.headers["Vary"] = "Access-Control-Request-Headers"
        return response

    try:
        response = await handler(request)
    except web.HTTPException as e:
        _apply_cors_headers(e.headers)
        raise
    _apply_cors_headers(response.headers)
    return response


def _as_field_text(value: Any) -> str:
    """
    Renders a request field the way string interpolation does in a browser,
    so whatever the client sent still yields an `owner/name` id.
    """
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list):
        return ",".join("" if item is None else _as_field_text(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def _repo_json(record: RepositoryRecord) -> Dict[str, Any]:
    return record.model_dump()


@routes.get("/")
async def dashboard(request: web.Request) -> web.FileResponse:
    return web.FileResponse(DASHBOARD_PAGE)


@routes.get("/api/repos")
async def list_repos(request: web.Request) -> web.Response:
    registry = request.app[registry_key]
    return web.json_response([_repo_json(r) for r in registry.list_repositories()])


@routes.post("/api/repos")
async def add_repo(request: web.Request) -> web.Response:
    try:
        body = await request.json()
    except ValueError:
        # malformed JSON or a body that is not valid text
        return web.json_response({"error": "Request body must be JSON"}, status=400)
    if not isinstance(body, dict):
        return web.json_response({"error": "Request body must be a JSON object"}, status=400)

    fields = {
        key: _as_field_text(body[key]) if key in body else MISSING_FIELD
        for key in ("platform", "owner", "name", "token")
    }
    record = request.app[registry_key].add(**fields)
    return web.json_response({"success": True, "repo": _repo_json(record)})


# Repository ids contain a slash, so the status route is declared before the catch-all delete.
@routes.get(r"/api/repos/{id:.+}/status")
async def repo_status(request: web.Request) -> web.Response:
    repository_id = request.match_info["id"]
    service = request.app[status_service_key]
    try:
        status = await service.get_status(repository_id)
    except RepositoryNotFoundException as e:
        return web.json_response({"error": str(e)}, status=404)
    except UpstreamFailureException as e:
        logger.error(f"Upstream failure for '{repository_id}': {e}", exc_info=e.__cause__ or e)
        return web.json_response({"error": str(e)}, status=500)
    return web.json_response(status)


@routes.delete(r"/api/repos/{id:.+}")
async def remove_repo(request: web.Request) -> web.Response:
    registry = request.app[registry_key]
    registry.remove(request.match_info["id"])
    return web.json_response({"success": True})


@routes.get("/api/status")
async def all_statuses(request: web.Request) -> web.Response:
    service = request.app[status_service_key]
    return web.json_response(await service.get_all_statuses())


def create_app(
    registry: Optional[InMemoryRepositoryRegistry] = None,
    clients: Optional[Mapping[str, PlatformClient]] = None,
) -> web.Application:
    """
    Builds the web application around a registry and its platform clients.

    Args:
        registry: Store of tracked repositories; a fresh empty one if omitted.
        clients: Platform name to client mapping; GitHub and GitLab clients if omitted.
    """
    registry = registry if registry is not None else InMemoryRepositoryRegistry()
    clients = clients if clients is not None else build_platform_clients()

    app = web.Application(middlewares=[cors_middleware])
    app[registry_key] = registry
    app[status_service_key] = StatusService(registry=registry, clients=clients)
    app.add_routes(routes)
    return app
