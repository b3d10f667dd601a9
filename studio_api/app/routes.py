"""
Estimates API routes.

Endpoints:
    - GET    /api/estimates                      : all estimates, newest first
    - GET    /api/estimates/with-projects        : estimates joined with project info
    - GET    /api/estimates/project/{project_id} : estimates for one project
    - POST   /api/estimates                      : create an estimate
    - GET    /api/estimates/{id}/with-project    : one estimate joined with its project
    - DELETE /api/estimates/{id}                 : delete an estimate
    - GET    /api/estimates/scope/{project_id}   : saved scope for a project (defaults when unsaved)
    - POST   /api/estimates/scope                : create or replace a project scope

Every handler catches failures at its boundary, logs them with a fixed
"<METHOD> <route> error:" prefix and answers {"error": message}.
"""

import logging
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .dependencies import get_estimate_repository
from .repository import EstimateRepository
from .schemas import EstimateCreate, ScopeUpsert, default_scope

logger = logging.getLogger("studio_api.routes")

estimates_router = APIRouter(prefix="/api/estimates", tags=["Estimates"])

DEFAULT_LIST_LIMIT = 50

_POSITIVE_INT = re.compile(r"[0-9]+")

# Largest value a SQLite INTEGER (and a PostgreSQL BIGINT) can hold
MAX_IDENTIFIER = 2**63 - 1


def parse_identifier(raw: Optional[str]) -> Optional[int]:
    """
    Parse a path/query identifier.

    Returns:
        The integer value, or None unless raw is a plain positive integer
        that fits in a 64-bit database column
    """
    if raw is None or not _POSITIVE_INT.fullmatch(raw.strip()):
        return None
    value = int(raw)
    return value if 0 < value <= MAX_IDENTIFIER else None


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def read_json_body(request: Request) -> Dict[str, Any]:
    """
    Parse the request body as a JSON object.

    Valid JSON that is not an object reads as {} so the required-field
    checks answer for it.

    Raises:
        ValueError: If the body is not valid JSON
    """
    body = await request.json()
    return body if isinstance(body, dict) else {}


def backend_error(
    request: Request,
    route: str,
    exc: Exception,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
) -> JSONResponse:
    """
    Log a failure raised while talking to the database and translate it.

    The underlying message is only returned while EXPOSE_ERROR_DETAILS is on.
    """
    logger.error(f"{route} error: {exc}", exc_info=True, extra={"path": request.url.path})

    settings = request.app.state.settings
    message = str(exc) if settings.EXPOSE_ERROR_DETAILS else "Internal server error"
    return error_response(message, status_code)


@estimates_router.get("")
async def list_estimates(
    request: Request,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    try:
        return await repository.list_all()
    except Exception as e:
        return backend_error(request, "GET /api/estimates", e)


@estimates_router.get("/with-projects")
async def list_estimates_with_projects(
    request: Request,
    limit: Optional[str] = None,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    """
    Estimates joined with project name, client and contact, newest first.

    A missing or unusable limit falls back to 50.
    """
    row_limit = parse_identifier(limit) or DEFAULT_LIST_LIMIT
    try:
        return await repository.list_with_projects(row_limit)
    except Exception as e:
        return backend_error(request, "GET /api/estimates/with-projects", e)


@estimates_router.get("/project/{project_id}")
async def list_project_estimates(
    request: Request,
    project_id: str,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    parsed_id = parse_identifier(project_id)
    if parsed_id is None:
        return error_response("Invalid project id", status.HTTP_400_BAD_REQUEST)

    try:
        return await repository.list_by_project(parsed_id)
    except Exception as e:
        return backend_error(request, "GET /api/estimates/project/:projectId", e)


@estimates_router.post("")
async def create_estimate(
    request: Request,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    """
    Create an estimate and echo the request body back with its new id.

    Validation and storage failures both answer 400.
    """
    try:
        payload = await read_json_body(request)
    except ValueError as e:
        logger.warning(f"POST /api/estimates rejected body: {e}")
        return error_response(f"Invalid JSON body: {e}", status.HTTP_400_BAD_REQUEST)

    if not payload.get("project_id"):
        return error_response("project_id required", status.HTTP_400_BAD_REQUEST)

    try:
        estimate = EstimateCreate.model_validate(payload)
        new_id = await repository.create(estimate)
    except ValidationError as e:
        logger.warning(f"POST /api/estimates rejected payload: {e.error_count()} error(s)")
        return error_response(str(e), status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return backend_error(request, "POST /api/estimates", e, status.HTTP_400_BAD_REQUEST)

    logger.info("Created estimate", extra={"estimate_id": new_id, "project_id": estimate.project_id})
    return {**payload, "id": new_id, "project_id": estimate.project_id}


@estimates_router.get("/{id}/with-project")
async def get_estimate_with_project(
    request: Request,
    id: str,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    """
    Get a single estimate merged with its project's identifying fields.

    Responses:
        200: estimate columns plus project_name, client_name, contact_email
             (null when the estimate has no matching project)
        400: {"error": "Invalid estimate id"} for non-numeric, non-positive
             or out-of-range ids
        404: {"error": "Estimate not found"}
        500: {"error": <underlying message>}
    """
    estimate_id = parse_identifier(id)
    if estimate_id is None:
        return error_response("Invalid estimate id", status.HTTP_400_BAD_REQUEST)

    try:
        estimate = await repository.get_with_project(estimate_id)
    except Exception as e:
        return backend_error(request, "GET /api/estimates/:id/with-project", e)

    if estimate is None:
        return error_response("Estimate not found", status.HTTP_404_NOT_FOUND)

    return estimate


@estimates_router.delete("/{id}")
async def delete_estimate(
    request: Request,
    id: str,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    estimate_id = parse_identifier(id)
    if estimate_id is None:
        return error_response("Invalid estimate id", status.HTTP_400_BAD_REQUEST)

    try:
        await repository.delete(estimate_id)
    except Exception as e:
        return backend_error(request, "DELETE /api/estimates/:id", e)

    return {"success": True, "message": "Estimate deleted"}


@estimates_router.get("/scope/{project_id}")
async def get_project_scope(
    request: Request,
    project_id: str,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    """Saved scope for a project, or zeroed defaults if none was saved yet."""
    parsed_id = parse_identifier(project_id)
    if parsed_id is None:
        return error_response("Invalid project id", status.HTTP_400_BAD_REQUEST)

    try:
        scope = await repository.get_scope(parsed_id)
    except Exception as e:
        return backend_error(request, "GET /api/estimates/scope/:projectId", e)

    return scope if scope is not None else default_scope(parsed_id)


@estimates_router.post("/scope")
async def save_project_scope(
    request: Request,
    repository: EstimateRepository = Depends(get_estimate_repository),
):
    try:
        payload = await read_json_body(request)
    except ValueError as e:
        logger.warning(f"POST /api/estimates/scope rejected body: {e}")
        return error_response(f"Invalid JSON body: {e}", status.HTTP_400_BAD_REQUEST)

    if not payload.get("project_id"):
        return error_response("project_id is required", status.HTTP_400_BAD_REQUEST)

    try:
        scope = ScopeUpsert.model_validate(payload)
        saved = await repository.save_scope(scope)
    except ValidationError as e:
        logger.warning(f"POST /api/estimates/scope rejected payload: {e.error_count()} error(s)")
        return error_response(str(e), status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        return backend_error(request, "POST /api/estimates/scope", e, status.HTTP_400_BAD_REQUEST)

    logger.info("Saved project scope", extra={"project_id": scope.project_id})
    return saved
