"""
NourishPlate — HTTP API.

JSON endpoints over the email dispatcher, the AI generators and the family
invitation workflow. Every response carries permissive CORS headers; the
signed-in user arrives from the auth gateway in X-User-Id / X-User-Email.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Awaitable, Callable

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from nourishplate.core.diet_plan import generate_diet_plan
from nourishplate.core.document_parser import parse_nutrition_plan
from nourishplate.core.email_dispatcher import EmailDispatcher
from nourishplate.core.errors import (
    InvalidToken,
    InvitationNotFound,
    UpstreamError,
    ValidationError,
)
from nourishplate.core.invitations import InvitationService, SignedInUser
from nourishplate.core.nutrition_facts import get_nutrition_facts
from nourishplate.data.cache import ResultCache
from nourishplate.data.db import FamilyDB

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

_Handler = Callable[[Request], Awaitable[tuple[dict, int]]]


def json_endpoint(route: _Handler) -> Callable[[Request], Awaitable[Response]]:
    """Answer preflights, then wrap the handler's (body, status) in a CORS JSONResponse."""

    @functools.wraps(route)
    async def wrapper(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        body, code = await route(request)
        return JSONResponse(body, status_code=code, headers=CORS_HEADERS)

    return wrapper


def _error(message: str, code: int, **extra: Any) -> tuple[dict, int]:
    return {"success": False, "error": message, **extra}, code


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _signed_in_user(request: Request) -> SignedInUser | None:
    user_id = request.headers.get("x-user-id", "").strip()
    email = request.headers.get("x-user-email", "").strip()
    if not user_id or not email:
        return None
    return SignedInUser(
        user_id=user_id,
        email=email,
        full_name=request.headers.get("x-user-name") or None,
    )


# --- Lazily created collaborators (tests inject their own) ---


def _dispatcher(request: Request) -> EmailDispatcher:
    state = request.app.state
    if getattr(state, "dispatcher", None) is None:
        state.dispatcher = EmailDispatcher()
    return state.dispatcher


def _family_db(request: Request) -> FamilyDB:
    state = request.app.state
    if getattr(state, "family_db", None) is None:
        state.family_db = FamilyDB()
    return state.family_db


def _cache(request: Request) -> ResultCache:
    state = request.app.state
    if getattr(state, "cache", None) is None:
        state.cache = ResultCache()
    return state.cache


def _invitations(request: Request) -> InvitationService:
    state = request.app.state
    if getattr(state, "invitations", None) is None:
        state.invitations = InvitationService(_family_db(request), _dispatcher(request))
    return state.invitations


# --- Email ---


@json_endpoint
async def send_family_invite(request: Request) -> tuple[dict, int]:
    try:
        body = await _json_body(request)
    except ValidationError as exc:
        return _error(str(exc), exc.status_code)

    result = await _dispatcher(request).send_invite(body)
    return result.to_response(), result.status_code


# --- AI generators ---


@json_endpoint
async def nutrition_facts(request: Request) -> tuple[dict, int]:
    raw_age = request.query_params.get("age", "")
    try:
        kid_age = int(raw_age)
    except ValueError:
        return _error("age must be a whole number", 400)
    if kid_age < 0:
        return _error("age must not be negative", 400)

    refresh = request.query_params.get("refresh", "").lower() in ("1", "true", "yes")
    facts = await get_nutrition_facts(kid_age, force_refresh=refresh, cache=_cache(request))
    return {"success": True, "facts": [f.model_dump(by_alias=True) for f in facts]}, 200


@json_endpoint
async def diet_plan(request: Request) -> tuple[dict, int]:
    try:
        body = await _json_body(request)
    except ValidationError as exc:
        return _error(str(exc), exc.status_code)

    user_context = body.get("userContext")
    if isinstance(user_context, dict):
        user_context = json.dumps(user_context)
    if not isinstance(user_context, str) or not user_context.strip():
        return _error("Missing required fields: userContext is required", 400)

    plan = await generate_diet_plan(user_context)
    return {"success": True, "plan": plan.model_dump(by_alias=True)}, 200


@json_endpoint
async def parse_plan(request: Request) -> tuple[dict, int]:
    try:
        body = await _json_body(request)
        file_name = str(body.get("fileName") or "")
        events = await parse_nutrition_plan(str(body.get("fileUrl") or ""), file_name)
    except (ValidationError, UpstreamError) as exc:
        logger.warning("Nutrition plan parsing failed: %s", exc)
        return _error(str(exc), exc.status_code)
    except Exception as exc:
        logger.error("Error in parse-nutrition-plan: %s", exc)
        return _error(str(exc) or "Internal server error", 500)

    return {
        "success": True,
        "events": [e.model_dump(by_alias=True) for e in events],
        "message": f"AI parsed {len(events)} meal events from {file_name}",
    }, 200


# --- Families ---


@json_endpoint
async def create_family(request: Request) -> tuple[dict, int]:
    user = _signed_in_user(request)
    if user is None:
        return _error("Sign in to continue", 401)
    try:
        body = await _json_body(request)
    except ValidationError as exc:
        return _error(str(exc), exc.status_code)

    name = str(body.get("name") or "").strip()
    if not name:
        return _error("Missing required fields: name is required", 400)

    family_db = _family_db(request)
    if user.full_name:
        family_db.upsert_profile(user.user_id, user.email, full_name=user.full_name)
    family = family_db.create_family(name, user.user_id, user.email)
    return {"success": True, "family": {"id": family.id, "name": family.name}}, 200


@json_endpoint
async def send_invitation(request: Request) -> tuple[dict, int]:
    try:
        body = await _json_body(request)
    except ValidationError as exc:
        return _error(str(exc), exc.status_code)

    result = await _invitations(request).send_invitation(
        request.path_params["family_id"],
        _signed_in_user(request),
        str(body.get("inviteEmail") or ""),
        role=str(body.get("role") or ""),
    )
    return result.to_response(), result.status_code


@json_endpoint
async def invitation_details(request: Request) -> tuple[dict, int]:
    token = request.query_params.get("token", "")
    try:
        details = _invitations(request).load_invitation(token)
    except InvalidToken as exc:
        return _error(
            "Invalid invitation link. Please check the link and try again.",
            exc.status_code,
            redirectTo="/",
        )
    except InvitationNotFound as exc:
        return _error("This invitation is no longer available.", exc.status_code, redirectTo="/")
    return {"success": True, "invitation": details.to_response()}, 200


async def _token_from_body(request: Request) -> str:
    body = await _json_body(request)
    return str(body.get("token") or "")


@json_endpoint
async def accept_invitation(request: Request) -> tuple[dict, int]:
    try:
        token = await _token_from_body(request)
    except ValidationError as exc:
        return _error(str(exc), exc.status_code)

    outcome = _invitations(request).accept_invitation(token, _signed_in_user(request))
    return outcome.to_response(), outcome.http_status


@json_endpoint
async def decline_invitation(request: Request) -> tuple[dict, int]:
    try:
        token = await _token_from_body(request)
    except ValidationError as exc:
        return _error(str(exc), exc.status_code)

    outcome = _invitations(request).decline_invitation(token)
    return outcome.to_response(), outcome.http_status


# --- Errors ---


async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
    messages = {404: "Not found", 405: "Method not allowed"}
    return JSONResponse(
        {"success": False, "error": messages.get(exc.status_code, exc.detail)},
        status_code=exc.status_code,
        headers=CORS_HEADERS,
    )


_POST = ["POST", "OPTIONS"]
_GET = ["GET", "OPTIONS"]


def create_app(
    dispatcher: EmailDispatcher | None = None,
    family_db: FamilyDB | None = None,
    cache: ResultCache | None = None,
) -> Starlette:
    app = Starlette(
        routes=[
            Route("/api/send-family-invite", send_family_invite, methods=_POST),
            Route("/api/nutrition-facts", nutrition_facts, methods=_GET),
            Route("/api/generate-diet-plan", diet_plan, methods=_POST),
            Route("/api/parse-nutrition-plan", parse_plan, methods=_POST),
            Route("/api/families", create_family, methods=_POST),
            Route("/api/families/{family_id}/invites", send_invitation, methods=_POST),
            Route("/api/family-invite", invitation_details, methods=_GET),
            Route("/api/family-invite/accept", accept_invitation, methods=_POST),
            Route("/api/family-invite/decline", decline_invitation, methods=_POST),
        ],
        exception_handlers={404: http_error, 405: http_error},
    )
    app.state.dispatcher = dispatcher
    app.state.family_db = family_db
    app.state.cache = cache
    app.state.invitations = None
    return app
