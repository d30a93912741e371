"""HTTP rule-management API.

The API is a thin layer over RuleService: it authenticates the caller, maps
request bodies to rules and maps engine errors to status codes. Routes are
plain functions, so FastAPI runs them in its worker thread pool while the
Telegram listener keeps running on the main event loop.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from typing import Any, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.schemas import (
    AddRuleRequest,
    DataResponse,
    ErrorResponse,
    HealthData,
    MatchData,
    MatchRequest,
    MessageData,
    RemoveRuleRequest,
    RuleBody,
    RuleData,
    RulesData,
    UpdateRulesRequest,
)
from core.errors import (
    ConsistencyError,
    NotFoundError,
    PersistenceError,
    RuleEngineError,
    ValidationError,
)
from core.rules_service import RuleService

LOGGER = logging.getLogger(__name__)

# Checked in order, so subclasses must come before their bases.
_ERROR_STATUS = (
    (ValidationError, 400, "INVALID_RULE"),
    (NotFoundError, 404, "RULE_NOT_FOUND"),
    (ConsistencyError, 500, "RULES_OUT_OF_SYNC"),
    (PersistenceError, 500, "STORAGE_ERROR"),
)


class ApiError(Exception):
    """An error already mapped to a status code and an error code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        meta: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.meta = meta


def _error_response(error: ApiError) -> JSONResponse:
    body = ErrorResponse(code=error.code, message=error.message, meta=error.meta)
    return JSONResponse(status_code=error.status_code, content=body.model_dump(exclude_none=True))


def _to_api_error(exc: RuleEngineError) -> ApiError:
    for error_type, status_code, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return ApiError(status_code, code, exc.message, exc.meta)
    return ApiError(500, "INTERNAL_ERROR", exc.message, exc.meta)


def _token_checker(api_token: str):
    def require_token(authorization: Optional[str] = Header(default=None)) -> None:
        if not authorization:
            raise ApiError(401, "UNAUTHORIZED", "Missing authorization header")
        scheme, _, token = authorization.partition(" ")
        if scheme != "Bearer" or not token:
            raise ApiError(401, "UNAUTHORIZED", "Invalid authorization header format")
        if not secrets.compare_digest(token.encode("utf-8"), api_token.encode("utf-8")):
            raise ApiError(401, "UNAUTHORIZED", "Invalid token")

    return require_token


def create_app(service: RuleService, api_token: str) -> FastAPI:
    """Build the FastAPI app serving ``service`` behind bearer ``api_token``."""

    if not api_token:
        raise ValueError("api_token is required")

    app = FastAPI(title="tg-forward rules API")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        LOGGER.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RuleEngineError)
    async def handle_engine_error(request: Request, exc: RuleEngineError) -> JSONResponse:
        return _error_response(_to_api_error(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_bad_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
        return _error_response(
            ApiError(400, "INVALID_REQUEST_BODY", "Invalid request body", {"fields": fields})
        )

    @app.get("/health", response_model=DataResponse[HealthData])
    def health() -> DataResponse[HealthData]:
        return DataResponse[HealthData](data=HealthData(status="ok"))

    router = APIRouter(prefix="/rules", dependencies=[Depends(_token_checker(api_token))])

    @router.get("", response_model=DataResponse[RulesData], response_model_exclude_none=True)
    def get_rules() -> DataResponse[RulesData]:
        rules = service.get_rules()
        return DataResponse[RulesData](data=RulesData(rules=[RuleBody.from_rule(r) for r in rules]))

    @router.put("", response_model=DataResponse[RulesData], response_model_exclude_none=True)
    def update_rules(body: UpdateRulesRequest) -> DataResponse[RulesData]:
        try:
            rules = service.update_rules([item.to_rule() for item in body.rules])
        except ValidationError as exc:
            raise ApiError(400, "INVALID_RULES", exc.message, exc.meta) from exc
        LOGGER.info("Rules updated: %s rules", len(rules))
        return DataResponse[RulesData](data=RulesData(rules=[RuleBody.from_rule(r) for r in rules]))

    @router.post("/add", response_model=DataResponse[RuleData], response_model_exclude_none=True)
    def add_rule(body: AddRuleRequest) -> DataResponse[RuleData]:
        rule = service.add_rule(body.name, body.pattern, body.keywords)
        LOGGER.info("Rule added: %s (ID: %s)", rule.name, rule.id)
        return DataResponse[RuleData](data=RuleData(rule=RuleBody.from_rule(rule)))

    @router.delete("/remove", response_model=DataResponse[MessageData])
    def remove_rule(body: RemoveRuleRequest) -> DataResponse[MessageData]:
        service.remove_rule(body.id)
        LOGGER.info("Rule removed: %s", body.id)
        return DataResponse[MessageData](data=MessageData(message="rule deleted successfully"))

    @router.post("/match", response_model=DataResponse[MatchData])
    def match_text(body: MatchRequest) -> DataResponse[MatchData]:
        matcher = service.get_current_matcher()
        labels = matcher.find_matches(body.text)
        return DataResponse[MatchData](
            data=MatchData(matched=bool(labels), labels=labels, version=matcher.version)
        )

    @router.get("/{rule_id}", response_model=DataResponse[RuleData], response_model_exclude_none=True)
    def get_rule(rule_id: str) -> DataResponse[RuleData]:
        return DataResponse[RuleData](data=RuleData(rule=RuleBody.from_rule(service.get_rule(rule_id))))

    @router.patch("/{rule_id}", response_model=DataResponse[RuleData], response_model_exclude_none=True)
    def update_rule(rule_id: str, body: AddRuleRequest) -> DataResponse[RuleData]:
        rule = service.update_rule(rule_id, body.name, body.pattern, body.keywords)
        LOGGER.info("Rule updated: %s (ID: %s)", rule.name, rule.id)
        return DataResponse[RuleData](data=RuleData(rule=RuleBody.from_rule(rule)))

    app.include_router(router)
    return app


class ApiServer:
    """Runs uvicorn in a daemon thread next to the Telegram event loop."""

    def __init__(self, app: FastAPI, host: str, port: int) -> None:
        self._host = host
        self._port = port
        # log_config=None keeps uvicorn on the handlers configured by the app.
        config = uvicorn.Config(app, host=host, port=port, log_config=None)
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._server.run, name="rules-api", daemon=True)

    def start(self) -> None:
        self._thread.start()
        LOGGER.info("Rules API listening on %s:%s", self._host, self._port)

    def stop(self, timeout: float = 30.0) -> None:
        self._server.should_exit = True
        self._thread.join(timeout)
        if self._thread.is_alive():
            LOGGER.warning("Rules API did not stop within %.0f seconds", timeout)
