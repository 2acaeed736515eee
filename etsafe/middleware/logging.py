"""structlog setup, request-id propagation and batch-run log context."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from etsafe.config import LogFormat, Settings, get_settings

SERVICE_NAME = "etsafe"
REQUEST_ID_HEADER = "x-request-id"

# Liveness probes hit this every few seconds; they still get a request id.
_UNLOGGED_PATHS = frozenset({"/health"})

# Outbound HTTP clients (LLM, SMS gateway) log every call at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore")

_configured = False


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
	event_dict.setdefault("service", SERVICE_NAME)
	return event_dict


def configure_structured_logging(settings: Settings | None = None) -> None:
	"""Configure stdlib logging and structlog once per process."""
	global _configured
	if _configured:
		return

	settings = settings or get_settings()
	level = getattr(logging, settings.log_level.upper(), logging.INFO)

	if settings.log_format == LogFormat.json:
		logging.basicConfig(level=level, format="%(message)s")
		renderer: Any = structlog.processors.JSONRenderer()
	else:
		logging.basicConfig(level=level)
		renderer = structlog.dev.ConsoleRenderer()
	for name in _CHATTY_LOGGERS:
		logging.getLogger(name).setLevel(max(level, logging.WARNING))

	structlog.configure(
		processors=[
			structlog.contextvars.merge_contextvars,
			_add_service,
			structlog.processors.add_log_level,
			structlog.processors.TimeStamper(fmt="iso", utc=True),
			structlog.processors.format_exc_info,
			renderer,
		],
		wrapper_class=structlog.make_filtering_bound_logger(level),
		logger_factory=structlog.PrintLoggerFactory(),
		cache_logger_on_first_use=True,
	)
	_configured = True


def bind_batch_context(operation: str, **fields: Any) -> str:
	"""Bind batch-run fields onto the current log context (request id is kept); returns the run id."""
	run_id = str(uuid.uuid4())
	structlog.contextvars.bind_contextvars(operation=operation, run_id=run_id, **fields)
	return run_id


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	return getattr(route, "path", request.url.path)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Give every request an id and log one structured line per API call."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
		request.state.request_id = request_id
		structlog.contextvars.clear_contextvars()
		structlog.contextvars.bind_contextvars(request_id=request_id)

		logger = structlog.get_logger("etsafe.request")
		started = time.perf_counter()
		try:
			response = await call_next(request)
		except Exception as exc:
			logger.exception(
				"http_request_failed",
				method=request.method,
				path=request.url.path,
				duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
				error=str(exc),
			)
			raise

		response.headers[REQUEST_ID_HEADER] = request_id
		if request.url.path in _UNLOGGED_PATHS:
			return response

		log = logger.warning if response.status_code >= 500 else logger.info
		log(
			"http_request",
			method=request.method,
			path=request.url.path,
			route=_route_template(request),
			status_code=response.status_code,
			duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
		)
		return response
