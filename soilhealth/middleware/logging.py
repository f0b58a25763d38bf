"""Structured JSON logging with request ID propagation."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from soilhealth.config import LogFormat, get_settings

_configured = False


def configure_structured_logging() -> None:
	"""Configure stdlib + structlog once for the API process."""
	global _configured
	if _configured:
		return

	settings = get_settings()
	log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

	shared_processors: list[Any] = [
		structlog.contextvars.merge_contextvars,
		structlog.stdlib.add_logger_name,
		structlog.processors.add_log_level,
		structlog.processors.TimeStamper(fmt="iso", utc=True),
	]

	if settings.log_format == LogFormat.json:
		renderer: Any = structlog.processors.JSONRenderer()
	else:
		renderer = structlog.dev.ConsoleRenderer()

	# Route stdlib ``logging`` records (and their ``extra=`` fields) through the
	# same renderer so service logs and request logs share one format.
	formatter = structlog.stdlib.ProcessorFormatter(
		foreign_pre_chain=[*shared_processors, structlog.stdlib.ExtraAdder()],
		processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
	)
	handler = logging.StreamHandler()
	handler.setFormatter(formatter)
	root = logging.getLogger()
	root.handlers = [handler]
	root.setLevel(log_level)

	structlog.configure(
		processors=[
			*shared_processors,
			structlog.processors.format_exc_info,
			structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
		],
		wrapper_class=structlog.make_filtering_bound_logger(log_level),
		logger_factory=structlog.stdlib.LoggerFactory(),
		cache_logger_on_first_use=True,
	)
	_configured = True


QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Bind a request ID, time each request and flag requests slower than the query budget."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
		request.state.request_id = request_id
		structlog.contextvars.clear_contextvars()
		structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

		log = structlog.get_logger("soilhealth.request").bind(method=request.method)
		slow_ms = get_settings().query_timeout_seconds * 1000.0
		start = time.perf_counter()
		try:
			response = await call_next(request)
		except Exception:
			log.exception("http_request_failed", duration_ms=_elapsed_ms(start))
			raise

		duration_ms = _elapsed_ms(start)
		response.headers["x-request-id"] = request_id
		response.headers["x-response-time-ms"] = f"{duration_ms:.1f}"
		fields = {"status_code": response.status_code, "duration_ms": duration_ms}
		if duration_ms >= slow_ms:
			log.warning("http_request_slow", **fields)
		elif request.url.path in QUIET_PATHS:
			log.debug("http_request", **fields)
		else:
			log.info("http_request", **fields)
		return response


def _elapsed_ms(start: float) -> float:
	return round((time.perf_counter() - start) * 1000.0, 2)
