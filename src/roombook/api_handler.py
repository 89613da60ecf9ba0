from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger
from mangum import Mangum
from mangum.types import LambdaContext

from roombook.api import app, metrics, tracer

logger = Logger()
# lifespan events are never sent by API Gateway
handler = Mangum(app, lifespan="off")


def _fill_http_context(event: dict[str, Any]) -> None:
    # Minimal HTTP API v2.0 events (sam local, tests) omit fields Mangum reads
    request_context = event.setdefault("requestContext", {})
    http_ctx = request_context.setdefault("http", {})
    http_ctx.setdefault("sourceIp", "127.0.0.1")
    http_ctx.setdefault("userAgent", "roombook")
    request_context.setdefault("stage", "$default")


@metrics.log_metrics
@tracer.capture_lambda_handler
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> Any:
    if isinstance(event, dict) and event.get("version") == "2.0":
        _fill_http_context(event)

    logger.debug("Handling API event", extra={"route_key": event.get("routeKey")})
    response = handler(event, context)
    logger.info(
        "Handled API event",
        extra={"route_key": event.get("routeKey"), "status_code": response.get("statusCode")},
    )
    return response
