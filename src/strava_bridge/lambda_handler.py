"""AWS Lambda handler for the Strava MCP Bridge.

This module wraps the Starlette app with Mangum for AWS Lambda deployment.
Webhook background tasks finish before the invocation returns, since the
Lambda runtime freezes the process once a response is handed back.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from mangum import Mangum

from .server import create_app

logging.getLogger().setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

_handler: Mangum | None = None


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    global _handler
    if _handler is None:
        _handler = Mangum(create_app(), lifespan="off")
    return _handler(event, context)
