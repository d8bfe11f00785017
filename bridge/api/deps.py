from __future__ import annotations

from fastapi import HTTPException, status
from fastapi.requests import HTTPConnection

from bridge.startup import BridgeRuntime


def get_runtime(conn: HTTPConnection) -> BridgeRuntime:
    runtime = getattr(conn.app.state, "runtime", None)
    if runtime is None:
        # Startup hasn't run (or failed); nothing to route through.
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bridge not started")
    return runtime
