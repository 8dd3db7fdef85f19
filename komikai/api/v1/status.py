"""Service diagnostics endpoint.

GET /status sweeps expired codes and reports store sizes. No auth: it
exposes counts only, never identities.
"""

from fastapi import APIRouter, Request

from komikai.api.deps import AuthServiceDep
from komikai.core.responses import DataResponse

router = APIRouter()


@router.get("/status")
async def get_status(request: Request, auth: AuthServiceDep) -> DataResponse[dict]:
    """Pending codes, rate-limit entries and uptime."""
    status = auth.status()
    uptime = auth.now() - request.app.state.started_at
    return DataResponse(
        data={
            "status": "ok",
            "pending_codes": status.pending_codes,
            "rate_limit": {
                "total_entries": status.rate_limit.total_entries,
                "memory_estimate_bytes": status.rate_limit.memory_estimate_bytes,
            },
            "allowed_users": status.allowed_users,
            "signing_configured": status.signing_configured,
            "uptime_seconds": max(0, int(uptime.total_seconds())),
        }
    )
