"""Processing quota endpoint.

Image processing itself runs outside this service. Before starting a job the
client reserves a slot here; each reservation counts one attempt against
``process:<identity>`` (10 per 5 minutes).
"""

from fastapi import APIRouter

from komikai.api.deps import AuthServiceDep, ProcessQuota
from komikai.core.responses import DataResponse

router = APIRouter()


@router.post("/reserve")
async def reserve_processing_slot(
    session: ProcessQuota, auth: AuthServiceDep
) -> DataResponse[dict]:
    """Consume one processing attempt and report what is left.

    Raises 429 when the quota for the current window is used up.
    """
    info = auth.process_limits(session.identity)
    return DataResponse(
        data={
            "email": session.identity,
            "remaining": info.remaining,
            "reset_at": info.reset_at.isoformat(),
        }
    )
