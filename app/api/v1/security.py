"""IP status list endpoints (admin only)."""

from fastapi import APIRouter, Depends, Response, status

from app.auth.dependencies import require_admin
from app.dependencies import RedisClient
from app.security.ip_status import IpStatusPayload, IpStatusRepository
from app.utils.audit import audit_logged

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post(
    "/ip-status",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(audit_logged("update_ip_status"))],
)
async def post_ip_status(payload: list[IpStatusPayload], redis: RedisClient) -> Response:
    """Upsert a batch of ``{ip, status}`` entries (-1 none, 0 trusted, 1 blocked)."""
    await IpStatusRepository(redis).bulk_insert(payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/ip-status", response_model=list[IpStatusPayload])
async def get_ip_status_list(redis: RedisClient) -> list[IpStatusPayload]:
    """List every IP with a recorded status."""
    return await IpStatusRepository(redis).read_all()
