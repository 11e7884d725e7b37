"""Per-IP trust status kept in a single Redis hash.

The hash ``status_list`` maps a client IP to an integer status.  Missing
entries and values that are not a known status read as
:attr:`IpStatus.NONE`, so a corrupted entry never blocks anyone by
accident.
"""

from enum import IntEnum

from pydantic import BaseModel, Field, IPvAnyAddress
from redis.asyncio import Redis

DB_STATUS_LIST = "status_list"


class IpStatus(IntEnum):
    """Trust level of a client IP."""

    NONE = -1  # normal request handling
    TRUSTED = 0  # exempt from the block check
    BLOCKED = 1  # rejected with 403 before routing

    @classmethod
    def from_value(cls, value: object) -> "IpStatus":
        try:
            return cls(int(value))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return cls.NONE


class IpStatusPayload(BaseModel):
    """One ``{ip, status}`` entry as exchanged over the API."""

    ip: IPvAnyAddress
    status: int = Field(ge=-1, le=1)


class IpStatusRepository:
    """Data access for the IP status hash."""

    def __init__(self, redis: Redis, key: str = DB_STATUS_LIST):
        self.redis = redis
        self.key = key

    async def insert(self, ip: str, status: IpStatus) -> None:
        await self.redis.hset(self.key, ip, int(status))

    async def bulk_insert(self, payload: list[IpStatusPayload]) -> int:
        """Upsert every entry in one round-trip. Returns the number of entries written."""
        if not payload:
            return 0
        mapping = {str(entry.ip): int(entry.status) for entry in payload}
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(self.key, mapping=mapping)
            await pipe.execute()
        return len(mapping)

    async def read(self, ip: str) -> IpStatus:
        return IpStatus.from_value(await self.redis.hget(self.key, ip))

    async def read_all(self) -> list[IpStatusPayload]:
        raw = await self.redis.hgetall(self.key)
        entries = []
        for ip, value in raw.items():
            ip = ip.decode() if isinstance(ip, bytes) else ip
            entries.append(IpStatusPayload(ip=ip, status=IpStatus.from_value(value)))
        return sorted(entries, key=lambda entry: str(entry.ip))
