"""
Redis watermark store.

Keeps the last translated sequence token of each product in its own key, so
every worker of the change feed shares the same deduplication state.
"""
from typing import Optional

from redis.asyncio import Redis

from internal.domain.value_objects import SequenceToken
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


# KEYS: watermark key. ARGV: token parts joined by '-', ttl seconds.
# Tokens compare component-wise as numbers; strings are compared by length
# first so arbitrarily long sequence numbers order correctly.
ADVANCE_SCRIPT = """
local function parts(token)
    local out = {}
    for p in string.gmatch(token, '[^-]+') do
        p = string.gsub(p, '^0+', '')
        table.insert(out, p)
    end
    return out
end

local function less(a, b)
    local pa, pb = parts(a), parts(b)
    local n = math.max(#pa, #pb)
    for i = 1, n do
        local x, y = pa[i], pb[i]
        if x == nil then return true end
        if y == nil then return false end
        if #x ~= #y then return #x < #y end
        if x ~= y then return x < y end
    end
    return false
end

local current = redis.call('GET', KEYS[1])
if current and not less(current, ARGV[1]) then
    redis.call('EXPIRE', KEYS[1], ARGV[2])
    return 0
end
redis.call('SET', KEYS[1], ARGV[1], 'EX', ARGV[2])
return 1
"""


class RedisWatermarkStore:
    """
    Watermarks shared through Redis.

    A key lives for ``ttl_seconds``, which should cover the redelivery window
    of the change feed. The advance script only ever moves a watermark
    forward, so racing workers cannot roll it back.
    """

    def __init__(
        self,
        client: Redis,
        key_prefix: str = "catalog",
        ttl_seconds: int = 86_400,
    ) -> None:
        """
        Initialize the store.

        Args:
            client: Connected Redis client.
            key_prefix: Prefix of the watermark keys.
            ttl_seconds: Lifetime of a watermark after its last advance.
        """
        self._redis = client
        self._prefix = f"{key_prefix}:watermark:"
        self._ttl_seconds = ttl_seconds
        self._advance_script = client.register_script(ADVANCE_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[SequenceToken]:
        """Get the watermark of a product id."""
        value = await self._redis.get(self._key(key))
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return SequenceToken(value)

    async def advance(self, key: str, token: SequenceToken) -> None:
        """Move the watermark of a product id forward."""
        moved = await self._advance_script(
            keys=[self._key(key)],
            args=[token.value, self._ttl_seconds],
        )
        if not moved:
            logger.debug("Watermark already ahead", product_id=key, sequence_token=token.value)
