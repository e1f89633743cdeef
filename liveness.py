import asyncio
from typing import Optional

from constants import HEARTBEAT_INTERVAL_SECONDS, HEARTBEAT_REQUIRE_REPLY
from logging_config import get_logger
from schemas.envelopes import MessageType
from signaling import CLOSE_GOING_AWAY, MessageRouter

logger = get_logger(__name__)


class LivenessMonitor:
    """Probes every open connection on a fixed interval.

    Each sweep clears ``is_alive`` and queues a ``ping``. Any inbound frame sets
    the flag again, a ``pong`` as much as an ``offer``. With ``require_reply`` a
    connection that is still not alive at the next sweep is evicted through the
    router's normal teardown path. Without it, silence alone never evicts; dead
    peers are left to the transport-level ping and to failed probe writes.
    """

    def __init__(
        self,
        router: MessageRouter,
        interval: float = HEARTBEAT_INTERVAL_SECONDS,
        require_reply: bool = HEARTBEAT_REQUIRE_REPLY,
    ):
        self.router = router
        self.interval = interval
        self.require_reply = require_reply
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Liveness monitor started (interval {self.interval}s, require reply {self.require_reply})")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Liveness monitor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Liveness sweep failed: {e}", exc_info=True)

    async def sweep(self) -> int:
        """Run one probe pass. Returns the number of evicted connections."""
        stale = []
        probed = 0
        for conn in list(self.router.connections.values()):
            if conn.closed:
                continue
            if not conn.is_alive and self.require_reply:
                logger.info(f"Evicting unresponsive {conn!r} (last activity {conn.last_activity.isoformat()})")
                stale.append(conn)
                continue
            conn.is_alive = False
            if self.router.send(conn, {"type": MessageType.PING.value}):
                probed += 1

        # closes run side by side so one hung socket does not delay the rest
        results = await asyncio.gather(
            *(self.router.disconnect(conn, "heartbeat timeout", CLOSE_GOING_AWAY) for conn in stale)
        )
        evicted = sum(1 for closed in results if closed)
        logger.debug(f"Liveness sweep: probed {probed}, evicted {evicted}")
        return evicted
