"""Worker pool draining incoming readings into the evaluation engine."""

import asyncio

from loguru import logger

from src.automation.application.engine import EvaluationEngine
from src.automation.domain.exceptions import EngineStoppedError
from src.automation.domain.models import Reading

_STOP = object()


class ReadingWorkerPool:
    """
    Shards readings across workers by sensor deployment.

    All readings for one deployment land on the same worker queue, so they
    are evaluated in arrival order and each rule's ``last_fired_at`` only
    moves forward. Different deployments are evaluated in parallel.
    """

    def __init__(
        self,
        engine: EvaluationEngine,
        worker_count: int = 4,
        queue_size: int = 1000,
        shutdown_timeout_seconds: float = 10.0,
    ):
        self.engine = engine
        self.worker_count = worker_count
        self.queue_size = queue_size
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self._queues: list[asyncio.Queue] = []
        self._workers: list[asyncio.Task] = []
        self._accepting = False
        self._submitting = 0
        self._submits_done: asyncio.Event | None = None

    def start(self) -> None:
        """Start the workers. Must be called from within a running event loop."""
        if self._workers:
            return

        self._submits_done = asyncio.Event()
        self._queues = [asyncio.Queue(maxsize=self.queue_size) for _ in range(self.worker_count)]
        self._workers = [
            asyncio.get_running_loop().create_task(self._run(index, queue), name=f"reading-worker-{index}")
            for index, queue in enumerate(self._queues)
        ]
        if self.engine.dispatcher is not None:
            self.engine.dispatcher.bind()
        self._accepting = True
        logger.info(f"Started {self.worker_count} reading worker(s)")

    async def submit(self, reading: Reading) -> None:
        """
        Queue a reading for evaluation, waiting while its shard is full.

        Raises:
            EngineStoppedError: If the pool is not running
        """
        if not self._accepting:
            raise EngineStoppedError(
                "Reading worker pool is not running",
                details={"sensor_deployment_id": reading.sensor_deployment_id},
            )
        self._submitting += 1
        try:
            await self._queues[self.shard_for(reading.sensor_deployment_id)].put(reading)
        finally:
            self._submitting -= 1
            if not self._submitting:
                self._submits_done.set()

    def shard_for(self, sensor_deployment_id: int) -> int:
        return hash(sensor_deployment_id) % self.worker_count

    async def _run(self, index: int, queue: asyncio.Queue) -> None:
        while True:
            reading = await queue.get()
            try:
                if reading is _STOP:
                    return
                self.engine.on_reading(reading)
            except Exception as e:
                logger.exception(f"Worker {index} failed on {reading}: {e}")
            finally:
                queue.task_done()

    async def stop(self, timeout: float | None = None) -> int:
        """
        Stop accepting readings, finish queued ones, then wait for dispatches.

        Returns:
            Number of dispatches still pending when the grace period ended
        """
        if not self._workers:
            return 0

        timeout = self.shutdown_timeout_seconds if timeout is None else timeout
        self._accepting = False

        # Readings already waiting on a full shard go ahead of the stop marker
        if self._submitting:
            self._submits_done.clear()
            await self._submits_done.wait()

        for queue in self._queues:
            await queue.put(_STOP)
        await asyncio.gather(*self._workers)
        self._workers = []
        logger.info("Reading workers stopped")

        dispatcher = self.engine.dispatcher
        if dispatcher is None:
            return 0
        dispatcher.close()
        return await dispatcher.drain(timeout=timeout)

    @property
    def running(self) -> bool:
        return self._accepting

    def pending(self) -> int:
        """Readings queued but not yet evaluated."""
        return sum(queue.qsize() for queue in self._queues)
