# controller/scheduler.py
import asyncio
import logging

logger = logging.getLogger(__name__)


class PeriodicTicker:
    # No callback fires after cancel(), even when cancel() runs inside the callback.

    def __init__(self, name, interval_ms):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.name = name
        self.interval_s = interval_ms / 1000.0
        self._task = None
        self._token = 0

    @property
    def active(self):
        return self._task is not None

    def start(self, callback):
        self.cancel()
        self._token += 1
        self._task = asyncio.get_running_loop().create_task(
            self._run(callback, self._token), name=f"ticker:{self.name}"
        )
        logger.debug(f"[TICKER] {self.name} started every {self.interval_s:.3f}s")

    def cancel(self):
        if self._task is None:
            return
        self._token += 1
        task, self._task = self._task, None
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug(f"[TICKER] {self.name} cancelled")

    async def _run(self, callback, token):
        while True:
            await asyncio.sleep(self.interval_s)
            if token != self._token:
                return
            try:
                callback()
            except Exception:
                logger.exception(f"[TICKER] {self.name} callback failed")
            if token != self._token:
                return
