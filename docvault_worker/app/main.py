import asyncio
import signal
from typing import Any

from loguru import logger

from docvault_worker.app.composition import WorkerDependencies
from docvault_worker.app.config.settings import Settings
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.messaging.consumer import create_message_handler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_worker(settings: Settings | None = None) -> None:
    deps = WorkerDependencies(settings=settings or Settings())
    shutdown = asyncio.Event()

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    try:
        await deps.connect()
        consumer_tag = await deps.message_consumer.start_consuming(create_message_handler(deps.dispatcher))
        _log("worker_started", queue=deps.settings.queue_name, prefetch_count=deps.settings.prefetch_count)
        await shutdown.wait()
        await deps.message_consumer.cancel(consumer_tag)
    finally:
        await deps.close()
        _log("worker_stopped")


def main() -> None:
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        _log("worker_interrupted")
    except Exception as e:
        logger.exception("worker failed: {}", e)
        raise


if __name__ == "__main__":
    main()
