"""
RabbitMQ consumer for the document processing queue.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> READY (channel open, queue declared)
  -> CONSUMING once a handler is registered.
  On broker disconnect: -> RECONNECTING (backoff) -> READY -> CONSUMING again with the
  stored handler. On shutdown: -> CLOSING -> CLOSED.

Raw aio_pika messages are wrapped in AioPikaMessageAdapter, so the handler only
sees the IncomingMessage port. The connection close callback may fire outside the
event loop; reconnects are scheduled with call_soon_threadsafe. `_lock` serialises
subscribe, re-subscribe and teardown.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aio_pika
from aio_pika import IncomingMessage as AioPikaIncomingMessage
from loguru import logger

from docvault_worker.app.config.settings import Settings
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.core.backoff import exponential_backoff
from docvault_worker.app.infrastructure.messaging.rabbitmq.aio_pika_message_adapter import AioPikaMessageAdapter
from docvault_worker.app.infrastructure.messaging.rabbitmq.constants import ConsumerState, QUEUE_OVERFLOW_POLICY
from docvault_worker.app.ports.message_consumer import MessageHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQConsumer:
    """MessageConsumer implementation on aio-pika robust connections."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ConsumerState.DISCONNECTED
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.Channel | None = None
        self._queue: aio_pika.Queue | None = None
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handler: MessageHandler | None = None
        self._consumer_tag: str | None = None

    @property
    def state(self) -> ConsumerState:
        return self._state

    def _amqp_url(self) -> str:
        s = self._settings
        return f"amqp://{s.broker_user}:{s.broker_password}@{s.broker_host}:{s.broker_port}/"

    async def _dispatch(self, raw_message: AioPikaIncomingMessage) -> None:
        if self._handler is None:
            await raw_message.nack(requeue=True)
            return
        await self._handler(AioPikaMessageAdapter(raw_message))

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self._closing or self._loop is None:
            return
        self._state = ConsumerState.RECONNECTING
        _log("broker_disconnect_detected")
        if self._reconnect_task is None or self._reconnect_task.done():
            def schedule() -> None:
                self._reconnect_task = asyncio.create_task(self._reconnect())
            self._loop.call_soon_threadsafe(schedule)

    async def _open(self, attempt_event: str) -> None:
        """Connect, open a channel and declare the queue, retrying with backoff."""
        s = self._settings
        attempt = 0
        async for delay in exponential_backoff(
            s.initial_backoff_seconds,
            s.max_backoff_seconds,
            s.backoff_multiplier,
            s.max_connection_attempts,
        ):
            if self._closing:
                return
            attempt += 1
            _log(attempt_event, attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(self._amqp_url())
                self._loop = asyncio.get_running_loop()
                inner = getattr(self._connection, "connection", self._connection)
                if callable(getattr(inner, "add_close_callback", None)):
                    inner.add_close_callback(self._on_connection_closed)
                self._channel = await self._connection.channel()
                await self._channel.set_qos(prefetch_count=s.prefetch_count)
                self._queue = await self._channel.declare_queue(
                    s.queue_name,
                    durable=True,
                    arguments={
                        "x-max-length": s.queue_max_length,
                        "x-overflow": QUEUE_OVERFLOW_POLICY,
                    },
                )
                self._state = ConsumerState.READY
                return
            except Exception as exc:
                logger.warning("rmq connect failed: {}", exc)
                if attempt >= s.max_connection_attempts:
                    self._state = ConsumerState.DISCONNECTED
                    _log("rmq_connect_failed", attempt=attempt)
                    raise

    async def connect(self) -> None:
        self._state = ConsumerState.CONNECTING
        _log("rmq_connecting", queue=self._settings.queue_name)
        await self._open("rmq_connect_attempt")
        _log("rmq_connected", queue=self._settings.queue_name)

    async def start_consuming(self, handler: MessageHandler) -> str:
        async with self._lock:
            if self._queue is None:
                raise RuntimeError("consumer not connected")
            self._handler = handler
            self._consumer_tag = await self._queue.consume(self._dispatch, no_ack=False)
            self._state = ConsumerState.CONSUMING
            return self._consumer_tag

    async def cancel(self, consumer_tag: str) -> None:
        async with self._lock:
            if self._queue is not None and self._consumer_tag == consumer_tag:
                await self._queue.cancel(consumer_tag)
                self._consumer_tag = None
                self._state = ConsumerState.READY

    async def _reconnect(self) -> None:
        try:
            await self._open("rmq_reconnect_attempt")
        except Exception as exc:
            logger.error("rmq reconnect exhausted after {} attempts: {}", self._settings.max_connection_attempts, exc)
            return
        async with self._lock:
            if self._closing or self._queue is None:
                return
            if self._handler is not None:
                self._consumer_tag = await self._queue.consume(self._dispatch, no_ack=False)
                self._state = ConsumerState.CONSUMING
        _log("rmq_reconnected")

    async def close(self) -> None:
        self._closing = True
        self._state = ConsumerState.CLOSING
        _log("consumer_shutdown")
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            self._queue = None
            self._consumer_tag = None
            if self._channel is not None:
                try:
                    await self._channel.close()
                except Exception as exc:
                    logger.warning("channel close failed (continuing to close connection): {}", exc)
                self._channel = None
            if self._connection is not None:
                try:
                    await self._connection.close()
                except Exception as exc:
                    logger.warning("connection close failed: {}", exc)
                self._connection = None
        self._state = ConsumerState.CLOSED
