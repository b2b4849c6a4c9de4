"""
RabbitMQ publisher: connection lifecycle and persistent publish with confirms.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> READY (confirming channel open, queue declared).
  On broker disconnect or a failed publish: READY -> RECONNECTING (backoff) -> READY.
  On shutdown: -> CLOSING -> close channel/connection -> CLOSED.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import aio_pika
from aio_pika import DeliveryMode, Message
from loguru import logger

from docvault_api.app.config.settings import Settings
from docvault_api.app.core import SERVICE_NAME
from docvault_api.app.infrastructure.messaging.rabbitmq.constants import PublisherState
from docvault_worker.app.core.backoff import exponential_backoff


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQPublisher:
    """MessagePublisher implementation on aio-pika robust connections."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = PublisherState.DISCONNECTED
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.Channel | None = None
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def state(self) -> PublisherState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == PublisherState.READY

    def _amqp_url(self) -> str:
        s = self._settings
        return f"amqp://{s.broker_user}:{s.broker_password}@{s.broker_host}:{s.broker_port}/"

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self._closing or self._loop is None:
            return
        self._state = PublisherState.RECONNECTING
        _log("broker_disconnect_detected")
        self._loop.call_soon_threadsafe(self._schedule_reconnect)

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _open(self, attempt_event: str) -> None:
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
                self._channel = await self._connection.channel(publisher_confirms=True)
                await self._channel.declare_queue(
                    s.queue_name,
                    durable=True,
                    arguments={
                        "x-max-length": s.queue_max_length,
                        "x-overflow": "reject-publish",
                    },
                )
                self._state = PublisherState.READY
                return
            except Exception as exc:
                logger.warning("rmq connect failed: {}", exc)
                await self._teardown()
                if attempt >= s.max_connection_attempts:
                    self._state = PublisherState.DISCONNECTED
                    _log("rmq_connect_failed", attempt=attempt)
                    raise

    async def connect(self) -> None:
        self._state = PublisherState.CONNECTING
        await self._open("rmq_connect_attempt")
        _log("rmq_connected", queue=self._settings.queue_name)

    async def publish(self, message: dict[str, Any]) -> None:
        if self._state != PublisherState.READY:
            _log("publish_rejected", reason="publisher_not_ready")
            raise RuntimeError("publisher_not_ready")
        start = time.perf_counter()
        async with self._lock:
            if self._channel is None:
                raise RuntimeError("connection_lost")
            body = json.dumps(message, default=str).encode()
            try:
                await self._channel.default_exchange.publish(
                    Message(body, delivery_mode=DeliveryMode.PERSISTENT, content_type="application/json"),
                    routing_key=self._settings.queue_name,
                    timeout=self._settings.publish_timeout_seconds,
                )
            except Exception:
                _log("publish_failed", reason="connection_lost")
                self._state = PublisherState.RECONNECTING
                self._schedule_reconnect()
                raise
        _log(
            "publish_success",
            type=message.get("type", ""),
            document_id=message.get("document_id", ""),
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )

    async def _reconnect(self) -> None:
        await self._teardown()
        try:
            await self._open("rmq_reconnect_attempt")
        except Exception as exc:
            logger.error("rmq reconnect exhausted: {}", exc)
            return
        _log("rmq_reconnected")

    async def _teardown(self) -> None:
        if self._channel is not None:
            try:
                await self._channel.close()
            except Exception as exc:
                logger.warning("channel close failed: {}", exc)
            self._channel = None
        if self._connection is not None:
            try:
                await self._connection.close()
            except Exception as exc:
                logger.warning("connection close failed: {}", exc)
            self._connection = None

    async def close(self) -> None:
        self._closing = True
        self._state = PublisherState.CLOSING
        _log("publisher_shutdown")
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            await self._teardown()
        self._state = PublisherState.CLOSED
