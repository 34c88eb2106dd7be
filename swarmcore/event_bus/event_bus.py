"""EventBus implementation for pub/sub messaging with retry and batching."""

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable, Iterable
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from ..config import EventBusConfig
from ..errors import DeliveryError, ExhaustedRetriesError, StoreError, ValidationError
from ..event_factory import EventFactory
from ..event_store import IEventStore
from ..logging_config import get_logger
from ..models import AgentEventType, Event, EventFilter, ReplayJob, ReplayStatus, as_utc

logger = get_logger(__name__)


EventHandler = Callable[[Event], Awaitable[None] | None]
EventPredicate = Callable[[Event], bool]


@dataclass
class Subscription:
    """A handler listening for one event type."""

    id: str
    event_type: AgentEventType
    handler: EventHandler
    filter: EventPredicate | None = None
    priority: int = 0  # higher runs first
    active: bool = True


class PayloadTransform(Protocol):
    """Hook applied to events on their way into and out of the store."""

    def on_write(self, event: Event) -> Event:
        ...

    def on_read(self, event: Event) -> Event:
        ...


class IdentityTransform:
    """Default transform: events are stored as they are."""

    def on_write(self, event: Event) -> Event:
        return event

    def on_read(self, event: Event) -> Event:
        return event


class IEventBus(Protocol):
    """Publish/subscribe dispatcher with retry, batching and write-ahead persistence."""

    def subscribe(
        self,
        event_type: AgentEventType | str,
        handler: EventHandler,
        *,
        filter: EventPredicate | None = None,
        priority: int = 0,
    ) -> str:
        """Subscribe a handler to an event type. Returns the subscription id."""
        ...

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Unknown or repeated ids are a no-op."""
        ...

    async def publish(self, event: Event) -> None:
        """Persist (if enabled), then deliver or buffer the event."""
        ...


class EventBus:
    """Central event dispatcher.

    With persistence enabled every event is appended to the store before any
    subscriber sees it. Delivery is immediate unless batching is configured,
    in which case events accumulate until ``batch_size`` is reached or the
    flush timer fires.
    """

    def __init__(
        self,
        event_store: IEventStore,
        config: EventBusConfig | None = None,
        transform: PayloadTransform | None = None,
    ):
        self._store = event_store
        self._config = config or EventBusConfig()
        self._transform = transform or IdentityTransform()

        self._subscriptions: dict[AgentEventType, list[Subscription]] = {}
        self._subscription_index: dict[str, Subscription] = {}

        self._buffer: list[Event] = []
        self._flush_lock = asyncio.Lock()
        self._flush_task: asyncio.Task | None = None
        self._running = False

        self._failed_events: dict[str, list[str]] = {}  # event id -> subscription ids
        self._delivered = 0
        self._published = 0

        self._replays: dict[str, ReplayJob] = {}
        self._replay_tasks: dict[str, asyncio.Task] = {}

        if (self._config.compression or self._config.encryption) and transform is None:
            logger.warning(
                "Compression/encryption requested but no payload transform given; "
                "events are stored unchanged"
            )

    @property
    def config(self) -> EventBusConfig:
        return self._config

    @property
    def failed_event_ids(self) -> set[str]:
        """Events whose delivery exhausted retries for at least one handler."""
        return set(self._failed_events)

    # Lifecycle

    async def start(self) -> None:
        """Start the recurring flush timer (batching mode only)."""
        self._running = True
        if self._config.batching and self._flush_task is None:
            self._flush_task = asyncio.create_task(self._flush_timer())
        logger.info(
            "EventBus started (batching=%s, persistence=%s)",
            self._config.batching,
            self._config.persistence,
        )

    async def stop(self) -> None:
        """Cancel timers and replays, then deliver whatever is still buffered."""
        self._running = False

        if self._flush_task:
            self._flush_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._flush_task
            self._flush_task = None

        replay_tasks = list(self._replay_tasks.values())
        for task in replay_tasks:
            task.cancel()
        if replay_tasks:
            await asyncio.gather(*replay_tasks, return_exceptions=True)

        await self.flush()
        logger.info("EventBus stopped")

    # Subscriptions

    def subscribe(
        self,
        event_type: AgentEventType | str,
        handler: EventHandler,
        *,
        filter: EventPredicate | None = None,
        priority: int = 0,
    ) -> str:
        """Subscribe a handler to an event type."""
        try:
            event_type = AgentEventType(event_type)
        except ValueError:
            raise ValidationError(f"Unknown event type {event_type!r}") from None
        if not callable(handler):
            raise ValidationError("Handler must be callable")

        subscription = Subscription(
            id=f"sub_{uuid.uuid4().hex[:12]}",
            event_type=event_type,
            handler=handler,
            filter=filter,
            priority=priority,
        )
        subscriptions = self._subscriptions.setdefault(event_type, [])
        subscriptions.append(subscription)
        # Stable sort: equal priorities keep subscription order
        subscriptions.sort(key=lambda sub: -sub.priority)
        self._subscription_index[subscription.id] = subscription

        logger.debug("Subscription created: %s -> %s", event_type.value, subscription.id)
        return subscription.id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns False if it was not active."""
        subscription = self._subscription_index.pop(subscription_id, None)
        if subscription is None:
            return False

        subscription.active = False
        self._subscriptions[subscription.event_type].remove(subscription)
        logger.debug(
            "Subscription removed: %s -> %s", subscription.event_type.value, subscription_id
        )
        return True

    # Publishing

    async def publish(self, event: Event) -> None:
        """Publish one event. StoreError propagates when persistence fails."""
        self._check_issued(event)
        await self._persist(event)
        self._published += 1

        if not self._config.batching:
            await self._dispatch(event, max_retries=self._config.max_retries)
            return

        self._buffer.append(event)
        # A flush already in progress drains events buffered by its own handlers
        if len(self._buffer) >= self._config.batch_size and not self._flush_lock.locked():
            await self.flush()

    async def publish_batch(self, events: Iterable[Event]) -> None:
        """Publish several events, persisting all of them before delivery."""
        events = list(events)
        for event in events:
            self._check_issued(event)
        for event in events:
            await self._persist(event)
        self._published += len(events)

        if not self._config.batching:
            await self._deliver_batch(events)
            return

        self._buffer.extend(events)
        if len(self._buffer) >= self._config.batch_size and not self._flush_lock.locked():
            await self.flush()

    async def flush(self) -> None:
        """Deliver everything buffered, one batch at a time."""
        async with self._flush_lock:
            while self._buffer:
                batch = self._buffer[: self._config.batch_size]
                del self._buffer[: self._config.batch_size]
                await self._deliver_batch(batch)

    # Queries

    async def get_events(self, event_filter: EventFilter | None = None) -> list[Event]:
        return [self._transform.on_read(event) async for event in self._store.get_events(event_filter)]

    async def get_event_by_id(self, event_id: str) -> Event | None:
        event = await self._store.get_event_by_id(event_id)
        return self._transform.on_read(event) if event is not None else None

    async def get_events_by_correlation_id(self, correlation_id: str) -> list[Event]:
        events = await self._store.get_events_by_correlation_id(correlation_id)
        return [self._transform.on_read(event) for event in events]

    def get_stats(self) -> dict[str, Any]:
        """Subscription and delivery statistics."""
        subscriptions_by_type = {
            event_type.value: len(subs)
            for event_type, subs in self._subscriptions.items()
            if subs
        }
        return {
            "total_subscriptions": sum(subscriptions_by_type.values()),
            "subscriptions_by_type": subscriptions_by_type,
            "queue_size": len(self._buffer),
            "is_processing": self._flush_lock.locked(),
            "published_events": self._published,
            "deliveries": self._delivered,
            "failed_events": len(self._failed_events),
            "active_replays": len(self._replay_tasks),
        }

    # Replay

    def replay(
        self,
        from_timestamp: datetime,
        to_timestamp: datetime,
        event_types: list[AgentEventType] | None = None,
    ) -> ReplayJob:
        """Schedule re-delivery of stored events in [from, to] to current subscribers."""
        from_timestamp, to_timestamp = as_utc(from_timestamp), as_utc(to_timestamp)
        if from_timestamp > to_timestamp:
            raise ValidationError("from_timestamp must not be after to_timestamp")

        job = ReplayJob(
            replay_id=f"replay_{uuid.uuid4().hex[:12]}",
            from_timestamp=from_timestamp,
            to_timestamp=to_timestamp,
            event_types=list(event_types) if event_types else None,
        )
        self._replays[job.replay_id] = job

        task = asyncio.create_task(self._run_replay(job))
        self._replay_tasks[job.replay_id] = task
        task.add_done_callback(lambda _t, rid=job.replay_id: self._replay_tasks.pop(rid, None))
        return job

    def get_replay(self, replay_id: str) -> ReplayJob | None:
        return self._replays.get(replay_id)

    async def _run_replay(self, job: ReplayJob) -> None:
        job.status = ReplayStatus.RUNNING
        logger.info("Replay %s started", job.replay_id)
        try:
            try:
                stream = self._store.get_events(
                    EventFilter(
                        event_types=job.event_types,
                        from_timestamp=job.from_timestamp,
                        to_timestamp=job.to_timestamp,
                    )
                )
                events = [self._transform.on_read(event) for event in await stream.to_list()]
            except Exception as e:
                job.errors.append(f"Store read failed: {e}")
                logger.error("Replay %s aborted: %s", job.replay_id, e, exc_info=True)
                job.finish(ReplayStatus.FAILED)
                return

            job.total_events = len(events)
            if not events:
                job.progress = 100.0

            for event in events:
                failures = await self._dispatch(
                    event, max_retries=self._config.max_retries, report_failures=False
                )
                job.errors.extend(str(failure) for failure in failures)
                job.processed_events += 1
                job.progress = job.processed_events / job.total_events * 100

            job.finish(ReplayStatus.COMPLETED)
            logger.info(
                "Replay %s completed: %s events, %s errors",
                job.replay_id,
                job.processed_events,
                len(job.errors),
            )
        except asyncio.CancelledError:
            job.errors.append("Replay cancelled")
            job.finish(ReplayStatus.FAILED)
            raise

    # Internals

    def _check_issued(self, event: Event) -> None:
        if not EventFactory.is_issued(event):
            raise ValidationError("Event was not built by EventFactory")

    async def _persist(self, event: Event) -> None:
        if not self._config.persistence:
            return
        try:
            await self._store.append(self._transform.on_write(event))
        except StoreError:
            logger.error("Failed to persist event %s", event.id, exc_info=True)
            raise

    async def _deliver_batch(self, events: list[Event]) -> None:
        """Deliver a batch; correlation groups run concurrently, each in order."""
        groups: dict[str, list[Event]] = {}
        for event in events:
            groups.setdefault(event.correlation_id, []).append(event)

        async def deliver_group(group: list[Event]) -> None:
            for event in group:
                await self._dispatch(event, max_retries=self._config.max_retries)

        await asyncio.gather(*(deliver_group(group) for group in groups.values()))

    async def _dispatch(
        self,
        event: Event,
        *,
        max_retries: int,
        report_failures: bool = True,
    ) -> list[ExhaustedRetriesError]:
        """Run every matching active subscription, highest priority first."""
        failures = []
        subscriptions = list(self._subscriptions.get(event.type, ()))
        if not subscriptions:
            logger.debug("No subscribers for event type: %s", event.type.value)

        for subscription in subscriptions:
            if not subscription.active or not self._matches(subscription, event):
                continue
            try:
                await self._deliver(subscription, event, max_retries)
            except ExhaustedRetriesError as e:
                failures.append(e)
                if report_failures:
                    await self._report_failure(event, e)
        return failures

    def _matches(self, subscription: Subscription, event: Event) -> bool:
        if subscription.filter is None:
            return True
        try:
            return bool(subscription.filter(event))
        except Exception:
            logger.error(
                "Filter of subscription %s failed on event %s",
                subscription.id,
                event.id,
                exc_info=True,
            )
            return False

    async def _deliver(self, subscription: Subscription, event: Event, max_retries: int) -> None:
        attempts = 1 + max_retries
        failure: DeliveryError | None = None

        for attempt in range(1, attempts + 1):
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                failure = DeliveryError(subscription.id, event.id, e)
                logger.warning("%s (attempt %s/%s)", failure, attempt, attempts)
                if attempt < attempts and self._config.retry_delay > 0:
                    await asyncio.sleep(self._config.retry_delay * attempt)
                continue

            self._delivered += 1
            if attempt > 1:
                logger.info(
                    "Event %s delivered to %s after %s attempts",
                    event.id,
                    subscription.id,
                    attempt,
                )
            return

        raise ExhaustedRetriesError(
            subscription.id, event.id, attempts, str(failure.cause)
        ) from failure

    async def _report_failure(self, event: Event, error: ExhaustedRetriesError) -> None:
        """Mark the event failed and emit ERROR_OCCURRED without retry."""
        if event.id not in self._failed_events:
            logger.error(
                "Event %s marked failed",
                event.id,
                extra={"context": {"event_type": event.type.value, "error": str(error)}},
            )
        self._failed_events.setdefault(event.id, []).append(error.subscription_id)

        error_event = EventFactory.error_occurred(
            component="event_bus",
            message=str(error),
            correlation_id=event.correlation_id,
            metadata={
                "failed_event_id": event.id,
                "failed_event_type": event.type.value,
                "subscription_id": error.subscription_id,
                "attempts": error.attempts,
            },
        )
        try:
            await self._persist(error_event)
        except StoreError:
            # Already logged; the publisher never sees delivery failures
            pass
        await self._dispatch(error_event, max_retries=0, report_failures=False)

    async def _flush_timer(self) -> None:
        """Background timer flushing the buffer every flush_interval."""
        while self._running:
            try:
                await asyncio.sleep(self._config.flush_interval)
                if self._buffer and not self._flush_lock.locked():
                    await self.flush()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Flush timer error: %s", e, exc_info=True)
