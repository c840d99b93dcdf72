"""
Hurupay Event Records

Observable records emitted by the relay, and the bus that delivers them.

Records are part of the relay's contract surface: indexers and relayers rely
on their names and fields. They are emitted only after an operation has fully
succeeded, so a record never describes a state change that was rolled back.

Usage
─────

    bus = EventBus()
    log = EventLog()
    bus.subscribe(Transfer)(log.record)

    @bus.subscribe(FeesWithdrawn)
    def notify_treasury(event):
        ...

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all relay records.

    Each record has a unique id, emission timestamp and the correlation id of
    the operation that produced it.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def payload(self) -> Dict[str, Any]:
        """Record fields without the envelope metadata."""
        envelope = {"event_id", "event_timestamp", "correlation_id"}
        return {k: v for k, v in asdict(self).items() if k not in envelope}

    def digest(self) -> str:
        """Deterministic digest over the record payload."""
        canonical = json.dumps(
            {"event_type": self.event_type, **self.payload()},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(canonical.encode()).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# RELAY RECORDS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Transfer(Event):
    """Funds moved from ``sender`` to ``recipient``; ``fee`` was retained."""
    sender: str = ""
    recipient: str = ""
    net_amount: int = 0
    fee: int = 0


@dataclass
class WithdrawalProcessed(Event):
    """A holder cashed out ``net_amount`` to an off-ramp address."""
    sender: str = ""
    net_amount: int = 0
    fee: int = 0


@dataclass
class FeeUpdated(Event):
    old: int = 0
    new: int = 0


@dataclass
class MinimumFeeUpdated(Event):
    old: Optional[int] = None
    new: Optional[int] = None


@dataclass
class FeesWithdrawn(Event):
    admin: str = ""
    amount: int = 0


@dataclass
class StrayAssetRecovered(Event):
    asset: str = ""
    admin: str = ""
    amount: int = 0


@dataclass
class AdminTransferInitiated(Event):
    current_admin: str = ""
    pending_admin: str = ""


@dataclass
class AdminTransferCompleted(Event):
    previous_admin: str = ""
    new_admin: str = ""


@dataclass
class AdminTransferCancelled(Event):
    current_admin: str = ""
    cancelled_admin: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory synchronous event bus.

    Handlers run in priority order on the publishing thread. A failing handler
    is counted and reported through ``on_error``; it never affects the
    operation that emitted the record.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types (all types if none).

        Example:
            @bus.subscribe(Transfer, priority=10)
            def index_transfer(event):
                pass
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.warning("%s", error)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# EVENT LOG
# ════════════════════════════════════════════════════════════════════════════


class EventLog:
    """Append-only, queryable list of emitted records."""

    def __init__(self):
        self._events: List[Event] = []
        self._lock = threading.Lock()

    def record(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    def attach(self, bus: EventBus) -> "EventLog":
        """Subscribe to every record on ``bus``."""
        bus.subscribe(priority=100)(self.record)
        return self

    def events(self, event_type: Optional[Type[Event]] = None) -> List[Event]:
        with self._lock:
            events = list(self._events)
        if event_type is not None:
            events = [e for e in events if isinstance(e, event_type)]
        return events

    def last(self, event_type: Optional[Type[Event]] = None) -> Optional[Event]:
        events = self.events(event_type)
        return events[-1] if events else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
