"""Account lifecycle events and the in-process event bus.

Services publish typed, immutable events after their state change is
committed. Consumers (email delivery, audit, analytics) subscribe by event
type. Publishing is fire-and-forget: each handler runs in its own asyncio
task and a failing handler is logged, never raised to the publisher.

Event catalogue:
- AccountRegistered: new account persisted
- AccountUpdated: profile or credential update applied (always emitted)
- AccountPasswordChanged: update() applied a new credential
- AccountVerified: email verification completed
- VerificationRequested: verification token issued (carries the raw token)
- PasswordResetRequested: reset token issued (carries the raw token)
- PasswordResetCompleted: credential replaced through a reset token
- AccountAuthenticated: credentials accepted and a session issued
"""

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import ClassVar, TypeVar

import structlog

from turnstile.models.account import Account

logger = structlog.get_logger()


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class AccountEvent:
    """Base class for lifecycle events.

    Attributes:
        account: The account the event is about.
    """

    name: ClassVar[str] = "account.event"

    account: Account


@dataclass(frozen=True)
class AccountRegistered(AccountEvent):
    name: ClassVar[str] = "account.registered"


@dataclass(frozen=True)
class AccountUpdated(AccountEvent):
    name: ClassVar[str] = "account.updated"


@dataclass(frozen=True)
class AccountPasswordChanged(AccountEvent):
    name: ClassVar[str] = "account.password_changed"


@dataclass(frozen=True)
class AccountVerified(AccountEvent):
    name: ClassVar[str] = "account.verified"


@dataclass(frozen=True)
class VerificationRequested(AccountEvent):
    """Verification token issued.

    Attributes:
        token: Raw token value for out-of-band delivery to the account owner.
    """

    name: ClassVar[str] = "account.verification_requested"

    token: str = field(repr=False, default="")


@dataclass(frozen=True)
class PasswordResetRequested(AccountEvent):
    """Password reset token issued.

    Attributes:
        token: Raw token value for out-of-band delivery to the account owner.
    """

    name: ClassVar[str] = "account.password_reset_requested"

    token: str = field(repr=False, default="")


@dataclass(frozen=True)
class PasswordResetCompleted(AccountEvent):
    name: ClassVar[str] = "account.password_reset_completed"


@dataclass(frozen=True)
class AccountAuthenticated(AccountEvent):
    name: ClassVar[str] = "account.authenticated"


# =============================================================================
# Bus
# =============================================================================

E = TypeVar("E", bound=AccountEvent)
EventHandler = Callable[[E], Awaitable[None]]


class EventBus:
    """In-process publish/subscribe bus for AccountEvents.

    Handlers subscribed to a base class also receive its subclasses.
    ``publish`` must be called from a running event loop.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[AccountEvent], list[EventHandler]] = defaultdict(
            list
        )
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: type[E], handler: EventHandler[E]) -> None:
        """Register an async handler for an event type.

        Args:
            event_type: Event class to listen for.
            handler: Coroutine function called with each matching event.
        """
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[E], handler: EventHandler[E]) -> None:
        """Remove a previously registered handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: AccountEvent) -> None:
        """Dispatch an event to every matching handler without waiting.

        Args:
            event: The event to publish.
        """
        handlers = [
            handler
            for event_type, registered in self._handlers.items()
            if isinstance(event, event_type)
            for handler in registered
        ]
        if not handlers:
            logger.debug("event_unhandled", event_name=event.name)
            return

        logger.info(
            "event_published",
            event_name=event.name,
            account_id=str(event.account.id),
            handlers=len(handlers),
        )
        for handler in handlers:
            task = asyncio.create_task(self._dispatch(handler, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for all in-flight handlers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    @staticmethod
    async def _dispatch(handler: EventHandler, event: AccountEvent) -> None:
        try:
            await handler(event)
        except Exception:  # noqa: BLE001
            # Fire-and-forget: the state change is already committed.
            logger.exception("event_handler_failed", event_name=event.name)
