"""
Background notification controller for subscribed browsers.

Python model of the service worker shipped as static/sw.js. The hosting
browser drives it with lifecycle events; every asynchronous step a handler
starts is registered on its event with wait_until(), and the host must await
event.until_settled() before it treats the event as finished.

    INSTALLING --install--> ACTIVATING --activate--> ACTIVE
                                                     |  push
                                                     |  notificationclick
"""

import asyncio
import json
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from urllib.parse import urljoin, urlsplit, urlunsplit

from pickup_push.errors import ControllerStateError

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Pickup"
DEFAULT_BODY = "New notification from Pickup"
DEFAULT_TAG = "pickup-notification"
FALLBACK_URL = "/dashboard"
VIBRATE_PATTERN = (100, 50, 100)
CLOSE_ACTION = "close"


class ControllerState(str, Enum):
    INSTALLING = "installing"
    ACTIVATING = "activating"
    ACTIVE = "active"


@dataclass(frozen=True)
class ControllerConfig:
    default_title: str = DEFAULT_TITLE
    default_body: str = DEFAULT_BODY
    default_tag: str = DEFAULT_TAG
    fallback_url: str = FALLBACK_URL
    vibrate: tuple[int, ...] = VIBRATE_PATTERN


# Payload variants

@dataclass(frozen=True)
class StructuredPayload:
    title: Any = None
    body: Any = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RawPayload:
    text: str


def parse_push_payload(raw: bytes | str) -> StructuredPayload | RawPayload:
    """Decode a push message as JSON, falling back to its plain text.

    Valid JSON that is not an object yields an empty structured payload.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        decoded = json.loads(text)
    except ValueError as e:
        logger.error("Failed to parse push data: %s", e)
        return RawPayload(text)

    if not isinstance(decoded, dict):
        return StructuredPayload()

    data = decoded.get("data")
    return StructuredPayload(
        title=decoded.get("title"),
        body=decoded.get("body"),
        data=data if isinstance(data, dict) else {},
    )


@dataclass
class NotificationOptions:
    body: str
    vibrate: list[int]
    data: dict[str, Any]
    tag: str
    renotify: bool = True
    require_interaction: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Options in the shape showNotification() takes."""
        return {
            "body": self.body,
            "vibrate": list(self.vibrate),
            "data": self.data,
            "tag": self.tag,
            "renotify": self.renotify,
            "requireInteraction": self.require_interaction,
        }


def build_notification(
    payload: StructuredPayload | RawPayload,
    config: ControllerConfig = ControllerConfig(),
) -> tuple[str, NotificationOptions]:
    """Title and options for a delivered payload.

    The tag is the event id, so a repeat delivery for the same event
    replaces the earlier notification instead of stacking.
    """
    if isinstance(payload, RawPayload):
        title = config.default_title
        body = payload.text or config.default_body
        data: dict[str, Any] = {}
    else:
        title = str(payload.title) if payload.title else config.default_title
        body = str(payload.body) if payload.body else config.default_body
        data = payload.data

    tag = data.get("eventId") or config.default_tag
    return title, NotificationOptions(
        body=body,
        vibrate=list(config.vibrate),
        data=data,
        tag=str(tag),
    )


def resolve_target_url(data: dict[str, Any] | None, origin: str, fallback: str = FALLBACK_URL) -> str:
    url = (data or {}).get("url") or fallback
    target = urlsplit(urljoin(origin, str(url)))
    # A bare origin resolves to its root path
    if target.netloc and not target.path:
        target = target._replace(path="/")
    return urlunsplit(target)


# Lifecycle events

class ExtendableEvent:
    """Lifecycle event whose completion waits for registered work."""

    type = "extendable"

    def __init__(self):
        self._pending: list[asyncio.Future] = []
        self._settled = False

    def wait_until(self, work: Awaitable[Any]) -> None:
        if self._settled:
            raise ControllerStateError(f"{self.type} event already settled")
        self._pending.append(asyncio.ensure_future(work))

    @property
    def pending(self) -> int:
        return sum(1 for f in self._pending if not f.done())

    async def until_settled(self) -> None:
        """Wait for all registered work; re-raise the first failure."""
        index = 0
        errors: list[BaseException] = []
        # Work may register more work while it runs
        while index < len(self._pending):
            future = self._pending[index]
            index += 1
            try:
                await future
            except Exception as e:
                errors.append(e)
        self._settled = True
        if errors:
            raise errors[0]


class InstallEvent(ExtendableEvent):
    type = "install"


class ActivateEvent(ExtendableEvent):
    type = "activate"


class PushMessageData:
    """Body of a delivered push message."""

    def __init__(self, raw: bytes | str):
        self._raw = raw.encode("utf-8") if isinstance(raw, str) else raw

    def bytes(self) -> bytes:
        return self._raw

    def text(self) -> str:
        return self._raw.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text())


class PushEvent(ExtendableEvent):
    type = "push"

    def __init__(self, data: PushMessageData | bytes | str | None = None):
        super().__init__()
        if data is not None and not isinstance(data, PushMessageData):
            data = PushMessageData(data)
        self.data = data


class Notification(Protocol):
    title: str
    data: dict[str, Any] | None

    def close(self) -> None: ...


class NotificationClickEvent(ExtendableEvent):
    type = "notificationclick"

    def __init__(self, notification: Notification, action: str = ""):
        super().__init__()
        self.notification = notification
        self.action = action


# Host contract

class WindowClient(Protocol):
    url: str

    async def focus(self) -> Any: ...


class ServiceWorkerHost(Protocol):
    """What the browser provides to the controller."""

    origin: str

    async def skip_waiting(self) -> None: ...

    async def claim_clients(self) -> None: ...

    async def show_notification(self, title: str, options: dict[str, Any]) -> None: ...

    async def match_window_clients(self, include_uncontrolled: bool = False) -> list[WindowClient]: ...

    async def open_window(self, url: str) -> WindowClient | None: ...


class NotificationController:
    """Turns delivered push payloads into notifications and routes clicks."""

    def __init__(self, host: ServiceWorkerHost, config: ControllerConfig | None = None):
        self.host = host
        self.config = config or ControllerConfig()
        self.state = ControllerState.INSTALLING
        self._handlers = {
            InstallEvent.type: self.on_install,
            ActivateEvent.type: self.on_activate,
            PushEvent.type: self.on_push,
            NotificationClickEvent.type: self.on_notification_click,
        }

    def dispatch(self, event: ExtendableEvent) -> ExtendableEvent:
        """Run the handler for event and hand the event back for awaiting."""
        handler = self._handlers.get(event.type)
        if handler is None:
            raise ControllerStateError(f"No handler for {event.type} events")
        handler(event)
        return event

    def _require(self, expected: ControllerState, event: ExtendableEvent) -> None:
        if self.state is not expected:
            raise ControllerStateError(
                f"Cannot handle {event.type} while {self.state.value}"
            )

    def on_install(self, event: InstallEvent) -> None:
        self._require(ControllerState.INSTALLING, event)
        logger.info("Service worker installing")
        event.wait_until(self._install())

    async def _install(self) -> None:
        # Take over without waiting for old contexts to close
        await self.host.skip_waiting()
        self.state = ControllerState.ACTIVATING

    def on_activate(self, event: ActivateEvent) -> None:
        self._require(ControllerState.ACTIVATING, event)
        logger.info("Service worker activating")
        event.wait_until(self._activate())

    async def _activate(self) -> None:
        await self.host.claim_clients()
        self.state = ControllerState.ACTIVE

    def on_push(self, event: PushEvent) -> None:
        self._require(ControllerState.ACTIVE, event)
        if event.data is None:
            logger.info("No data in push event")
            return

        payload = parse_push_payload(event.data.bytes())
        title, options = build_notification(payload, self.config)
        event.wait_until(self.host.show_notification(title, options.to_dict()))

    def on_notification_click(self, event: NotificationClickEvent) -> None:
        self._require(ControllerState.ACTIVE, event)
        event.notification.close()

        if event.action == CLOSE_ACTION:
            return

        target = resolve_target_url(
            event.notification.data, self.host.origin, self.config.fallback_url
        )
        event.wait_until(self._focus_or_open(target))

    async def _focus_or_open(self, url: str) -> WindowClient | None:
        try:
            window_clients = await self.host.match_window_clients(include_uncontrolled=True)
            for client in window_clients:
                if client.url == url and callable(getattr(client, "focus", None)):
                    return await client.focus()

            open_window = getattr(self.host, "open_window", None)
            if open_window is None:
                return None
            return await open_window(url)
        except Exception:
            logger.exception("Failed to route notification click to %s", url)
            raise
