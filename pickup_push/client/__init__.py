"""Browser-side notification controller."""

from pickup_push.client.controller import (
    ActivateEvent,
    ControllerConfig,
    ControllerState,
    InstallEvent,
    NotificationClickEvent,
    NotificationController,
    NotificationOptions,
    PushEvent,
    RawPayload,
    StructuredPayload,
    build_notification,
    parse_push_payload,
    resolve_target_url,
)

__all__ = [
    "ActivateEvent",
    "ControllerConfig",
    "ControllerState",
    "InstallEvent",
    "NotificationClickEvent",
    "NotificationController",
    "NotificationOptions",
    "PushEvent",
    "RawPayload",
    "StructuredPayload",
    "build_notification",
    "parse_push_payload",
    "resolve_target_url",
]
