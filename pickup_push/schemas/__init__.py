from pickup_push.schemas.push import (
    SendRequest,
    SendResponse,
    SubscribeRequest,
    UnsubscribeRequest,
)

__all__ = [
    "SendRequest",
    "SendResponse",
    "SubscribeRequest",
    "UnsubscribeRequest",
]
