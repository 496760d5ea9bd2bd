from relay.schemas.events import EventKind, InboundEvent
from relay.schemas.freshchat import FreshchatWebhookPayload

__all__ = ["EventKind", "InboundEvent", "FreshchatWebhookPayload"]
