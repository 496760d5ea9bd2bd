from relay.services.messaging.base import MessagingClient, ProviderOwnership
from relay.services.messaging.freshchat import FreshchatClient

__all__ = ["MessagingClient", "ProviderOwnership", "FreshchatClient"]
