from .dispatcher import NotificationInbox, RewardEventDispatcher, get_realtime_relay
from .relay import InMemoryRealtimeRelay, RealtimeEvent, RealtimeRelay
from .templates import REWARD_EARNED, REWARD_LEVEL_UP, REWARD_REDEEMED

__all__ = [
    "InMemoryRealtimeRelay",
    "NotificationInbox",
    "REWARD_EARNED",
    "REWARD_LEVEL_UP",
    "REWARD_REDEEMED",
    "RealtimeEvent",
    "RealtimeRelay",
    "RewardEventDispatcher",
    "get_realtime_relay",
]
