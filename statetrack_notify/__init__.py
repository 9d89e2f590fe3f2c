"""
statetrack Notify - cooldown and novelty policy for region notifications.
"""

from statetrack_notify.gate import (
    DEFAULT_COOLDOWN_S,
    LAST_NOTIFIED_PREFIX,
    LAST_NOTIFIED_REGION_KEY,
    CooldownLedger,
    NotificationGate,
    NotificationPolicy,
)

__all__ = [
    'NotificationGate',
    'NotificationPolicy',
    'CooldownLedger',
    'DEFAULT_COOLDOWN_S',
    'LAST_NOTIFIED_PREFIX',
    'LAST_NOTIFIED_REGION_KEY',
]
