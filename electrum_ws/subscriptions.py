"""
Registry of standing server subscriptions.

A subscription is keyed by its method and, when the first parameter is a
string, by that parameter too. Electrum identifies sub-resources this way
(``blockchain.scripthash`` + scripthash), while a non-string first
parameter such as an options object does not scope the subscription
(``blockchain.headers``).

Entries survive disconnects: they are what the client replays after every
reconnect.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional, Sequence


logger = logging.getLogger("electrum_ws.subscriptions")

SUBSCRIBE_SUFFIX = ".subscribe"
UNSUBSCRIBE_SUFFIX = ".unsubscribe"


def subscription_key(method: str, params: Sequence[Any]) -> str:
    """Derive the routing key for a method and its parameters."""
    if params and isinstance(params[0], str):
        return f"{method}-{params[0]}"
    return method


@dataclass
class Subscription:
    """Entry in the registry tracking one standing subscription."""
    method: str
    callback: Callable[..., Any]
    params: list = field(default_factory=list)

    @property
    def key(self) -> str:
        return subscription_key(self.method, self.params)


class SubscriptionRegistry:
    """
    Insertion ordered map of subscription key to Subscription.

    Re-registering an existing key replaces its callback and parameters but
    keeps its original replay position.
    """

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}

    def add(self, method: str, callback: Callable[..., Any], params: Sequence[Any]) -> Subscription:
        subscription = Subscription(method=method, callback=callback, params=list(params))
        self._subscriptions[subscription.key] = subscription
        logger.debug(f"Registered subscription [{subscription.key}]")
        return subscription

    def remove(self, method: str, params: Sequence[Any]) -> Optional[Subscription]:
        """
        Remove a subscription.

        Returns:
            The removed entry, None if nothing was registered under the key
        """
        key = subscription_key(method, params)
        subscription = self._subscriptions.pop(key, None)
        if subscription is not None:
            logger.debug(f"Removed subscription [{key}]")
        return subscription

    def get(self, key: str) -> Optional[Subscription]:
        return self._subscriptions.get(key)

    def match_push(self, method: str, params: Sequence[Any]) -> Optional[Subscription]:
        """
        Find the subscription a server push belongs to.

        Args:
            method: Push method, e.g. ``blockchain.scripthash.subscribe``
            params: Push parameters

        Returns:
            Matching subscription, None if the push is not for a subscription
        """
        if not method.endswith(SUBSCRIBE_SUFFIX):
            return None
        base = method[:-len(SUBSCRIBE_SUFFIX)]
        return self._subscriptions.get(subscription_key(base, params))

    def snapshot(self) -> list:
        """Entries in registration order, safe to iterate while the registry changes."""
        return list(self._subscriptions.values())

    def clear(self) -> None:
        self._subscriptions.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._subscriptions

    def __iter__(self) -> Iterator[Subscription]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._subscriptions)
