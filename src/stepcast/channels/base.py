"""Abstract base class for outbound notifiers.

A notifier delivers a text payload to a destination. The dispatch engine
only ever talks to this interface, so tests can inject a fake that records
calls and returns scripted outcomes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from stepcast.models import SendResult


class Notifier(ABC):
    """Outbound delivery capability."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique notifier name (e.g. 'telegram')."""
        ...

    async def start(self) -> None:
        """Opens connections. Called once before the first send."""

    async def stop(self) -> None:
        """Releases connections."""

    @abstractmethod
    async def send(self, destination: str, text: str) -> SendResult:
        """Delivers ``text`` to ``destination``.

        Args:
            destination: Channel/chat identifier.
            text: Message body.

        Returns:
            SendResult; ``ok`` is False with a reason when delivery failed.
        """
        ...
