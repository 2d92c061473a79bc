"""
Media engine contract.
The session only talks to audio playback through this interface; events
come back through an EngineListener tagged with the load generation they
belong to.
"""

from abc import ABC, abstractmethod
from typing import Optional


class EngineListener(ABC):
    """Receiver of asynchronous engine events."""

    @abstractmethod
    def on_time_update(self, generation: int, current_time: float) -> None:
        pass

    @abstractmethod
    def on_duration_known(self, generation: int, duration: float) -> None:
        pass

    @abstractmethod
    def on_ended(self, generation: int) -> None:
        pass

    @abstractmethod
    def on_error(self, generation: int, message: str) -> None:
        pass


class MediaEngine(ABC):
    """
    Audio decode/playback capability.

    Commands may raise EngineFailure. ``load`` records the generation so
    every later event for that source can be reported with it.
    """

    def __init__(self):
        self._listener: Optional[EngineListener] = None

    def set_listener(self, listener: Optional[EngineListener]) -> None:
        self._listener = listener

    @abstractmethod
    def load(self, url: str, generation: int) -> None:
        """Assign a new source. Does not start playback."""

    @abstractmethod
    def play(self) -> None:
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def set_current_time(self, seconds: float) -> None:
        pass

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Volume in [0, 1]."""

    @abstractmethod
    def stop(self) -> None:
        """Drop the current source."""
