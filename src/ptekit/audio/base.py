"""Abstract audio device interfaces used by the session core.

The session never talks to a concrete device API.  Platform adapters
(``ptekit.audio.local`` for the system sound card, ``ptekit.audio.mock``
for tests) implement these two ABCs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ptekit.audio.frame import AudioFrame


class AudioDeviceError(Exception):
    """An audio device could not be opened, read or written."""


class DeviceBusyError(AudioDeviceError):
    """The device is still held by another capture or playback stream."""


class AudioSource(ABC):
    """Produces fixed-size frames of captured audio.

    ``read_frame()`` suspends until the next frame of ``frame_samples``
    samples is available, so a caller looping over it naturally runs at
    the device cadence.
    """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Native capture rate in Hz."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def open(self, frame_samples: int) -> None:
        """Acquire the device.

        Raises:
            DeviceBusyError: If the device is still held.
        """
        ...

    @abstractmethod
    async def read_frame(self) -> AudioFrame:
        """Return the next captured frame.

        Raises:
            AudioDeviceError: If the device failed or has been closed.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the device.  Safe to call more than once."""
        ...


class AudioSink(ABC):
    """Plays decoded audio frames one at a time."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def open(self, sample_rate: int) -> None: ...

    @abstractmethod
    async def play(self, frame: AudioFrame) -> None:
        """Play *frame* and return once it has finished playing."""
        ...

    async def abort(self) -> None:  # noqa: B027
        """Stop whatever is currently playing.  Default is a no-op."""

    @abstractmethod
    async def close(self) -> None:
        """Release the output device.  Safe to call more than once."""
        ...
