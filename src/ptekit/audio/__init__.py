"""Audio capture, codec and playback for live sessions."""

from ptekit.audio.base import AudioDeviceError, AudioSink, AudioSource, DeviceBusyError
from ptekit.audio.capture import CaptureStream
from ptekit.audio.codec import AudioCodec, AudioCodecError
from ptekit.audio.frame import AudioFrame
from ptekit.audio.mock import MockAudioSink, MockAudioSource, MockCall
from ptekit.audio.playback import PlaybackQueue
from ptekit.audio.resample import LinearResampler

__all__ = [
    # Core types
    "AudioFrame",
    "AudioCodec",
    "AudioCodecError",
    "LinearResampler",
    # Devices
    "AudioSource",
    "AudioSink",
    "AudioDeviceError",
    "DeviceBusyError",
    # Pipeline
    "CaptureStream",
    "PlaybackQueue",
    # Mocks
    "MockAudioSink",
    "MockAudioSource",
    "MockCall",
]
