"""Microphone capture that feeds one recognition cycle at a time."""

import pyaudio
import logging
from threading import Event
from typing import Iterator, Optional
from datetime import datetime

from ..models.audio import AudioStats

logger = logging.getLogger(__name__)


def check_microphone_available() -> bool:
    """Check if an input device is available for recording."""
    pa = pyaudio.PyAudio()
    try:
        pa.get_default_input_device_info()
        return True
    except (IOError, OSError) as e:
        logger.debug(f"Microphone not available: {e}")
        return False
    finally:
        pa.terminate()


class AudioCapture:
    """Reads raw 16-bit PCM chunks from the default microphone until stopped."""

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            sample_rate: Audio sample rate (16kHz for speech recognition)
            chunk_size: Size of each audio chunk in samples
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
        """
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        self.stop_event = Event()
        self.is_recording = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0

        # PyAudio instance
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None

    def stop_recording(self) -> None:
        """Ask the chunk generator to finish after the current read."""
        if not self.is_recording:
            logger.debug("No recording in progress")
        self.stop_event.set()

    def __open_audio_stream(self) -> pyaudio.Stream:
        self.pyaudio_instance = pyaudio.PyAudio()
        stream = self.pyaudio_instance.open(
            format=self.format,
            channels=self.channels,
            rate=self.sample_rate,
            input=True,
            frames_per_buffer=self.chunk_size,
            stream_callback=None
        )
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")
        return stream

    def __read_audio_chunk(self, stream: pyaudio.Stream) -> bytes:
        audio_chunk = stream.read(
            self.chunk_size,
            exception_on_overflow=False
        )

        self.total_chunks += 1
        return audio_chunk

    def chunks(self) -> Iterator[bytes]:
        """Yield audio chunks until stop_recording() is called.

        The stream is opened lazily on first iteration and closed when the
        generator finishes or is closed. A capture serves a single cycle, so a
        stop requested before the first read still ends it.
        """
        self.start_time = datetime.now()
        self.total_chunks = 0
        self.is_recording = True
        stream = None
        try:
            stream = self.__open_audio_stream()
            while not self.stop_event.is_set():
                yield self.__read_audio_chunk(stream)
        finally:
            self.is_recording = False
            # Clean up audio resources
            if stream:
                stream.stop_stream()
                stream.close()
            if self.pyaudio_instance:
                self.pyaudio_instance.terminate()
                self.pyaudio_instance = None
            logger.debug(f"Audio stream closed. Total chunks: {self.total_chunks}")

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
        )
