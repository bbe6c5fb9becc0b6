"""Google Speech-to-Text streaming recognition source."""

import time
import logging
import threading
from typing import Callable, Iterator, List, Optional

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

from .base import AbstractRecognitionSource, RecognitionErrorCode, RecognitionListener
from ..errors import RecognitionError
from ..audio.capture import AudioCapture

logger = logging.getLogger(__name__)


class GoogleSpeechRecognitionSource(AbstractRecognitionSource):
    """Streams microphone audio to Google Speech-to-Text, one utterance per cycle.

    Each arm() opens the microphone and a single-utterance streaming request on
    a background thread. Interim results become partial events; the first final
    result (or the end of the stream) becomes the terminal event. A cycle with no
    speech before max_cycle_seconds ends with NO_MATCH.
    """

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 16000,
                 chunk_size: int = 1024,
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True,
                 max_cycle_seconds: float = 15.0,
                 client=None,
                 capture_factory: Optional[Callable[[], AudioCapture]] = None):
        """Initialize Google streaming source.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            sample_rate: Microphone sample rate in Hz
            chunk_size: Samples per audio chunk
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
            max_cycle_seconds: Upper bound on one listening cycle
            client: Pre-built SpeechClient (skips credential loading)
            capture_factory: Creates the AudioCapture for each cycle
        """
        if not credentials_path and client is None:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.credentials_path = credentials_path
        self.sample_rate = sample_rate
        self.use_enhanced = use_enhanced
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.max_cycle_seconds = max_cycle_seconds
        self.client = client
        self.project_id = None
        self.service_name = "Google Speech-to-Text"
        self._capture_factory = capture_factory or (
            lambda: AudioCapture(sample_rate=sample_rate, chunk_size=chunk_size))

        self._lock = threading.Lock()
        self._cycle_thread: Optional[threading.Thread] = None
        self._cycle_cancel: Optional[threading.Event] = None
        self._cycle_done: Optional[threading.Event] = None
        self._cycle_capture: Optional[AudioCapture] = None
        self._cycle_counter = 0

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        if self.client is not None:
            return True

        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)

        # CRASH if credentials are invalid
        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")

        logger.info("Google Speech-to-Text streaming source initialized successfully")
        return True

    def arm(self, locale: str, partial_results: bool, listener: RecognitionListener) -> None:
        if self.client is None:
            raise RecognitionError(RecognitionErrorCode.CLIENT, "Google Speech client not initialized")

        with self._lock:
            # A cycle that has delivered its terminal event may still be unwinding
            if (self._cycle_thread and self._cycle_thread.is_alive()
                    and not self._cycle_cancel.is_set() and not self._cycle_done.is_set()):
                raise RecognitionError(RecognitionErrorCode.RECOGNIZER_BUSY, "Recognition cycle already active")

            self._cycle_counter += 1
            cancel_event = threading.Event()
            done_event = threading.Event()
            capture = self._capture_factory()
            thread = threading.Thread(
                target=self._run_cycle,
                args=(capture, cancel_event, done_event, locale, partial_results, listener),
                daemon=True,
            )
            thread.name = f"GoogleSpeechCycle-{self._cycle_counter}"
            self._cycle_thread = thread
            self._cycle_cancel = cancel_event
            self._cycle_done = done_event
            self._cycle_capture = capture
            thread.start()

        logger.debug(f"Armed recognition cycle {self._cycle_counter} (locale={locale}, partial={partial_results})")

    def cancel(self) -> None:
        with self._lock:
            if self._cycle_cancel:
                self._cycle_cancel.set()
            if self._cycle_capture:
                self._cycle_capture.stop_recording()

    def join(self, timeout: float = 2.0) -> bool:
        """Wait for the current cycle thread to finish. Returns True if it did."""
        thread = self._cycle_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def destroy(self) -> None:
        self.cancel()
        if not self.join(2.0):
            logger.warning("Recognition cycle thread did not stop cleanly")

    def _build_streaming_config(self, locale: str, partial_results: bool) -> speech.StreamingRecognitionConfig:
        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=locale,
            use_enhanced=self.use_enhanced,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            model="latest_short",
        )
        return speech.StreamingRecognitionConfig(
            config=config,
            interim_results=partial_results,
            single_utterance=True,
        )

    def _bounded_chunks(self, capture: AudioCapture, audio_errors: List[Exception]) -> Iterator[speech.StreamingRecognizeRequest]:
        """Wrap microphone chunks into requests, stopping at the cycle deadline."""
        deadline = time.monotonic() + self.max_cycle_seconds
        try:
            for chunk in capture.chunks():
                if time.monotonic() >= deadline:
                    logger.debug("Recognition cycle reached max duration")
                    break
                yield speech.StreamingRecognizeRequest(audio_content=chunk)
        except (IOError, OSError) as e:
            # Raised on the gRPC request thread; reported after the response loop
            logger.error(f"Microphone read failed: {e}")
            audio_errors.append(e)

    def _run_cycle(self,
                   capture: AudioCapture,
                   cancel_event: threading.Event,
                   done_event: threading.Event,
                   locale: str,
                   partial_results: bool,
                   listener: RecognitionListener) -> None:
        """Run one streaming request and deliver exactly one terminal event."""
        audio_errors: List[Exception] = []
        final_text = ""
        error_code: Optional[RecognitionErrorCode] = None

        try:
            streaming_config = self._build_streaming_config(locale, partial_results)
            requests = self._bounded_chunks(capture, audio_errors)
            responses = self.client.streaming_recognize(
                config=streaming_config,
                requests=requests,
                timeout=self.max_cycle_seconds + 10.0,
            )
            if not cancel_event.is_set():
                listener.on_ready()

            for response in responses:
                if cancel_event.is_set():
                    break
                if response.speech_event_type == speech.StreamingRecognizeResponse.SpeechEventType.END_OF_SINGLE_UTTERANCE:
                    logger.debug("--- END OF UTTERANCE ---")
                    capture.stop_recording()
                for result in response.results:
                    if not result.alternatives:
                        continue
                    text = result.alternatives[0].transcript
                    if result.is_final:
                        final_text = text
                        capture.stop_recording()
                    elif partial_results and not cancel_event.is_set():
                        listener.on_partial(text)
                if final_text:
                    break
        except gax_exceptions.DeadlineExceeded as e:
            logger.error(f"Google STT streaming deadline exceeded: {e}")
            error_code = RecognitionErrorCode.NETWORK_TIMEOUT
        except (gax_exceptions.PermissionDenied, gax_exceptions.Unauthenticated) as e:
            logger.error(f"Google STT rejected credentials: {e}")
            error_code = RecognitionErrorCode.INSUFFICIENT_PERMISSIONS
        except gax_exceptions.ServiceUnavailable as e:
            logger.error(f"Google STT service unavailable: {e}")
            error_code = RecognitionErrorCode.NETWORK
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT API call error: {e}")
            error_code = RecognitionErrorCode.SERVER
        except (IOError, OSError) as e:
            logger.error(f"Audio error during recognition: {e}")
            error_code = RecognitionErrorCode.AUDIO
        except Exception as e:
            logger.error(f"Unexpected recognition failure: {e}", exc_info=True)
            error_code = RecognitionErrorCode.CLIENT
        finally:
            capture.stop_recording()

        if cancel_event.is_set():
            logger.debug("Recognition cycle cancelled; dropping terminal event")
            return

        if error_code is None and audio_errors:
            error_code = RecognitionErrorCode.AUDIO

        done_event.set()

        if error_code is not None:
            listener.on_error(error_code)
        elif final_text.strip():
            logger.debug(f"✅ TRANSCRIPTION SUCCESS: '{final_text}'")
            listener.on_final(final_text)
        else:
            logger.debug("--- NO SPEECH DETECTED ---")
            listener.on_error(RecognitionErrorCode.NO_MATCH)
