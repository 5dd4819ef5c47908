from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..errors import UnsupportedCapability

try:
    import speech_recognition as sr  # type: ignore
except ImportError:
    sr = None  # type: ignore

logger = logging.getLogger("newsspeak")


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


@dataclass(frozen=True)
class RecognitionOptions:
    lang: str = "en-US"
    interim_results: bool = True
    continuous: bool = False
    max_alternatives: int = 1


class RecognitionListener(ABC):
    """Callbacks a recognizer delivers for one session."""

    @abstractmethod
    def on_result(self, transcript: str, is_final: bool) -> None:
        pass

    @abstractmethod
    def on_error(self, error: str) -> None:
        pass

    @abstractmethod
    def on_end(self) -> None:
        pass


class Recognizer(ABC):
    """Speech-to-text platform capability."""

    @abstractmethod
    def start(self, options: RecognitionOptions, listener: RecognitionListener) -> None:
        pass

    @abstractmethod
    def abort(self) -> None:
        pass


class _Session(RecognitionListener):
    def __init__(self, capture: "VoiceQueryCapture", session_id: int):
        self.capture = capture
        self.session_id = session_id

    def on_result(self, transcript: str, is_final: bool) -> None:
        self.capture._handle_result(self.session_id, transcript, is_final)

    def on_error(self, error: str) -> None:
        self.capture._handle_error(self.session_id, error)

    def on_end(self) -> None:
        self.capture._handle_end(self.session_id)


class VoiceQueryCapture:
    """Turns one spoken phrase into a search.

    idle -> listening -> idle; a final transcript calls `on_search`, while an
    error or an end without a result just returns to idle.
    """

    def __init__(
        self,
        recognizer: Optional[Recognizer],
        on_search: Callable[[str], None],
        on_change: Optional[Callable[["VoiceQueryCapture"], None]] = None,
        options: Optional[RecognitionOptions] = None,
    ):
        self.recognizer = recognizer
        self.on_search = on_search
        self.on_change = on_change
        self.options = options or RecognitionOptions()
        self.state = VoiceState.IDLE
        self.transcript = ""
        self.last_error: Optional[str] = None
        self._session_id = 0
        self._lock = threading.RLock()

    @property
    def listening(self) -> bool:
        return self.state is VoiceState.LISTENING

    @property
    def supported(self) -> bool:
        return self.recognizer is not None

    def start(self) -> None:
        if self.recognizer is None:
            raise UnsupportedCapability("Speech recognition")

        with self._lock:
            if self.state is VoiceState.LISTENING:
                logger.debug("Restarting voice capture session %d", self._session_id)
                self.recognizer.abort()
            self._session_id += 1
            session = _Session(self, self._session_id)
            self.transcript = ""
            self.last_error = None
            self.state = VoiceState.LISTENING
        self._changed()

        try:
            self.recognizer.start(self.options, session)
        except Exception as e:
            logger.error("Failed to start speech recognition: %s", e)
            self._handle_error(session.session_id, str(e))

    def stop(self) -> None:
        with self._lock:
            if self.state is not VoiceState.LISTENING:
                return
            self._session_id += 1
            self.state = VoiceState.IDLE
        if self.recognizer is not None:
            self.recognizer.abort()
        self._changed()

    def _is_current(self, session_id: int) -> bool:
        return session_id == self._session_id and self.state is VoiceState.LISTENING

    def _handle_result(self, session_id: int, transcript: str, is_final: bool) -> None:
        with self._lock:
            if not self._is_current(session_id):
                return
            self.transcript = transcript
            if is_final:
                self.state = VoiceState.IDLE
        self._changed()

        term = transcript.strip()
        if is_final and term:
            logger.info("Voice search: %s", term)
            self.on_search(term)

    def _handle_error(self, session_id: int, error: str) -> None:
        with self._lock:
            if not self._is_current(session_id):
                return
            self.state = VoiceState.IDLE
            self.last_error = error
        logger.warning("Speech recognition error: %s", error)
        self._changed()

    def _handle_end(self, session_id: int) -> None:
        with self._lock:
            if not self._is_current(session_id):
                return
            self.state = VoiceState.IDLE
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)


class SpeechRecognitionRecognizer(Recognizer):
    """Microphone capture recognised with the Google Web Speech API."""

    def __init__(self, listen_timeout: float = 5.0, phrase_time_limit: float = 10.0):
        if sr is None:
            raise UnsupportedCapability("Speech recognition")
        self.recognizer = sr.Recognizer()
        self.listen_timeout = listen_timeout
        self.phrase_time_limit = phrase_time_limit
        self._aborted = threading.Event()

    def start(self, options: RecognitionOptions, listener: RecognitionListener) -> None:
        self._aborted = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(options, listener, self._aborted),
            name="voice-capture",
            daemon=True,
        )
        thread.start()

    def abort(self) -> None:
        self._aborted.set()

    def _run(
        self,
        options: RecognitionOptions,
        listener: RecognitionListener,
        aborted: threading.Event,
    ) -> None:
        try:
            with sr.Microphone() as source:
                self.recognizer.adjust_for_ambient_noise(source, duration=0.3)
                audio = self.recognizer.listen(
                    source,
                    timeout=self.listen_timeout,
                    phrase_time_limit=self.phrase_time_limit,
                )
            if aborted.is_set():
                return
            text = self.recognizer.recognize_google(audio, language=options.lang)
            if not aborted.is_set():
                listener.on_result(text, True)
        except sr.WaitTimeoutError:
            if not aborted.is_set():
                listener.on_error("no-speech")
        except sr.UnknownValueError:
            if not aborted.is_set():
                listener.on_end()
        except (sr.RequestError, OSError, AttributeError) as e:
            if not aborted.is_set():
                listener.on_error(str(e))


def default_recognizer() -> Optional[Recognizer]:
    """Return the platform recognizer, or None when speech input is unavailable."""
    if sr is None:
        logger.info("SpeechRecognition is not installed; voice search disabled")
        return None
    try:
        sr.Microphone.list_microphone_names()
    except (AttributeError, OSError) as e:
        logger.info("No microphone backend available; voice search disabled: %s", e)
        return None
    return SpeechRecognitionRecognizer()
