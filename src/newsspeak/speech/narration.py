from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from ..config import PREFERRED_VOICES
from ..datamodels import Article
from ..errors import UnsupportedCapability

try:
    import pyttsx3  # type: ignore
except ImportError:
    pyttsx3 = None  # type: ignore

logger = logging.getLogger("newsspeak")

BASE_PITCH = 1.2
FALLBACK_PITCH = 1.4


class NarrationState(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    lang: str


@dataclass
class Utterance:
    text: str
    lang: str = "en-US"
    rate: float = 0.9
    pitch: float = BASE_PITCH
    volume: float = 0.8
    voice: Optional[Voice] = None


class Synthesizer(ABC):
    """Text-to-speech platform capability."""

    @abstractmethod
    def get_voices(self) -> List[Voice]:
        pass

    @abstractmethod
    def on_voices_changed(self, callback: Callable[[], None]) -> None:
        """Set the callback fired once the voice list has loaded."""
        pass

    @abstractmethod
    def speak(
        self,
        utterance: Utterance,
        on_end: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> None:
        pass

    @abstractmethod
    def cancel(self) -> None:
        pass


def compose_narration(article: Article) -> str:
    source = article.source_name or "unknown source"
    description = article.description or "No additional details available."
    return f"Breaking news from {source}. {article.title}. {description}"


def _is_english(voice: Voice) -> bool:
    return voice.lang.lower().startswith("en")


def select_voice(
    voices: Sequence[Voice], preferred: Sequence[str] = PREFERRED_VOICES
) -> Tuple[Optional[Voice], float]:
    """Pick a narration voice and the pitch to use with it.

    Preferred names first, then any English voice that calls itself female,
    then any English voice with the pitch raised.
    """
    english = [v for v in voices if _is_english(v)]
    for pattern in preferred:
        for voice in english:
            if pattern in voice.name:
                return voice, BASE_PITCH

    for voice in english:
        name = voice.name.lower()
        if "female" in name or "woman" in name:
            return voice, BASE_PITCH

    if english:
        return english[0], FALLBACK_PITCH
    return None, BASE_PITCH


class ArticleNarrator:
    """Reads one article aloud at a time; `toggle` doubles as the stop button."""

    def __init__(
        self,
        synthesizer: Optional[Synthesizer],
        preferred_voices: Sequence[str] = PREFERRED_VOICES,
        on_change: Optional[Callable[["ArticleNarrator"], None]] = None,
        rate: float = 0.9,
        volume: float = 0.8,
    ):
        self.synthesizer = synthesizer
        self.preferred_voices = list(preferred_voices)
        self.on_change = on_change
        self.rate = rate
        self.volume = volume
        self.state = NarrationState.IDLE
        self.current_url: Optional[str] = None
        self._session_id = 0
        self._pending: Optional[Utterance] = None
        self._lock = threading.RLock()

    @property
    def speaking(self) -> bool:
        return self.state is NarrationState.SPEAKING

    @property
    def supported(self) -> bool:
        return self.synthesizer is not None

    def toggle(self, article: Article) -> bool:
        """Stop if speaking, otherwise start narrating `article`.

        Returns True when a new narration was started.
        """
        if self.synthesizer is None:
            raise UnsupportedCapability("Speech synthesis")

        with self._lock:
            if self.state is NarrationState.SPEAKING:
                self._cancel_locked()
                stopped = True
            else:
                stopped = False
        if stopped:
            self._changed()
            return False

        self.synthesizer.cancel()
        utterance = Utterance(
            text=compose_narration(article), rate=self.rate, volume=self.volume
        )
        with self._lock:
            self._session_id += 1
            session_id = self._session_id
            self.state = NarrationState.SPEAKING
            self.current_url = article.url
            voices = self.synthesizer.get_voices()
            if not voices:
                self._pending = utterance
        self._changed()

        if voices:
            self._speak(session_id, utterance, voices)
        else:
            logger.debug("Voice list not loaded yet; deferring narration")
            self.synthesizer.on_voices_changed(self._on_voices_changed)
        return True

    def stop(self) -> None:
        with self._lock:
            if self.state is not NarrationState.SPEAKING:
                return
            self._cancel_locked()
        self._changed()

    def _cancel_locked(self) -> None:
        self._session_id += 1
        self._pending = None
        self.state = NarrationState.IDLE
        self.current_url = None
        self.synthesizer.cancel()

    def _on_voices_changed(self) -> None:
        with self._lock:
            utterance = self._pending
            session_id = self._session_id
            voices = self.synthesizer.get_voices()
            if utterance is None:
                return
            self._pending = None
        self._speak(session_id, utterance, voices)

    def _speak(self, session_id: int, utterance: Utterance, voices: List[Voice]) -> None:
        voice, pitch = select_voice(voices, self.preferred_voices)
        utterance = replace(utterance, voice=voice, pitch=pitch)
        logger.debug(
            "Narrating with voice %s (pitch %.1f)", voice.name if voice else None, pitch
        )
        try:
            self.synthesizer.speak(
                utterance,
                on_end=lambda: self._finish(session_id),
                on_error=lambda error: self._fail(session_id, error),
            )
        except Exception as e:
            logger.error("Speech synthesis failed to start: %s", e)
            self._fail(session_id, str(e))

    def _finish(self, session_id: int) -> None:
        with self._lock:
            if session_id != self._session_id or self.state is not NarrationState.SPEAKING:
                return
            self.state = NarrationState.IDLE
            self.current_url = None
        self._changed()

    def _fail(self, session_id: int, error: str) -> None:
        logger.warning("Narration error: %s", error)
        self._finish(session_id)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)


def _voice_lang(raw) -> str:
    languages = getattr(raw, "languages", None) or []
    for lang in languages:
        if isinstance(lang, bytes):
            lang = lang.decode("utf-8", "ignore")
        lang = "".join(c for c in str(lang) if c.isprintable()).strip()
        if lang:
            return lang.replace("_", "-")
    # Some drivers leave languages empty but put the locale in the id.
    voice_id = str(getattr(raw, "id", ""))
    for token in voice_id.replace("\\", "/").split("/"):
        if token.lower().startswith("en"):
            return token
    return ""


class Pyttsx3Synthesizer(Synthesizer):
    """Offline text-to-speech through pyttsx3, each utterance on its own thread."""

    def __init__(self) -> None:
        if pyttsx3 is None:
            raise UnsupportedCapability("Speech synthesis")
        self.engine = pyttsx3.init()
        self._voices: Optional[List[Voice]] = None
        self._lock = threading.Lock()

    def get_voices(self) -> List[Voice]:
        if self._voices is None:
            self._voices = [
                Voice(id=str(v.id), name=str(v.name or v.id), lang=_voice_lang(v))
                for v in self.engine.getProperty("voices")
            ]
        return list(self._voices)

    def on_voices_changed(self, callback: Callable[[], None]) -> None:
        # pyttsx3 enumerates voices synchronously; the list is already final.
        callback()

    def speak(
        self,
        utterance: Utterance,
        on_end: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> None:
        thread = threading.Thread(
            target=self._run, args=(utterance, on_end, on_error), name="narration", daemon=True
        )
        thread.start()

    def _run(
        self,
        utterance: Utterance,
        on_end: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> None:
        with self._lock:
            try:
                base_rate = self.engine.getProperty("rate") or 200
                self.engine.setProperty("rate", int(base_rate * utterance.rate))
                self.engine.setProperty("volume", utterance.volume)
                if utterance.voice is not None:
                    self.engine.setProperty("voice", utterance.voice.id)
                self.engine.say(utterance.text)
                self.engine.runAndWait()
                self.engine.setProperty("rate", base_rate)
            except RuntimeError as e:
                on_error(str(e))
                return
        on_end()

    def cancel(self) -> None:
        try:
            self.engine.stop()
        except RuntimeError as e:
            logger.debug("Ignoring stop on idle engine: %s", e)


def default_synthesizer() -> Optional[Synthesizer]:
    """Return the platform synthesizer, or None when text-to-speech is unavailable."""
    if pyttsx3 is None:
        logger.info("pyttsx3 is not installed; narration disabled")
        return None
    try:
        return Pyttsx3Synthesizer()
    except (RuntimeError, OSError, ImportError) as e:
        logger.info("No speech synthesis driver available: %s", e)
        return None
