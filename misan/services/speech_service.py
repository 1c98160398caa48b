"""Speech-to-text input session for the chat text field.

Platform pieces are injected so the session runs without a browser:

- capability: ``is_supported() -> bool`` and ``create_engine() -> engine``
- engine: attributes ``lang``, ``continuous``, ``interim_results``,
  ``max_alternatives``; methods ``start()`` / ``stop()``; the session
  assigns ``on_start``, ``on_result(results, result_index)``,
  ``on_error(code)`` and ``on_end`` handlers which the engine calls.
- permissions: ``async query() -> str`` and ``async request_access()``,
  which opens and releases an audio stream and raises when refused.
- notifier: ``success(msg)``, ``error(msg)``, ``info(msg)``.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_PROMPT = "prompt"
PERMISSION_UNKNOWN = "unknown"
PERMISSION_STATES = {PERMISSION_GRANTED, PERMISSION_DENIED, PERMISSION_PROMPT, PERMISSION_UNKNOWN}

STATE_UNSUPPORTED = "unsupported"
STATE_IDLE = "idle"
STATE_CHECKING_PERMISSION = "checking_permission"
STATE_LISTENING = "listening"
STATE_ERROR = "error"

SPEECH_LANGUAGES = {
    "fr": "fr-FR",
    "en": "en-US",
    "ar": "ar-SA",
}

SPEECH_MESSAGES = {
    "fr": {
        "speech_started": "Écoute vocale démarrée",
        "speech_stopped": "Écoute vocale arrêtée",
        "speech_not_supported": "La reconnaissance vocale n'est pas prise en charge par ce navigateur",
        "browser_not_supported": "Votre navigateur ne prend pas en charge la reconnaissance vocale",
        "permission_granted": "Autorisation accordée",
        "microphone_permission_denied": "Autorisation du microphone refusée",
        "no_speech_detected": "Aucune parole détectée",
        "network_error": "Erreur réseau",
        "speech_recognition_error": "Erreur de reconnaissance vocale",
    },
    "en": {
        "speech_started": "Voice listening started",
        "speech_stopped": "Voice listening stopped",
        "speech_not_supported": "Speech recognition is not supported in this browser",
        "browser_not_supported": "Your browser does not support speech recognition",
        "permission_granted": "Permission granted",
        "microphone_permission_denied": "Microphone permission denied",
        "no_speech_detected": "No speech detected",
        "network_error": "Network error",
        "speech_recognition_error": "Speech recognition error",
    },
    "ar": {
        "speech_started": "تم بدء الاستماع الصوتي",
        "speech_stopped": "تم إيقاف الاستماع الصوتي",
        "speech_not_supported": "التعرف على الكلام غير مدعوم في هذا المتصفح",
        "browser_not_supported": "متصفحك لا يدعم التعرف على الكلام",
        "permission_granted": "تم منح الإذن",
        "microphone_permission_denied": "تم رفض إذن الميكروفون",
        "no_speech_detected": "لم يتم اكتشاف كلام",
        "network_error": "خطأ في الشبكة",
        "speech_recognition_error": "خطأ في التعرف على الكلام",
    },
}

# engine error code -> message key
ERROR_MESSAGE_KEYS = {
    "not-allowed": "microphone_permission_denied",
    "no-speech": "no_speech_detected",
    "network": "network_error",
}


@dataclass
class SpeechResult:
    transcript: str
    is_final: bool


class NullSpeechCapability:
    """Capability for platforms without a speech engine."""

    def is_supported(self) -> bool:
        return False

    def create_engine(self):
        raise RuntimeError("speech recognition not available")


class LoggingNotifier:
    def success(self, message: str):
        LOGGER.info(message)

    def error(self, message: str):
        LOGGER.warning(message)

    def info(self, message: str):
        LOGGER.info(message)


def append_transcript(current: str, transcript: str) -> str:
    return f"{current} {transcript}" if current else transcript


class SpeechInputSession:
    def __init__(
        self,
        capability,
        permissions,
        on_change: Callable[[str], None],
        on_require_permission_dialog: Callable[[], None],
        notifier=None,
        language: str = "fr",
        value: str = "",
    ):
        self.capability = capability or NullSpeechCapability()
        self.permissions = permissions
        self.on_change = on_change
        self.on_require_permission_dialog = on_require_permission_dialog
        self.notifier = notifier or LoggingNotifier()
        self.language = language if language in SPEECH_LANGUAGES else "fr"

        self.is_listening = False
        self.speech_supported = False
        self.speech_error: Optional[str] = None
        self.interim_transcript = ""
        self.microphone_permission = PERMISSION_UNKNOWN
        self.is_checking_permission = False

        self._value = value
        self._engine = None
        self._mounted = False

    # ── Lifecycle ─────────────────────────────────────────────

    @property
    def messages(self) -> dict:
        return SPEECH_MESSAGES[self.language]

    @property
    def state(self) -> str:
        if not self.speech_supported:
            return STATE_UNSUPPORTED
        if self.is_checking_permission:
            return STATE_CHECKING_PERMISSION
        if self.is_listening:
            return STATE_LISTENING
        if self.speech_error:
            return STATE_ERROR
        return STATE_IDLE

    async def mount(self):
        # one engine per mount; unmount() first to rebuild it
        if self._mounted:
            return
        self._mounted = True
        if not self.capability.is_supported():
            self.speech_supported = False
            return

        self.speech_supported = True
        self.microphone_permission = await self._query_permission()

        try:
            engine = self.capability.create_engine()
            engine.continuous = False
            engine.interim_results = True
            engine.max_alternatives = 1
            engine.lang = SPEECH_LANGUAGES[self.language]
            engine.on_start = self._handle_start
            engine.on_result = self._handle_result
            engine.on_error = self._handle_error
            engine.on_end = self._handle_end
        except Exception as e:
            LOGGER.error("Error initializing speech recognition: %s", e)
            self.speech_supported = False
            self.notifier.error(self.messages["browser_not_supported"])
            return

        self._engine = engine

    def unmount(self):
        """Stop any in-flight recognition; later engine events are ignored."""
        self._mounted = False
        engine, self._engine = self._engine, None
        self.is_listening = False
        self.interim_transcript = ""
        if engine is None:
            return
        try:
            engine.stop()
        except Exception as e:
            LOGGER.error("Error stopping speech recognition: %s", e)

    def set_value(self, value: str):
        """Keep the snapshot of the host text field current."""
        self._value = value or ""

    def set_language(self, language: str):
        if language in SPEECH_LANGUAGES:
            self.language = language

    def clear_speech_error(self):
        self.speech_error = None

    # ── Permission ────────────────────────────────────────────

    async def _query_permission(self) -> str:
        if self.permissions is None:
            return PERMISSION_UNKNOWN
        try:
            state = await self.permissions.query()
        except Exception as e:
            LOGGER.warning("Permission API not supported: %s", e)
            return PERMISSION_UNKNOWN
        return state if state in PERMISSION_STATES else PERMISSION_UNKNOWN

    async def request_microphone_access(self) -> bool:
        if self.permissions is None:
            self.notifier.error(self.messages["browser_not_supported"])
            return False

        self.is_checking_permission = True
        try:
            await self.permissions.request_access()
        except Exception as e:
            LOGGER.error("Microphone access denied: %s", e)
            self.microphone_permission = PERMISSION_DENIED
            self.speech_error = self.messages["microphone_permission_denied"]
            self.on_require_permission_dialog()
            return False
        finally:
            self.is_checking_permission = False

        self.microphone_permission = PERMISSION_GRANTED
        self.notifier.success(self.messages["permission_granted"])
        return True

    # ── User action ───────────────────────────────────────────

    async def toggle(self):
        if not self.speech_supported:
            self.notifier.error(self.messages["speech_not_supported"])
            return

        engine = self._engine
        if engine is None:
            self.notifier.error(self.messages["browser_not_supported"])
            return

        if self.is_listening:
            try:
                engine.stop()
            except Exception as e:
                LOGGER.error("Error stopping recognition: %s", e)
                self.is_listening = False
            return

        if self.microphone_permission == PERMISSION_DENIED:
            self.on_require_permission_dialog()
            return

        if self.microphone_permission != PERMISSION_GRANTED:
            if not await self.request_microphone_access():
                return
            # unmounted while the prompt was open
            if self._engine is not engine:
                return

        try:
            engine.lang = SPEECH_LANGUAGES[self.language]
            engine.start()
        except Exception as e:
            LOGGER.error("Error starting recognition: %s", e)
            self.notifier.error(self.messages["speech_recognition_error"])

    # ── Engine events ─────────────────────────────────────────

    def _handle_start(self):
        if not self._mounted:
            return
        self.is_listening = True
        self.speech_error = None
        self.interim_transcript = ""
        self.notifier.success(self.messages["speech_started"])

    def _handle_result(self, results, result_index: int = 0):
        if not self._mounted:
            return
        interim = ""
        final = ""
        for result in list(results)[result_index:]:
            if result.is_final:
                final += result.transcript
            else:
                interim += result.transcript

        self.interim_transcript = interim
        if final:
            new_value = append_transcript(self._value, final)
            self._value = new_value
            self.on_change(new_value)
            self.interim_transcript = ""

    def _handle_error(self, code: str):
        if not self._mounted:
            return
        self.is_listening = False
        self.interim_transcript = ""

        key = ERROR_MESSAGE_KEYS.get(code, "speech_recognition_error")
        if code == "not-allowed":
            self.microphone_permission = PERMISSION_DENIED
            self.on_require_permission_dialog()

        message = self.messages[key]
        self.speech_error = message
        self.notifier.error(message)

    def _handle_end(self):
        if not self._mounted:
            return
        self.is_listening = False
        self.interim_transcript = ""
        if not self.speech_error:
            self.notifier.info(self.messages["speech_stopped"])
