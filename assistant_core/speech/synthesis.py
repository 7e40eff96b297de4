"""语音合成桥接。

包装平台的文字转语音能力。同一时间最多只有一个 utterance 在朗读：
speak() 总是先取消上一个，之后到达的旧 utterance 事件会被忽略。
"""

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Literal, Optional, Protocol, Sequence, Tuple

from assistant_core.domain.exceptions import SpeechError
from assistant_core.domain.models import VoiceProfile
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.speech.channel import ChannelBridge

SynthesisEventKind = Literal["start", "pause", "resume", "end", "error", "voiceschanged"]

FEMALE_MARKERS = re.compile(r"\b(female|woman|ms\.)", re.IGNORECASE)
MALE_MARKERS = re.compile(r"\b(male|man|mr\.)", re.IGNORECASE)


@dataclass(frozen=True)
class Voice:
    name: str
    lang: str
    local_service: bool = False
    default: bool = False


@dataclass(frozen=True)
class Utterance:
    id: str
    text: str
    rate: float
    pitch: float
    volume: float
    lang: str
    voice: Optional[Voice] = None


@dataclass(frozen=True)
class SynthesisEvent:
    kind: SynthesisEventKind
    utterance_id: Optional[str] = None
    error: Optional[str] = None


class SynthesisPlatform(Protocol):
    def voices(self) -> Sequence[Voice]:
        ...

    def speak(self, utterance: Utterance, emit: Callable[[SynthesisEvent], None]) -> None:
        ...

    def cancel(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...

    def on_voices_changed(self, callback: Callable[[], None]) -> None:
        ...


@dataclass(frozen=True)
class SynthesisSnapshot:
    is_supported: bool
    is_speaking: bool
    is_paused: bool
    utterance_id: Optional[str]
    available_voices: Tuple[Voice, ...]
    selected_voice_index: int
    last_error: Optional[SpeechError]


_PREFERENCES: List[Callable[[Voice], bool]] = [
    lambda v: v.lang.startswith("en-US") and "Google" in v.name,
    lambda v: v.lang.startswith("en-US") and v.local_service,
    lambda v: v.lang.startswith("en-US"),
    lambda v: v.lang.startswith("en-") and v.local_service,
    lambda v: v.lang.startswith("en-"),
]


def find_best_default_voice(voices: Sequence[Voice]) -> Optional[Tuple[int, Voice]]:
    """按语言与质量偏好挑选默认音色，都不满足时取第一个。"""

    if not voices:
        return None
    for matches in _PREFERENCES:
        for index, voice in enumerate(voices):
            if matches(voice):
                return index, voice
    return 0, voices[0]


class SpeechOutputBridge(ChannelBridge[SynthesisEvent, SynthesisSnapshot]):
    def __init__(
        self,
        platform: Optional[SynthesisPlatform] = None,
        language: str = "en-US",
        channel_size: int = 64,
    ):
        super().__init__(channel_size)
        self._platform = platform
        self.language = language
        self._voices: List[Voice] = []
        self._selected = 0
        self._voice_chosen = False
        self._utterance_id: Optional[str] = None
        self._speaking = False
        self._paused = False
        self._error: Optional[SpeechError] = None
        self._log_ctx = {"component": "speech_output", "language": language}
        if platform is not None:
            platform.on_voices_changed(lambda: self._channel.push(SynthesisEvent("voiceschanged")))
            self._load_voices()

    # ---- 状态 ----

    @property
    def is_supported(self) -> bool:
        return self._platform is not None

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def utterance_id(self) -> Optional[str]:
        return self._utterance_id

    @property
    def available_voices(self) -> Tuple[Voice, ...]:
        return tuple(self._voices)

    @property
    def selected_voice_index(self) -> int:
        return self._selected

    @property
    def last_error(self) -> Optional[SpeechError]:
        return self._error

    @property
    def snapshot(self) -> SynthesisSnapshot:
        return SynthesisSnapshot(
            is_supported=self.is_supported,
            is_speaking=self._speaking,
            is_paused=self._paused,
            utterance_id=self._utterance_id,
            available_voices=tuple(self._voices),
            selected_voice_index=self._selected,
            last_error=self._error,
        )

    # ---- 朗读控制 ----

    def speak(
        self,
        text: str,
        profile: Optional[VoiceProfile] = None,
        voice_index: Optional[int] = None,
    ) -> Optional[str]:
        """朗读文本，返回 utterance id；平台不可用或启动失败时返回 None。"""

        if self._platform is None:
            self._fail("NOT_SUPPORTED", "Speech synthesis not supported on this platform")
            return None
        self._platform.cancel()
        self._speaking = False
        self._paused = False

        profile = profile or VoiceProfile(selected_voice_index=self._selected)
        index = voice_index if voice_index is not None else profile.selected_voice_index
        utterance = Utterance(
            id=f"u-{uuid.uuid4().hex[:12]}",
            text=text,
            rate=profile.rate,
            pitch=profile.pitch,
            volume=profile.volume,
            lang=self.language,
            voice=self._resolve_voice(index),
        )
        self._utterance_id = utterance.id
        self._error = None
        try:
            self._platform.speak(utterance, self._channel.push)
        except Exception as e:  # 平台实现各异，统一转换为 SpeechError
            self._utterance_id = None
            self._fail("SPEAK_FAILED", f"Speech synthesis error: {e}")
            return None
        self._publish()
        return utterance.id

    def pause(self) -> None:
        if self._platform is not None and self._speaking and not self._paused:
            self._platform.pause()

    def resume(self) -> None:
        if self._platform is not None and self._paused:
            self._platform.resume()

    def stop(self) -> None:
        if self._platform is None:
            return
        self._platform.cancel()
        self._utterance_id = None
        self._speaking = False
        self._paused = False
        self._publish()

    # ---- 音色 ----

    def change_voice(self, index: int) -> bool:
        if 0 <= index < len(self._voices):
            self._selected = index
            self._voice_chosen = True
            self._publish()
            return True
        return False

    def find_voices_by_gender(self, gender: str) -> List[Voice]:
        """按名称关键字粗略区分音色性别。"""

        if gender == "female":
            return [v for v in self._voices if FEMALE_MARKERS.search(v.name)]
        if gender == "male":
            return [
                v for v in self._voices
                if MALE_MARKERS.search(v.name) and not FEMALE_MARKERS.search(v.name)
            ]
        return []

    def voice_info(self) -> Optional[Dict[str, object]]:
        if not 0 <= self._selected < len(self._voices):
            return None
        voice = self._voices[self._selected]
        return {
            "name": voice.name,
            "lang": voice.lang,
            "local": voice.local_service,
            "default": voice.default,
        }

    def _resolve_voice(self, index: int) -> Optional[Voice]:
        if not self._voices:
            return None
        if 0 <= index < len(self._voices):
            return self._voices[index]
        log_event(logging.INFO, "Voice index out of range", self._log_ctx, index=index, available=len(self._voices))
        return self._voices[0]

    def _load_voices(self) -> None:
        self._voices = list(self._platform.voices()) if self._platform is not None else []
        # 用户选过且仍有效的音色在刷新后保留
        if self._voice_chosen and self._selected < len(self._voices):
            return
        self._voice_chosen = False
        best = find_best_default_voice(self._voices)
        self._selected = best[0] if best else 0

    # ---- 事件处理 ----

    def _apply(self, event: SynthesisEvent) -> None:
        if event.kind == "voiceschanged":
            self._load_voices()
            return
        if event.utterance_id is None or event.utterance_id != self._utterance_id:
            return
        if event.kind == "start":
            self._speaking = True
            self._paused = False
        elif event.kind == "pause":
            self._paused = True
        elif event.kind == "resume":
            self._paused = False
        elif event.kind == "end":
            self._finish()
        elif event.kind == "error":
            self._finish()
            self._error = SpeechError(code="SYNTHESIS_ERROR", message=f"Speech synthesis error: {event.error}")
            log_event(logging.WARNING, "Speech synthesis failed", self._log_ctx, error=event.error)

    def _finish(self) -> None:
        self._utterance_id = None
        self._speaking = False
        self._paused = False

    def _fail(self, code: str, message: str) -> None:
        self._error = SpeechError(code=code, message=message)
        self._finish()
        log_event(logging.WARNING, "Speech synthesis unavailable", self._log_ctx, code=code, error=message)
        self._publish()
