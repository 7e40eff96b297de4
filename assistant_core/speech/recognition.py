"""语音识别桥接。

包装平台的语音转文字能力，对外暴露：

- interim_transcript: 尚未定稿的识别结果，每次都被整体覆盖。
- final_transcript: 已定稿的短语，只追加。
- is_listening / last_error。

平台回调只负责把事件推入有界通道，由 pump()/run() 统一消费并更新状态。
任何平台错误都会让桥接回到非监听状态并发布错误，不会自动重试。
"""

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Optional, Protocol, Tuple

from assistant_core.domain.exceptions import SpeechError
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.speech.channel import ChannelBridge

RecognitionEventKind = Literal["start", "result", "error", "end"]


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class RecognitionEvent:
    kind: RecognitionEventKind
    results: Tuple[RecognitionResult, ...] = ()
    error: Optional[str] = None


class RecognitionPlatform(Protocol):
    """平台语音识别接口，事件通过 emit 回调推送。"""

    def start(self, emit: Callable[[RecognitionEvent], None], language: str) -> None:
        ...

    def stop(self) -> None:
        ...

    def abort(self) -> None:
        ...


@dataclass(frozen=True)
class RecognitionSnapshot:
    is_supported: bool
    is_listening: bool
    interim_transcript: str
    final_transcript: str
    last_error: Optional[SpeechError]


class SpeechInputBridge(ChannelBridge[RecognitionEvent, RecognitionSnapshot]):
    def __init__(
        self,
        platform: Optional[RecognitionPlatform] = None,
        language: str = "en-US",
        channel_size: int = 64,
    ):
        super().__init__(channel_size)
        self._platform = platform
        self.language = language
        self._listening = False
        self._interim = ""
        self._final = ""
        self._error: Optional[SpeechError] = None
        self._log_ctx = {"component": "speech_input", "language": language}

    # ---- 状态 ----

    @property
    def is_supported(self) -> bool:
        return self._platform is not None

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def interim_transcript(self) -> str:
        return self._interim

    @property
    def final_transcript(self) -> str:
        return self._final

    @property
    def last_error(self) -> Optional[SpeechError]:
        return self._error

    @property
    def snapshot(self) -> RecognitionSnapshot:
        return RecognitionSnapshot(
            is_supported=self.is_supported,
            is_listening=self._listening,
            interim_transcript=self._interim,
            final_transcript=self._final,
            last_error=self._error,
        )

    # ---- 控制 ----

    def start(self) -> None:
        """开始识别；已在监听时不做任何事。"""

        if self._listening:
            return
        if self._platform is None:
            self._fail("NOT_SUPPORTED", "Speech Recognition not supported on this platform")
            return
        self._interim = ""
        self._final = ""
        self._error = None
        self._listening = True
        try:
            self._platform.start(self._channel.push, self.language)
        except Exception as e:  # 平台实现各异，统一转换为 SpeechError
            self._fail("START_FAILED", f"Speech recognition error: {e}")
            return
        self._publish()

    def stop(self) -> None:
        """请求平台结束识别，状态在收到 end 事件后更新。"""

        if self._platform is None or not self._listening:
            return
        self._platform.stop()

    def abort(self) -> None:
        """立即取消识别并丢弃未定稿的内容。"""

        if self._platform is not None and self._listening:
            self._platform.abort()
        self._listening = False
        self._interim = ""
        self._publish()

    def reset(self) -> None:
        self._interim = ""
        self._final = ""
        self._error = None
        self._publish()

    def clear_final(self) -> None:
        """清空已定稿内容，由消费方在取走之后调用。"""

        self._final = ""

    # ---- 事件处理 ----

    def _apply(self, event: RecognitionEvent) -> None:
        if event.kind == "start":
            self._listening = True
            self._error = None
            self._interim = ""
            self._final = ""
        elif event.kind == "result":
            self._interim = "".join(r.text for r in event.results if not r.is_final)
            finalized = "".join(f"{r.text} " for r in event.results if r.is_final)
            if finalized:
                self._final += finalized
        elif event.kind == "error":
            self._error = SpeechError(
                code="RECOGNITION_ERROR",
                message=f"Speech recognition error: {event.error}",
            )
            self._listening = False
            log_event(logging.WARNING, "Speech recognition failed", self._log_ctx, error=event.error)
        elif event.kind == "end":
            self._listening = False
            self._interim = ""

    def _fail(self, code: str, message: str) -> None:
        self._error = SpeechError(code=code, message=message)
        self._listening = False
        log_event(logging.WARNING, "Speech recognition unavailable", self._log_ctx, code=code, error=message)
        self._publish()
