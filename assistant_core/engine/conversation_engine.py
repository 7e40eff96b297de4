import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from assistant_core.config.settings import DEFAULT_GREETING
from assistant_core.domain.conversation import ConversationStore
from assistant_core.domain.exceptions import BusinessError, ConfigurationError
from assistant_core.domain.models import (
    Message,
    ProviderDescriptor,
    VoiceProfile,
    new_message_id,
    pending_message,
    user_message,
)
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.providers import create_adapter
from assistant_core.providers.base import ProviderAdapter
from assistant_core.providers.registry import ProviderRegistry
from assistant_core.speech.recognition import RecognitionSnapshot, SpeechInputBridge
from assistant_core.speech.synthesis import SpeechOutputBridge, SynthesisSnapshot

INTERRUPTED_MESSAGE = "Request was interrupted"


@dataclass(frozen=True)
class EngineSnapshot:
    """一次原子更新之后的引擎状态，供 UI 渲染。"""

    conversation_id: str
    messages: Tuple[Message, ...]
    is_pending: bool
    active_provider_id: Optional[str]
    last_error: Optional[BusinessError]
    input_text: str
    speaking_message_id: Optional[str]


class ConversationEngine:
    """会话引擎。

    负责维护消息列表、在 Provider 之间路由用户输入、协调语音输入/输出，
    并在每轮对话结束后把会话快照写入存储。

    状态只在引擎自身的协程里修改，每次修改都是同步完成的，
    因此观察者看到的快照永远处于一致状态：
    - 同一时间最多一条 pending 占位消息；
    - 每条非空输入恰好产生一条 user 消息和一条 assistant 消息；
    - 回复使用提交那一刻选中的 Provider。
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store: Optional[ConversationStore] = None,
        speech_output: Optional[SpeechOutputBridge] = None,
        conversation_id: str = "current",
        greeting: Optional[str] = None,
        adapter_factory: Callable[[ProviderDescriptor], ProviderAdapter] = create_adapter,
        voice_profile: Optional[VoiceProfile] = None,
    ):
        self._registry = registry
        self._store = store
        self._speech_output = speech_output
        self._adapter_factory = adapter_factory
        self._greeting = DEFAULT_GREETING if greeting is None else greeting
        self._voice_profile = voice_profile or VoiceProfile()
        self._adapters: Dict[str, ProviderAdapter] = {}
        self._listeners: List[Callable[[EngineSnapshot], None]] = []

        self._conversation_id = conversation_id
        self._active_id: Optional[str] = registry.default_id
        self._pending_id: Optional[str] = None
        self._last_error: Optional[BusinessError] = None
        self._input = ""
        self._speaking_id: Optional[str] = None
        self._speaking_utterance: Optional[str] = None
        self._messages: Tuple[Message, ...] = self._restore(conversation_id) or self._fresh_messages()

        if speech_output is not None:
            speech_output.observe(self._on_output_snapshot)

    # ---- 状态 ----

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self._messages

    @property
    def is_pending(self) -> bool:
        return self._pending_id is not None

    @property
    def can_send(self) -> bool:
        return not self.is_pending and bool(self._input.strip()) and len(self._registry) > 0

    @property
    def active_provider_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_provider(self) -> Optional[ProviderDescriptor]:
        return self._registry.get(self._active_id) if self._active_id else None

    @property
    def providers(self) -> List[ProviderDescriptor]:
        return list(self._registry)

    @property
    def last_error(self) -> Optional[BusinessError]:
        return self._last_error

    @property
    def input_text(self) -> str:
        return self._input

    @property
    def speaking_message_id(self) -> Optional[str]:
        return self._speaking_id

    @property
    def voice_profile(self) -> VoiceProfile:
        return self._voice_profile

    @property
    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            conversation_id=self._conversation_id,
            messages=self._messages,
            is_pending=self.is_pending,
            active_provider_id=self._active_id,
            last_error=self._last_error,
            input_text=self._input,
            speaking_message_id=self._speaking_id,
        )

    def subscribe(self, listener: Callable[[EngineSnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- 输入 ----

    def set_active_provider(self, provider_id: str) -> ProviderDescriptor:
        """切换 Provider，只影响之后提交的消息。"""

        descriptor = self._registry.get(provider_id)
        self._active_id = descriptor.id
        self._publish()
        return descriptor

    def set_input(self, text: str) -> None:
        self._input = text
        self._publish()

    def append_transcript(self, segment: str) -> None:
        segment = segment.strip()
        if not segment:
            return
        self._input = f"{self._input.rstrip()} {segment}" if self._input.strip() else segment
        self._publish()

    def set_voice_profile(self, profile: VoiceProfile) -> None:
        self._voice_profile = profile

    # ---- 发送 ----

    async def send(self, text: Optional[str] = None) -> Optional[Message]:
        """提交一条用户消息并等待回复。

        Args:
            text: 要发送的文本；为 None 时使用并清空输入缓冲区。

        Returns:
            替换占位消息的 assistant 消息；空输入或已有请求在途时返回 None。

        Raises:
            ConfigurationError: 没有任何可用的 Provider。
        """

        from_buffer = text is None
        prompt = (self._input if from_buffer else text or "").strip()
        if not prompt:
            return None
        if self.is_pending:
            log_event(logging.INFO, "Send ignored while reply pending", {"conversation_id": self._conversation_id})
            return None
        if not len(self._registry) or self._active_id is None:
            raise ConfigurationError(
                code="NO_PROVIDERS",
                message="No AI providers are configured. Please set ASSISTANT_MODELS in your .env file.",
            )

        # 1. 提交瞬间绑定 Provider，并同步追加 user + pending 两条消息
        descriptor = self._registry.get(self._active_id)
        submitted = user_message(prompt)
        placeholder = pending_message(descriptor.id, descriptor.display_name)
        self._messages = self._messages + (submitted, placeholder)
        self._pending_id = placeholder.id
        self._last_error = None
        if from_buffer:
            self._input = ""
        self._publish()

        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "conversation_id": self._conversation_id,
            "provider_id": descriptor.id,
        }
        log_event(logging.INFO, "Submitted prompt", log_ctx, prompt_chars=len(prompt))

        # 2. 调用 Provider
        adapter = self._adapter_for(descriptor)
        try:
            reply_text = await adapter.send_prompt(prompt)
        except BusinessError as e:
            reply = self._error_reply(placeholder, e.message)
            self._last_error = e
            log_event(logging.WARNING, "Provider call failed", log_ctx, code=e.code, error=e.message)
        except BaseException as e:
            # 未预期的异常或任务取消：先收起占位消息再向上抛
            self._resolve(self._error_reply(placeholder, INTERRUPTED_MESSAGE))
            self._persist()
            log_event(logging.ERROR, "Provider call interrupted", log_ctx, error=repr(e))
            raise
        else:
            reply = Message(
                id=placeholder.id,
                role="assistant",
                text=reply_text,
                provider_id=descriptor.id,
                provider_label=descriptor.display_name,
            )

        # 3. 替换占位消息并持久化
        self._resolve(reply)
        self._persist()
        log_event(
            logging.INFO,
            "Completed exchange",
            log_ctx,
            status=reply.status,
            elapsed_seconds=round(time.time() - start_time, 2),
            reply_chars=len(reply.text),
        )
        return reply

    # ---- 朗读 ----

    def toggle_speech(self, message_id: str) -> bool:
        """朗读或停止朗读某条消息，返回该消息此刻是否正在朗读。"""

        if self._speech_output is None:
            return False
        if self._speaking_id == message_id:
            self.stop_speaking()
            return False
        message = self._find(message_id)
        if message is None or message.is_pending or not message.text:
            return False
        utterance_id = self._speech_output.speak(message.text, self._voice_profile)
        self._speaking_utterance = utterance_id
        self._speaking_id = message_id if utterance_id else None
        self._publish()
        return self._speaking_id is not None

    def stop_speaking(self) -> None:
        if self._speech_output is not None:
            self._speech_output.stop()
        self._speaking_id = None
        self._speaking_utterance = None
        self._publish()

    def _on_output_snapshot(self, snapshot: SynthesisSnapshot) -> None:
        if self._speaking_id is not None and snapshot.utterance_id != self._speaking_utterance:
            self._speaking_id = None
            self._speaking_utterance = None
            self._publish()

    # ---- 语音输入 ----

    def attach_speech_input(self, bridge: SpeechInputBridge) -> None:
        """定稿的识别结果追加到输入缓冲区，随后清空桥接的定稿缓冲。"""

        def on_snapshot(snapshot: RecognitionSnapshot) -> None:
            if snapshot.final_transcript.strip():
                self.append_transcript(snapshot.final_transcript)
                bridge.clear_final()

        bridge.observe(on_snapshot)

    # ---- 会话管理 ----

    def new_conversation(self, conversation_id: Optional[str] = None) -> bool:
        if self._refuse_while_pending("new_conversation"):
            return False
        self._conversation_id = conversation_id or f"c-{uuid4().hex[:12]}"
        self._messages = self._fresh_messages()
        self._last_error = None
        self._publish()
        return True

    def load_conversation(self, conversation_id: str) -> bool:
        if self._refuse_while_pending("load_conversation"):
            return False
        restored = self._restore(conversation_id)
        if restored is None:
            return False
        self._conversation_id = conversation_id
        self._messages = restored
        self._last_error = None
        self._publish()
        return True

    def clear_messages(self) -> bool:
        if self._refuse_while_pending("clear_messages"):
            return False
        self._messages = self._fresh_messages()
        self._last_error = None
        if self._store is not None:
            # 只剩问候语时不落盘，删除旧记录以免重启后恢复
            self._store.delete(self._conversation_id)
        self._publish()
        return True

    # ---- 辅助方法 ----

    def _adapter_for(self, descriptor: ProviderDescriptor) -> ProviderAdapter:
        adapter = self._adapters.get(descriptor.id)
        if adapter is None:
            adapter = self._adapter_factory(descriptor)
            self._adapters[descriptor.id] = adapter
        return adapter

    def _resolve(self, reply: Message) -> None:
        self._messages = tuple(reply if m.id == self._pending_id else m for m in self._messages)
        self._pending_id = None
        self._publish()

    @staticmethod
    def _error_reply(placeholder: Message, description: str) -> Message:
        return Message(
            id=placeholder.id,
            role="assistant",
            text=f"Error: {description}",
            status="error",
            provider_id=placeholder.provider_id,
            provider_label=placeholder.provider_label,
        )

    def _persist(self) -> None:
        # 只有问候语的会话不落盘
        if self._store is None or not any(m.role == "user" for m in self._messages):
            return
        self._store.save(self._conversation_id, self._messages)

    def _restore(self, conversation_id: str) -> Optional[Tuple[Message, ...]]:
        if self._store is None:
            return None
        messages = self._store.load(conversation_id)
        if not messages:
            return None
        return tuple(m for m in messages if not m.is_pending)

    def _fresh_messages(self) -> Tuple[Message, ...]:
        if not self._greeting:
            return ()
        return (Message(id=new_message_id(), role="assistant", text=self._greeting),)

    def _find(self, message_id: str) -> Optional[Message]:
        return next((m for m in self._messages if m.id == message_id), None)

    def _refuse_while_pending(self, action: str) -> bool:
        if self.is_pending:
            log_event(logging.INFO, "Action refused while reply pending", {"conversation_id": self._conversation_id}, action=action)
            return True
        return False

    def _publish(self) -> None:
        snapshot = self.snapshot
        for listener in list(self._listeners):
            listener(snapshot)
