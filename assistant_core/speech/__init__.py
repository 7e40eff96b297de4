"""语音输入 / 输出桥接。"""

from assistant_core.speech.recognition import (
    RecognitionEvent,
    RecognitionPlatform,
    RecognitionResult,
    RecognitionSnapshot,
    SpeechInputBridge,
)
from assistant_core.speech.synthesis import (
    SpeechOutputBridge,
    SynthesisEvent,
    SynthesisPlatform,
    SynthesisSnapshot,
    Utterance,
    Voice,
    find_best_default_voice,
)

__all__ = [
    "RecognitionEvent",
    "RecognitionPlatform",
    "RecognitionResult",
    "RecognitionSnapshot",
    "SpeechInputBridge",
    "SpeechOutputBridge",
    "SynthesisEvent",
    "SynthesisPlatform",
    "SynthesisSnapshot",
    "Utterance",
    "Voice",
    "find_best_default_voice",
]
