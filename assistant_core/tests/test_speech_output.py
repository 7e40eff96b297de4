import asyncio

from assistant_core.domain.models import VoiceProfile
from assistant_core.engine import ConversationEngine
from assistant_core.providers.registry import ProviderRegistry
from assistant_core.speech import SpeechOutputBridge, SynthesisEvent, Voice, find_best_default_voice

VOICES = [
    Voice("Daniel", "en-GB", local_service=True),
    Voice("Samantha", "en-US", local_service=True),
    Voice("Google US English", "en-US"),
    Voice("Microsoft Zira - Female", "en-US"),
    Voice("Thomas Male", "fr-FR"),
]


class FakeSynth:
    def __init__(self, voices=()):
        self._voices = list(voices)
        self.spoken = []
        self.cancelled = 0
        self.emit = None
        self.voices_changed = None

    def voices(self):
        return self._voices

    def speak(self, utterance, emit):
        self.spoken.append(utterance)
        self.emit = emit
        emit(SynthesisEvent("start", utterance.id))

    def cancel(self):
        self.cancelled += 1

    def pause(self):
        self.emit(SynthesisEvent("pause", self.spoken[-1].id))

    def resume(self):
        self.emit(SynthesisEvent("resume", self.spoken[-1].id))

    def on_voices_changed(self, callback):
        self.voices_changed = callback

    def finish(self, utterance_id=None):
        self.emit(SynthesisEvent("end", utterance_id or self.spoken[-1].id))


def test_best_default_voice_preference():
    assert find_best_default_voice(VOICES) == (2, VOICES[2])
    assert find_best_default_voice(VOICES[:2]) == (1, VOICES[1])
    assert find_best_default_voice([Voice("Anna", "de-DE")]) == (0, Voice("Anna", "de-DE"))
    assert find_best_default_voice([]) is None


def test_speak_lifecycle():
    platform = FakeSynth(VOICES)
    bridge = SpeechOutputBridge(platform)
    assert bridge.selected_voice_index == 2

    utterance_id = bridge.speak("hello", VoiceProfile(rate=1.5, selected_voice_index=1))
    bridge.pump()
    assert bridge.is_speaking
    assert bridge.utterance_id == utterance_id
    assert platform.spoken[-1].rate == 1.5
    assert platform.spoken[-1].voice == VOICES[1]

    bridge.pause()
    bridge.pump()
    assert bridge.is_paused
    bridge.resume()
    bridge.pump()
    assert not bridge.is_paused

    platform.finish()
    bridge.pump()
    assert not bridge.is_speaking
    assert bridge.utterance_id is None


def test_new_speak_cancels_and_ignores_stale_events():
    platform = FakeSynth(VOICES)
    bridge = SpeechOutputBridge(platform)
    first = bridge.speak("one")
    bridge.pump()
    second = bridge.speak("two")
    platform.finish(first)
    bridge.pump()

    assert platform.cancelled == 2
    assert bridge.utterance_id == second
    assert bridge.is_speaking


def test_voice_index_is_clamped():
    platform = FakeSynth(VOICES)
    bridge = SpeechOutputBridge(platform)
    bridge.speak("x", voice_index=99)
    assert platform.spoken[-1].voice == VOICES[0]

    silent = FakeSynth()
    SpeechOutputBridge(silent).speak("x", voice_index=3)
    assert silent.spoken[-1].voice is None


def test_voices_changed_refreshes_list():
    platform = FakeSynth()
    bridge = SpeechOutputBridge(platform)
    assert bridge.available_voices == ()
    platform._voices = list(VOICES)
    platform.voices_changed()
    bridge.pump()
    assert bridge.available_voices == tuple(VOICES)
    assert bridge.voice_info()["name"] == "Google US English"


def test_voice_selection_helpers():
    bridge = SpeechOutputBridge(FakeSynth(VOICES))
    assert not bridge.change_voice(10)
    assert bridge.change_voice(0)
    assert bridge.voice_info() == {"name": "Daniel", "lang": "en-GB", "local": True, "default": False}
    assert bridge.find_voices_by_gender("female") == [VOICES[3]]
    assert bridge.find_voices_by_gender("male") == [VOICES[4]]
    assert bridge.find_voices_by_gender("other") == []


def test_unsupported_platform():
    bridge = SpeechOutputBridge()
    assert bridge.speak("x") is None
    assert bridge.last_error.code == "NOT_SUPPORTED"


def test_engine_toggle_speech():
    platform = FakeSynth(VOICES)
    bridge = SpeechOutputBridge(platform)

    class Adapter:
        def __init__(self, descriptor):
            self.descriptor = descriptor
            self.history = []

        async def send_prompt(self, text):
            return "reply"

    registry = ProviderRegistry.load({
        "ASSISTANT_MODELS": "lmstudio",
        "ASSISTANT_MODEL_LMSTUDIO_TYPE": "local-inference",
        "ASSISTANT_MODEL_LMSTUDIO_NAME": "LM Studio",
        "ASSISTANT_MODEL_LMSTUDIO_MODEL": "m",
    })
    engine = ConversationEngine(
        registry,
        speech_output=bridge,
        adapter_factory=Adapter,
        voice_profile=VoiceProfile(rate=1.2),
    )
    asyncio.run(engine.send("hi"))
    greeting, reply = engine.messages[0], engine.messages[-1]

    assert engine.toggle_speech(greeting.id)
    assert engine.speaking_message_id == greeting.id
    assert platform.spoken[-1].rate == 1.2

    assert engine.toggle_speech(reply.id)
    assert engine.speaking_message_id == reply.id
    assert platform.spoken[-1].text == "reply"

    assert not engine.toggle_speech(reply.id)
    assert engine.speaking_message_id is None

    assert engine.toggle_speech(greeting.id)
    platform.finish()
    bridge.pump()
    assert engine.speaking_message_id is None


def test_chosen_voice_survives_voices_refresh():
    platform = FakeSynth(VOICES)
    bridge = SpeechOutputBridge(platform)
    assert bridge.change_voice(4)

    platform.voices_changed()
    bridge.pump()
    assert bridge.selected_voice_index == 4

    platform._voices = list(VOICES[:3])
    platform.voices_changed()
    bridge.pump()
    assert bridge.selected_voice_index == 2
