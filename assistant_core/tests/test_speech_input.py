from assistant_core.engine import ConversationEngine
from assistant_core.providers.registry import ProviderRegistry
from assistant_core.speech import RecognitionEvent, RecognitionResult, SpeechInputBridge
from assistant_core.speech.channel import EventChannel


class FakeRecognizer:
    def __init__(self, fail=False):
        self.emit = None
        self.starts = 0
        self.stops = 0
        self.fail = fail

    def start(self, emit, language):
        if self.fail:
            raise RuntimeError("microphone busy")
        self.starts += 1
        self.emit = emit
        emit(RecognitionEvent("start"))

    def stop(self):
        self.stops += 1
        self.emit(RecognitionEvent("end"))

    def abort(self):
        pass

    def results(self, *pairs):
        self.emit(RecognitionEvent("result", tuple(RecognitionResult(t, f) for t, f in pairs)))


def test_interim_is_overwritten_and_finals_accumulate():
    platform = FakeRecognizer()
    bridge = SpeechInputBridge(platform)
    bridge.start()
    assert bridge.is_listening

    platform.results(("hello", True), ("wor", False))
    bridge.pump()
    assert bridge.final_transcript == "hello "
    assert bridge.interim_transcript == "wor"

    platform.results(("world", True))
    bridge.pump()
    assert bridge.final_transcript == "hello world "
    assert bridge.interim_transcript == ""


def test_start_while_listening_is_a_noop():
    platform = FakeRecognizer()
    bridge = SpeechInputBridge(platform)
    bridge.start()
    bridge.start()
    assert platform.starts == 1


def test_stop_ends_listening_after_end_event():
    platform = FakeRecognizer()
    bridge = SpeechInputBridge(platform)
    bridge.start()
    platform.results(("partial", False))
    bridge.stop()
    bridge.pump()
    assert not bridge.is_listening
    assert bridge.interim_transcript == ""
    assert platform.stops == 1


def test_error_event_resets_listening():
    platform = FakeRecognizer()
    bridge = SpeechInputBridge(platform)
    snapshots = []
    bridge.observe(snapshots.append)
    bridge.start()
    platform.emit(RecognitionEvent("error", error="no-speech"))
    bridge.pump()

    assert not bridge.is_listening
    assert bridge.last_error.message == "Speech recognition error: no-speech"
    assert snapshots[-1].last_error is bridge.last_error
    assert platform.starts == 1


def test_unsupported_and_failing_platforms_publish_errors():
    bridge = SpeechInputBridge()
    assert not bridge.is_supported
    bridge.start()
    assert bridge.last_error.code == "NOT_SUPPORTED"
    assert not bridge.is_listening

    failing = SpeechInputBridge(FakeRecognizer(fail=True))
    failing.start()
    assert failing.last_error.code == "START_FAILED"
    assert not failing.is_listening


def test_channel_drops_oldest_on_overflow():
    channel = EventChannel(maxsize=2)
    for kind in ("start", "result", "end"):
        channel.push(RecognitionEvent(kind))
    assert channel.dropped == 1
    assert [e.kind for e in channel.drain()] == ["result", "end"]


def test_finalized_transcript_flows_into_engine_input():
    platform = FakeRecognizer()
    bridge = SpeechInputBridge(platform)
    engine = ConversationEngine(registry=ProviderRegistry({}), greeting="")
    engine.attach_speech_input(bridge)

    bridge.start()
    platform.results(("hello", True))
    bridge.pump()
    assert engine.input_text == "hello"
    assert bridge.final_transcript == ""

    platform.results(("there", True))
    bridge.pump()
    assert engine.input_text == "hello there"
