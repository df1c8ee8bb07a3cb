import asyncio

import numpy as np
import pytest

from backend.app.models.session import VoiceSettings
from backend.app.services.voice import BrowserVoice, VoiceUnavailable

from fakes import FakeRealtime, make_settings


def build_voice(fail=False, **settings):
    sent = []
    clients = []

    async def send(message):
        sent.append(message)

    def factory(s):
        client = FakeRealtime(s, fail=fail)
        clients.append(client)
        return client

    voice = BrowserVoice(send, make_settings(**settings), realtime_factory=factory)
    return voice, sent, clients


def test_speak_and_wait_until_client_confirms():
    async def run():
        voice, sent, _ = build_voice()
        speaking = asyncio.create_task(voice.speak_and_wait("Step 1 of 2: Chop"))
        await asyncio.sleep(0)
        assert voice.is_speaking
        tts = sent[-1]
        assert tts["type"] == "tts"
        assert tts["text"] == "Step 1 of 2: Chop"

        voice.speech_finished(tts["id"])
        await speaking
        assert not voice.is_speaking

    asyncio.run(run())


def test_stop_speaking_releases_waiters():
    async def run():
        voice, sent, _ = build_voice()
        speaking = asyncio.create_task(voice.speak_and_wait("A long answer"))
        await asyncio.sleep(0)
        await voice.stop_speaking()
        await speaking
        assert sent[-1] == {"type": "tts_stop"}
        assert not voice.is_speaking

    asyncio.run(run())


def test_speak_and_wait_times_out():
    async def run():
        voice, _, _ = build_voice(speak_timeout_sec=0.01)
        await voice.speak_and_wait("nobody is listening")
        assert not voice.is_speaking

    asyncio.run(run())


def test_permission_request_waits_for_client():
    async def run():
        voice, sent, _ = build_voice()
        assert not await voice.check_permissions()
        asking = asyncio.create_task(voice.request_permissions())
        await asyncio.sleep(0)
        assert sent[-1] == {"type": "permission_request"}
        voice.set_permissions(True)
        assert await asking
        assert await voice.check_permissions()

    asyncio.run(run())


def test_transcripts_reach_callback():
    heard = []

    async def on_result(text):
        heard.append(text)

    async def run():
        voice, sent, clients = build_voice()
        await voice.start_listening(on_result)
        assert voice.is_listening
        assert {"type": "listening", "active": True} in sent

        clients[0].queue.put_nowait("next step")
        clients[0].queue.put_nowait("what temperature?")
        await asyncio.sleep(0.05)
        assert voice.is_listening

        await voice.stop_listening()
        assert not voice.is_listening
        assert clients[0].closed
        assert sent[-1] == {"type": "listening", "active": False}
        assert {"type": "transcription", "text": "next step"} in sent

    asyncio.run(run())
    assert heard == ["next step", "what temperature?"]


def test_single_utterance_listening_stops_itself():
    heard = []

    async def on_result(text):
        heard.append(text)

    async def run():
        voice, _, clients = build_voice()
        await voice.start_listening(on_result, continuous=False)
        clients[0].queue.put_nowait("repeat")
        await asyncio.sleep(0.05)
        assert not voice.is_listening
        assert clients[0].closed

    asyncio.run(run())
    assert heard == ["repeat"]


def test_listen_timeout():
    fired = []

    async def noop(text):
        pass

    async def on_timeout():
        fired.append(True)

    async def run():
        voice, sent, _ = build_voice()
        await voice.start_listening(noop, timeout=0.02, on_timeout=on_timeout)
        await asyncio.sleep(0.1)
        assert not voice.is_listening
        assert sent[-1] == {"type": "listening", "active": False}

    asyncio.run(run())
    assert fired == [True]


def test_stopping_early_skips_timeout_callback():
    fired = []

    async def noop(text):
        pass

    async def on_timeout():
        fired.append(True)

    async def run():
        voice, _, _ = build_voice()
        await voice.start_listening(noop, timeout=0.05, on_timeout=on_timeout)
        await voice.stop_listening()
        await asyncio.sleep(0.1)

    asyncio.run(run())
    assert fired == []


def test_tts_frames_carry_voice_settings():
    async def run():
        voice, sent, _ = build_voice(speech_rate=0.7)
        await voice.speak("Default voice")
        assert sent[-1]["voice"]["speech_rate"] == 0.7
        assert sent[-1]["voice"]["locale"] == "en-US"

        await voice.apply_settings(VoiceSettings(voice_name="Samantha", speech_rate=3.0, pitch=0.1, volume=0.8))
        await voice.speak("Custom voice", interrupt=True)
        frame = sent[-1]
        assert frame["type"] == "tts"
        assert frame["interrupt"] is True
        assert frame["voice"] == {
            "voice_name": "Samantha",
            "locale": "en-US",
            "speech_rate": 1.0,
            "pitch": 0.5,
            "volume": 0.8,
        }

    asyncio.run(run())


def test_connection_failure_raises_voice_unavailable():
    async def noop(text):
        pass

    async def run():
        voice, _, _ = build_voice(fail=True)
        with pytest.raises(VoiceUnavailable):
            await voice.start_listening(noop)
        assert not voice.is_listening

    asyncio.run(run())


def test_feed_audio_reports_level_and_pushes_pcm16():
    levels = []

    async def noop(text):
        pass

    async def run():
        voice, _, clients = build_voice()
        voice.set_audio_level_listener(levels.append)

        chunk = (np.ones(4800, dtype=np.float32) * 0.5).tobytes()
        await voice.feed_audio(chunk)
        assert levels == []

        await voice.start_listening(noop)
        await voice.feed_audio(chunk)
        assert levels == [1.0]
        assert len(clients[0].pushed) == 1
        await voice.close()

    asyncio.run(run())
