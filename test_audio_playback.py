"""
Audio playback manager tests using a fake output context
"""

import asyncio
import base64
import struct

import numpy as np
import pytest

from app.services.audio_playback import AudioPlaybackManager, decode_pcm16
from conftest import PCM_B64, FakeAudioContext


def test_decode_pcm16_normalizes_samples():
    samples = decode_pcm16(PCM_B64)
    assert samples.dtype == np.float32
    assert samples.tolist() == [0.0, 0.5, -1.0, 32767 / 32768.0]


def test_decode_pcm16_drops_trailing_half_sample():
    payload = base64.b64encode(struct.pack("<h", 256) + b"\x01").decode("ascii")
    assert len(decode_pcm16(payload)) == 1


def test_decode_pcm16_rejects_invalid_base64():
    with pytest.raises(ValueError):
        decode_pcm16("not base64!!")


class TestAudioPlaybackManager:

    @pytest.mark.asyncio
    async def test_context_is_created_lazily_and_reused(self):
        contexts = []

        def factory():
            context = FakeAudioContext()
            contexts.append(context)
            return context

        manager = AudioPlaybackManager(context_factory=factory)
        assert contexts == []

        await manager.play(PCM_B64)
        await manager.play(PCM_B64)

        assert len(contexts) == 1
        # Resumed only while it was suspended
        assert contexts[0].resumed == 1
        assert contexts[0].state == "running"

    @pytest.mark.asyncio
    async def test_new_playback_stops_previous_session(self):
        manager = AudioPlaybackManager(context_factory=FakeAudioContext)

        first = await manager.play(PCM_B64)
        assert first.active
        assert manager.active is first

        second = await manager.play(PCM_B64)

        first_source, second_source = manager._context.sources
        assert first_source.stopped and first_source.disconnected
        assert not first.active
        assert second.active
        assert manager.active is second
        assert second_source.started and not second_source.stopped
        assert await first.wait() is False

    @pytest.mark.asyncio
    async def test_natural_end_resolves_once_and_clears_active(self):
        manager = AudioPlaybackManager(context_factory=FakeAudioContext)
        session = await manager.play(PCM_B64)
        source = manager._context.sources[0]

        source.finish()
        assert await asyncio.wait_for(session.wait(), timeout=1) is True
        assert manager.active is None
        assert source.disconnected

        # A late duplicate end signal changes nothing
        source.finish()
        await asyncio.sleep(0)
        assert session.finished.result() is True

        # Next play does not try to stop the finished session
        await manager.play(PCM_B64)
        assert not source.stopped

    @pytest.mark.asyncio
    async def test_stale_end_signal_keeps_new_session_active(self):
        manager = AudioPlaybackManager(context_factory=FakeAudioContext)
        await manager.play(PCM_B64)
        second = await manager.play(PCM_B64)
        first_source = manager._context.sources[0]

        first_source.finish()
        await asyncio.sleep(0)

        assert manager.active is second

    @pytest.mark.asyncio
    async def test_stop(self):
        manager = AudioPlaybackManager(context_factory=FakeAudioContext)
        session = await manager.play(PCM_B64)

        manager.stop()
        manager.stop()

        assert manager.active is None
        assert await session.wait() is False

    @pytest.mark.asyncio
    async def test_samples_reach_the_source(self):
        manager = AudioPlaybackManager(context_factory=FakeAudioContext)
        await manager.play(PCM_B64)
        assert manager._context.sources[0].samples.tolist()[:2] == [0.0, 0.5]

    @pytest.mark.asyncio
    async def test_empty_payload_is_a_no_op(self):
        manager = AudioPlaybackManager(context_factory=FakeAudioContext)
        assert await manager.play("") is None
        assert manager._context is None

    @pytest.mark.asyncio
    async def test_close_releases_context(self):
        manager = AudioPlaybackManager(context_factory=FakeAudioContext)
        session = await manager.play(PCM_B64)
        context = manager._context

        await manager.close()

        assert context.state == "closed"
        assert manager._context is None
        assert await session.wait() is False
