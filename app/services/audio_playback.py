# app/services/audio_playback.py
"""
Audio Playback Manager
Owns the single process-wide audio output and plays synthesized speech,
stopping whatever was playing before
"""

import asyncio
import base64
import binascii
import logging
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)

SAMPLE_RATE = 24000


def decode_pcm16(audio_b64: str) -> np.ndarray:
    """
    Decode base64 little-endian 16-bit mono PCM into float32 samples in [-1, 1).
    
    Raises:
        ValueError: payload is not valid base64
    """
    try:
        raw = base64.b64decode(audio_b64, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 audio payload: {e}")
    if len(raw) % 2:
        raw = raw[:-1]  # drop a trailing half sample
    samples = np.frombuffer(raw, dtype="<i2")
    return samples.astype(np.float32) / 32768.0


class SoundDeviceSource:
    """One-shot buffer playback on its own sounddevice output stream"""

    def __init__(self, sd, samples: np.ndarray, sample_rate: int):
        self._sd = sd
        self._samples = samples
        self._position = 0
        self.on_ended: Optional[Callable[[], None]] = None
        self._stream = sd.OutputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            callback=self._fill,
            finished_callback=self._finished
        )

    def _fill(self, outdata, frames, time, status):
        chunk = self._samples[self._position:self._position + frames]
        outdata[:len(chunk), 0] = chunk
        self._position += len(chunk)
        if len(chunk) < frames:
            outdata[len(chunk):] = 0
            raise self._sd.CallbackStop()

    def _finished(self):
        # Runs on the PortAudio thread
        if self.on_ended is not None:
            self.on_ended()

    def start(self):
        self._stream.start()

    def stop(self):
        self._stream.abort()

    def disconnect(self):
        self._stream.close()


class SoundDeviceContext:
    """Audio output context backed by the default sounddevice output"""

    def __init__(self, sample_rate: int = SAMPLE_RATE):
        import sounddevice

        self._sd = sounddevice
        self.sample_rate = sample_rate
        self.state = "suspended"

    async def resume(self):
        self._sd.check_output_settings(samplerate=self.sample_rate, channels=1, dtype="float32")
        self.state = "running"

    def create_source(self, samples: np.ndarray) -> SoundDeviceSource:
        return SoundDeviceSource(self._sd, samples, self.sample_rate)

    async def close(self):
        self.state = "closed"


class AudioSession:
    """
    Token for one playback. Only the manager's current session is active;
    a session that has been replaced or has ended is invalid.
    """

    def __init__(self, manager: "AudioPlaybackManager", source, loop: asyncio.AbstractEventLoop):
        self._manager = manager
        self._source = source
        self._loop = loop
        self.finished: asyncio.Future = loop.create_future()
        source.on_ended = self._ended_threadsafe

    @property
    def active(self) -> bool:
        return self._manager.active is self

    def _ended_threadsafe(self):
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._ended, True)

    def _ended(self, natural: bool):
        if self.finished.done():
            return
        self.finished.set_result(natural)
        if natural:
            self._source.disconnect()
        self._manager._release(self)

    def _teardown(self):
        try:
            self._source.stop()
        except Exception as e:
            logger.debug(f"Audio source already stopped: {e}")
        self._source.disconnect()
        self._ended(False)

    async def wait(self) -> bool:
        """True if playback ran to the end, False if it was stopped"""
        return await self.finished


class AudioPlaybackManager:
    """
    Process-wide owner of the audio output. At most one session plays at a time;
    starting a new one stops and releases the previous one first.
    """

    def __init__(self, context_factory: Optional[Callable[[], object]] = None, sample_rate: int = SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._context_factory = context_factory or (lambda: SoundDeviceContext(sample_rate))
        self._context = None
        self._active: Optional[AudioSession] = None

    @property
    def active(self) -> Optional[AudioSession]:
        return self._active

    def _get_context(self):
        """Lazily create the output context, reused afterwards"""
        if self._context is None:
            self._context = self._context_factory()
            logger.info(f"Audio output context created ({self.sample_rate} Hz)")
        return self._context

    def _release(self, session: AudioSession):
        if self._active is session:
            self._active = None

    def stop(self):
        """Stop and release the active session, if any"""
        session = self._active
        if session is not None:
            self._active = None
            session._teardown()
            logger.debug("Audio playback stopped")

    async def play(self, audio_b64: str) -> Optional[AudioSession]:
        """
        Play base64 PCM audio, replacing any current playback.
        
        Args:
            audio_b64: base64 24 kHz mono 16-bit PCM
            
        Returns:
            The new active AudioSession, None for an empty payload
        """
        if not audio_b64:
            return None
        self.stop()

        context = self._get_context()
        if context.state == "suspended":
            await context.resume()

        samples = decode_pcm16(audio_b64)
        # Another play() may have started while resuming
        self.stop()

        source = context.create_source(samples)
        session = AudioSession(self, source, asyncio.get_running_loop())
        self._active = session
        source.start()
        logger.info(f"Audio playback started ({len(samples) / self.sample_rate:.1f}s)")
        return session

    async def close(self):
        self.stop()
        if self._context is not None:
            await self._context.close()
            self._context = None
