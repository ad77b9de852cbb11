"""
Shared fixtures: a scripted Gemini backend behind httpx.MockTransport and a fake audio output
"""

import asyncio
import base64
import json
import struct

import httpx
import pytest

from app.agents.models import AgentId
from app.agents.registry import AgentRegistry
from app.core.config import Settings
from app.core.startup import build_context

# Four 16-bit samples: 0, 16384, -32768, 32767
PCM_SAMPLES = [0, 16384, -32768, 32767]
PCM_B64 = base64.b64encode(struct.pack("<4h", *PCM_SAMPLES)).decode("ascii")

FAST_ANSWER_JSON = json.dumps({"finalAnswer": "Answer: A. $x=5$", "casioSteps": "MODE 5 1\nEnter A, B, C\n="})
PRACTICE_JSON = json.dumps({"question": "Solve $x^2-4=0$", "options": ["A. 2", "B. ±2", "C. 4", "D. 0"], "answer": "B"})

DEFAULT_REPLIES = {
    AgentId.FAST_ANSWER.value: FAST_ANSWER_JSON,
    AgentId.SOCRATIC.value: "Step 1: move terms. Step 2: divide by 2, so $x=5$.",
    AgentId.PRACTICE.value: "1. Solve $2x^2-3x+1=0$.\n2. Solve $x^4-5x^2+4=0$.",
    "summary": "The answer is A, x equals five.",
    "practice_question": PRACTICE_JSON,
}


def text_body(text):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"totalTokenCount": 42}
    }


def audio_body(data):
    return {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "audio/pcm", "data": data}}]}}]}


class GeminiStub:
    """Scripted generateContent backend recording every request it receives"""

    def __init__(self):
        registry = AgentRegistry()
        self._experts = {registry.describe(agent).display_name: agent.value for agent in registry.agents()}
        self.calls = []
        self.headers = []
        self.failures = {}  # kind -> list of HTTP statuses returned before succeeding
        self.replies = dict(DEFAULT_REPLIES)
        self.delays = {}  # kind -> seconds
        self.log = []  # (event, kind) in order of occurrence

    def kind_of(self, body):
        config = body.get("generationConfig") or {}
        if "responseModalities" in config:
            return "speech"
        text = next(part["text"] for part in body["contents"][0]["parts"] if "text" in part)
        if text.startswith("Summarize"):
            return "summary"
        if text.startswith("Based on:"):
            return "practice_question"
        for name, agent in self._experts.items():
            if f"Expert: {name}." in text:
                return agent
        return "unknown"

    def calls_for(self, kind):
        return [body for body in self.calls if self.kind_of(body) == kind]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        kind = self.kind_of(body)
        self.calls.append(body)
        self.headers.append(dict(request.headers))
        self.log.append(("start", kind))

        if self.delays.get(kind):
            await asyncio.sleep(self.delays[kind])

        pending = self.failures.get(kind)
        if pending:
            status = pending.pop(0)
            self.log.append(("fail", kind))
            error_status = "RESOURCE_EXHAUSTED" if status == 429 else "INTERNAL"
            return httpx.Response(status, json={"error": {"code": status, "status": error_status}})

        self.log.append(("end", kind))
        if kind == "speech":
            return httpx.Response(200, json=audio_body(PCM_B64))
        return httpx.Response(200, json=text_body(self.replies.get(kind, "")))


class FakeSource:
    def __init__(self, samples):
        self.samples = samples
        self.on_ended = None
        self.started = False
        self.stopped = False
        self.disconnected = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def disconnect(self):
        self.disconnected = True

    def finish(self):
        """Simulate the device reaching the end of the buffer"""
        self.on_ended()


class FakeAudioContext:
    created = 0

    def __init__(self):
        FakeAudioContext.created += 1
        self.state = "suspended"
        self.resumed = 0
        self.sources = []

    async def resume(self):
        self.resumed += 1
        self.state = "running"

    def create_source(self, samples):
        source = FakeSource(samples)
        self.sources.append(source)
        return source

    async def close(self):
        self.state = "closed"


@pytest.fixture
def gemini():
    return GeminiStub()


@pytest.fixture
def make_context(gemini):
    """Factory for an AssistantContext wired to the stub backend"""

    def _make(**overrides):
        values = {
            "gemini_api_key": "test-key",
            "retry_delay_seconds": 0,
            "enable_enrichments": False,
            "allowed_origins": ["http://localhost:5173"],
        }
        values.update(overrides)
        return build_context(
            Settings(**values),
            transport=httpx.MockTransport(gemini.handle),
            audio_context_factory=FakeAudioContext
        )

    return _make


@pytest.fixture
def assistant(make_context):
    return make_context()
