"""
Remote invoker tests against the scripted Gemini backend
"""

import pytest

from app.agents.cache import RequestFingerprint
from app.agents.models import AgentId, PracticeQuestion, Subject, TaskResult
from app.core.errors import (
    BackendError,
    BackendOverloaded,
    InvalidInput,
    MalformedResponse,
    TransientBackendError,
    UnknownAgent,
)
from conftest import PCM_B64


class TestInvoke:

    @pytest.mark.asyncio
    async def test_free_text_result_is_cached(self, assistant, gemini):
        result = await assistant.invoker.invoke(AgentId.SOCRATIC, Subject.MATH, "2x = 10")

        assert isinstance(result, TaskResult)
        assert result.text.startswith("Step 1")
        assert result.data is None
        fingerprint = assistant.cache.fingerprint(Subject.MATH, AgentId.SOCRATIC, "2x = 10")
        assert await assistant.cache.results.get(fingerprint) is result
        assert len(gemini.calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_subject_is_invalid_input(self, assistant, gemini):
        with pytest.raises(InvalidInput):
            await assistant.invoker.invoke(AgentId.SOCRATIC, "biology", "q")

        assert gemini.calls == []
        assert assistant.cache.results.get_size() == 0

    @pytest.mark.asyncio
    async def test_request_shape(self, assistant, gemini):
        await assistant.invoker.invoke("socratic", "physics", "a ball falls for 2s")

        body = gemini.calls[0]
        text = body["contents"][0]["parts"][0]["text"]
        assert "Subject: Physics." in text
        assert "Expert: AI tutor." in text
        assert text.endswith("Content: a ball falls for 2s")
        assert body["generationConfig"] == {"temperature": 0.1, "topP": 0.5}
        assert gemini.headers[0]["x-goog-api-key"] == "test-key"

    @pytest.mark.asyncio
    async def test_image_is_attached_inline_before_text(self, assistant, gemini):
        await assistant.invoker.invoke("socratic", "math", "", "data:image/jpeg;base64,QUJD")

        parts = gemini.calls[0]["contents"][0]["parts"]
        assert parts[0] == {"inlineData": {"mimeType": "image/jpeg", "data": "QUJD"}}
        assert "text" in parts[1]

    @pytest.mark.asyncio
    async def test_structured_agent_requests_schema_and_parses(self, assistant, gemini):
        result = await assistant.invoker.invoke(AgentId.FAST_ANSWER, Subject.MATH, "x + 1 = 6")

        config = gemini.calls[0]["generationConfig"]
        assert config["responseMimeType"] == "application/json"
        assert config["responseSchema"]["required"] == ["finalAnswer", "casioSteps"]
        assert result.data["finalAnswer"] == "Answer: A. $x=5$"
        assert "MODE 5 1" in result.data["casioSteps"]

    @pytest.mark.asyncio
    async def test_missing_required_field_is_malformed(self, assistant, gemini):
        gemini.replies["fast_answer"] = '{"finalAnswer": "42"}'

        with pytest.raises(MalformedResponse) as exc_info:
            await assistant.invoker.invoke(AgentId.FAST_ANSWER, Subject.MATH, "q")

        assert exc_info.value.raw_text == '{"finalAnswer": "42"}'
        assert assistant.cache.results.get_size() == 0
        # Parse failures are not retried
        assert len(gemini.calls) == 1

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed_with_raw_text(self, assistant, gemini):
        gemini.replies["fast_answer"] = "Answer: 42"

        with pytest.raises(MalformedResponse) as exc_info:
            await assistant.invoker.invoke(AgentId.FAST_ANSWER, Subject.MATH, "q")

        assert exc_info.value.details["raw_response"] == "Answer: 42"

    @pytest.mark.asyncio
    async def test_empty_free_text_is_malformed(self, assistant, gemini):
        gemini.replies["socratic"] = ""
        with pytest.raises(MalformedResponse):
            await assistant.invoker.invoke(AgentId.SOCRATIC, Subject.MATH, "q")

    @pytest.mark.asyncio
    async def test_unknown_agent(self, assistant, gemini):
        with pytest.raises(UnknownAgent):
            await assistant.invoker.invoke("speedy", Subject.MATH, "q")
        assert gemini.calls == []


class TestRetry:

    @pytest.mark.asyncio
    async def test_fewer_failures_than_bound_succeed(self, make_context, gemini):
        assistant = make_context(max_attempts=3)
        gemini.failures["socratic"] = [429, 429]

        result = await assistant.invoker.invoke(AgentId.SOCRATIC, Subject.MATH, "q")

        assert result.text
        assert len(gemini.calls_for("socratic")) == 3

    @pytest.mark.asyncio
    async def test_failures_at_bound_become_overloaded(self, make_context, gemini):
        assistant = make_context(max_attempts=3)
        gemini.failures["socratic"] = [429, 429, 429]

        with pytest.raises(BackendOverloaded) as exc_info:
            await assistant.invoker.invoke(AgentId.SOCRATIC, Subject.MATH, "q")

        assert isinstance(exc_info.value, BackendError)
        assert not isinstance(exc_info.value, TransientBackendError)
        assert exc_info.value.attempts == 3
        assert len(gemini.calls_for("socratic")) == 3
        assert assistant.cache.results.get_size() == 0

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, assistant, gemini):
        gemini.failures["socratic"] = [500, 500]

        with pytest.raises(BackendError) as exc_info:
            await assistant.invoker.invoke(AgentId.SOCRATIC, Subject.MATH, "q")

        assert not isinstance(exc_info.value, TransientBackendError)
        assert exc_info.value.status_code == 500
        assert len(gemini.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_api_key(self, make_context, gemini):
        assistant = make_context(gemini_api_key=None)
        with pytest.raises(BackendError):
            await assistant.invoker.invoke(AgentId.SOCRATIC, Subject.MATH, "q")
        assert gemini.calls == []


class TestDerived:

    @pytest.mark.asyncio
    async def test_summarize_is_cached(self, assistant, gemini):
        first = await assistant.invoker.summarize("Answer: A. $x=5$")
        second = await assistant.invoker.summarize("Answer: A. $x=5$")

        assert first == second == "The answer is A, x equals five."
        assert len(gemini.calls_for("summary")) == 1

    @pytest.mark.asyncio
    async def test_summarize_empty_content_skips_backend(self, assistant, gemini):
        assert await assistant.invoker.summarize("") == ""
        assert gemini.calls == []

    @pytest.mark.asyncio
    async def test_practice_question(self, assistant, gemini):
        question = await assistant.invoker.practice_question("Answer: B")

        assert isinstance(question, PracticeQuestion)
        assert question.answer == "B"
        assert len(question.options) == 4
        config = gemini.calls[0]["generationConfig"]
        assert config["responseSchema"]["required"] == ["question", "options", "answer"]

        again = await assistant.invoker.practice_question("Answer: B")
        assert again is question
        assert len(gemini.calls) == 1

    @pytest.mark.asyncio
    async def test_practice_question_without_options_is_dropped(self, assistant, gemini):
        gemini.replies["practice_question"] = '{"question": "q", "options": [], "answer": "A"}'
        assert await assistant.invoker.practice_question("Answer: B") is None

    @pytest.mark.asyncio
    async def test_speech_goes_to_audio_cache(self, assistant, gemini):
        audio = await assistant.invoker.synthesize_speech("The answer is five.")
        assert audio == PCM_B64

        body = gemini.calls[0]
        assert body["generationConfig"]["responseModalities"] == ["AUDIO"]
        voice = body["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"]
        assert voice == "Kore"

        fingerprint = RequestFingerprint.for_derived("speech", "The answer is five.")
        assert await assistant.cache.audio.get(fingerprint) == PCM_B64
        assert assistant.cache.results.get_size() == 0

        await assistant.invoker.synthesize_speech("The answer is five.")
        assert len(gemini.calls) == 1

    @pytest.mark.asyncio
    async def test_speech_retries_rate_limits(self, assistant, gemini):
        gemini.failures["speech"] = [429]
        assert await assistant.invoker.synthesize_speech("hi") == PCM_B64
        assert len(gemini.calls_for("speech")) == 2
