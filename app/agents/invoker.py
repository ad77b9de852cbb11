"""
Remote Invoker
Calls the generative backend for one agent, enforces structured output and
retries rate-limited calls
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union
from pydantic import ValidationError
import asyncio
import json
import logging

from .cache import CacheStore, RequestFingerprint
from .models import AgentId, PracticeQuestion, Subject, TaskResult
from .prompts.templates import PromptTemplates
from .registry import PRACTICE_QUESTION_SCHEMA, AgentDescriptor, AgentRegistry
from .utils.llm_client import GeminiClient
from app.core.errors import BackendOverloaded, InvalidInput, MalformedResponse, TransientBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUMMARY = "summary"
PRACTICE_QUESTION = "practice_question"
SPEECH = "speech"


def image_part(image: str) -> Dict[str, Any]:
    """Inline JPEG part from a bare base64 string or a data URL"""
    data = image.split(",", 1)[1] if "," in image else image
    return {"inlineData": {"mimeType": "image/jpeg", "data": data}}


def parse_structured(descriptor: AgentDescriptor, text: str) -> Dict[str, Any]:
    """
    Parse and validate a structured reply against the agent's response model.
    
    Raises:
        MalformedResponse: Not JSON, not an object, or a required field is missing
    """
    if not text or not text.strip():
        raise MalformedResponse(f"Empty response from {descriptor.agent_id.value}", text)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Response from {descriptor.agent_id.value} is not valid JSON: {e}", text)
    if not isinstance(payload, dict):
        raise MalformedResponse(f"Response from {descriptor.agent_id.value} is not a JSON object", text)
    if descriptor.response_model is not None:
        try:
            descriptor.response_model.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponse(
                f"Response from {descriptor.agent_id.value} failed schema validation: {e.error_count()} error(s)",
                text
            )
    return payload


class RemoteInvoker:
    """Runs single agent invocations and derived enrichments against the backend"""

    def __init__(
        self,
        client: GeminiClient,
        registry: AgentRegistry,
        cache: CacheStore,
        text_model: str = "gemini-3-flash-preview",
        tts_model: str = "gemini-2.5-flash-preview-tts",
        tts_voice: str = "Kore",
        max_attempts: int = 3,
        retry_delay: float = 0.5
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.registry = registry
        self.cache = cache
        self.text_model = text_model
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def _with_retry(self, label: str, call: Callable[[], Awaitable[T]]) -> T:
        """Retry transient failures with the identical request, up to max_attempts in total"""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except TransientBackendError as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{label}: still rate limited after {attempt} attempts")
                    raise BackendOverloaded(attempt) from e
                logger.warning(f"{label}: rate limited on attempt {attempt}/{self.max_attempts}, retrying")
                if self.retry_delay:
                    await asyncio.sleep(self.retry_delay)

    def build_parts(
        self,
        descriptor: AgentDescriptor,
        subject: Subject,
        input: str,
        image: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        prompt = PromptTemplates.task(subject.label, descriptor.display_name, descriptor.instruction, input or "")
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        if image:
            parts.insert(0, image_part(image))
        return parts

    def generation_config(self, descriptor: AgentDescriptor) -> Dict[str, Any]:
        config: Dict[str, Any] = {"temperature": descriptor.temperature, "topP": descriptor.top_p}
        if descriptor.is_structured:
            config["responseMimeType"] = "application/json"
            config["responseSchema"] = descriptor.response_schema
        return config

    async def invoke(
        self,
        agent_id: Union[AgentId, str],
        subject: Union[Subject, str],
        input: str,
        image: Optional[str] = None
    ) -> TaskResult:
        """
        Invoke one agent and cache its result.
        
        Args:
            agent_id: Registered agent identifier
            subject: Subject the problem belongs to
            input: User text (may be empty when an image is given)
            image: Optional base64 JPEG, bare or as a data URL
            
        Returns:
            TaskResult, already written to the result cache
            
        Raises:
            InvalidInput, UnknownAgent, BackendOverloaded, BackendError, MalformedResponse
        """
        descriptor = self.registry.describe(agent_id)
        try:
            subject = Subject(subject)
        except ValueError:
            raise InvalidInput(f"Unknown subject: {subject!r}", {"subject": str(subject)})
        parts = self.build_parts(descriptor, subject, input, image)
        config = self.generation_config(descriptor)
        label = descriptor.agent_id.value

        logger.info(f"Invoking agent {label} (subject={subject.value}, image={'yes' if image else 'no'})")
        text = await self._with_retry(
            label,
            lambda: self.client.generate_text(self.text_model, parts, config)
        )

        if descriptor.is_structured:
            parse_structured(descriptor, text)
        elif not text:
            raise MalformedResponse(f"Empty response from {label}", text)

        result = TaskResult(agent=descriptor.agent_id, subject=subject, text=text, structured=descriptor.is_structured)
        await self.cache.results.put(self.cache.fingerprint(subject, descriptor.agent_id, input, image), result)
        return result

    async def summarize(self, content: str) -> str:
        """One short sentence summarizing content, for speech"""
        if not content:
            return ""
        fingerprint = RequestFingerprint.for_derived(SUMMARY, content)
        cached = await self.cache.results.get(fingerprint)
        if cached is not None:
            return cached

        text = await self._with_retry(
            SUMMARY,
            lambda: self.client.generate_text(self.text_model, [{"text": PromptTemplates.spoken_summary(content)}])
        )
        text = text.strip()
        if text:
            await self.cache.results.put(fingerprint, text)
        return text

    async def practice_question(self, content: str) -> Optional[PracticeQuestion]:
        """
        Multiple choice question similar to content.
        Returns None when the reply has no options or no answer.
        """
        if not content:
            return None
        fingerprint = RequestFingerprint.for_derived(PRACTICE_QUESTION, content)
        cached = await self.cache.results.get(fingerprint)
        if cached is not None:
            return cached

        config = {"responseMimeType": "application/json", "responseSchema": PRACTICE_QUESTION_SCHEMA}
        text = await self._with_retry(
            PRACTICE_QUESTION,
            lambda: self.client.generate_text(
                self.text_model, [{"text": PromptTemplates.practice_question(content)}], config
            )
        )
        try:
            payload = json.loads(text or "{}")
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Practice question is not valid JSON: {e}", text)

        if not isinstance(payload, dict) or not payload.get("options") or not payload.get("answer"):
            logger.info("Practice question reply had no options or answer, skipping")
            return None
        try:
            question = PracticeQuestion.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponse(f"Practice question failed schema validation: {e.error_count()} error(s)", text)

        await self.cache.results.put(fingerprint, question)
        return question

    async def synthesize_speech(self, text: str) -> Optional[str]:
        """Base64 24 kHz mono 16-bit PCM for text, cached in the audio store"""
        if not text:
            return None
        fingerprint = RequestFingerprint.for_derived(SPEECH, text)
        cached = await self.cache.audio.get(fingerprint)
        if cached is not None:
            return cached

        audio = await self._with_retry(
            SPEECH,
            lambda: self.client.generate_audio(self.tts_model, text, self.tts_voice)
        )
        if audio:
            await self.cache.audio.put(fingerprint, audio)
        return audio
