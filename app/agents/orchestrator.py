"""
Study Orchestrator
Runs the agent the student picked first, then fans the remaining agents out
in the background and streams every result as it lands
"""

from typing import AsyncIterator, Coroutine, Dict, Iterable, Optional, Set, Union
import asyncio
import logging
import time

from .cache import CacheStore
from .invoker import RemoteInvoker
from .models import (
    AgentId,
    AgentOutcome,
    EnrichmentKind,
    EventType,
    OrchestrationEvent,
    PracticeQuestion,
    Subject,
    TaskResult,
)
from .registry import AgentRegistry
from app.core.errors import (
    ErrorResponse,
    InvalidInput,
    StudyAssistantError,
    create_error_response,
)

logger = logging.getLogger(__name__)


def _agent_key(agent) -> str:
    return str(getattr(agent, "value", agent))


class OrchestrationHandle:
    """
    Live view of one orchestration run.
    
    Iterate it (async for) to receive OrchestrationEvents: the primary agent's
    result first, then secondary results and enrichments in arrival order, then
    a single done event. Dropping the handle does not cancel background work.
    """
    
    def __init__(self, primary_agent: str):
        self.primary_agent = primary_agent
        self.outcomes: Dict[str, AgentOutcome] = {}
        self.summaries: Dict[str, str] = {}
        self.audio: Dict[str, str] = {}
        self.practice: Optional[PracticeQuestion] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending: Set[asyncio.Task] = set()
        self._sealed = False
        self._finished = asyncio.Event()
    
    @property
    def primary(self) -> Optional[AgentOutcome]:
        return self.outcomes.get(self.primary_agent)
    
    @property
    def done(self) -> bool:
        return self._finished.is_set()
    
    def _emit(self, event: OrchestrationEvent):
        self._queue.put_nowait(event)
    
    def _record(self, outcome: AgentOutcome):
        self.outcomes[outcome.agent] = outcome
        self._emit(OrchestrationEvent(type=EventType.AGENT_RESULT, agent=outcome.agent, outcome=outcome))
    
    def _enriched(self, agent: str, kind: EnrichmentKind, value):
        if kind == EnrichmentKind.SUMMARY:
            self.summaries[agent] = value
        elif kind == EnrichmentKind.AUDIO:
            self.audio[agent] = value
        elif kind == EnrichmentKind.PRACTICE_QUESTION:
            self.practice = value
        self._emit(OrchestrationEvent(type=EventType.ENRICHMENT, agent=agent, kind=kind, value=value))
    
    def _track(self, task: asyncio.Task):
        self._pending.add(task)
        task.add_done_callback(self._untrack)
    
    def _untrack(self, task: asyncio.Task):
        self._pending.discard(task)
        self._maybe_finish()
    
    def _seal(self):
        """No more top-level work will be added"""
        self._sealed = True
        self._maybe_finish()
    
    def _maybe_finish(self):
        if self._sealed and not self._pending and not self._finished.is_set():
            self._finished.set()
            self._emit(OrchestrationEvent(type=EventType.DONE))
    
    async def wait(self) -> Dict[str, AgentOutcome]:
        """Wait for every agent and enrichment to settle"""
        await self._finished.wait()
        return self.outcomes
    
    async def events(self) -> AsyncIterator[OrchestrationEvent]:
        """
        Stream events until DONE. Events before DONE go to a single reader;
        DONE stays queued so every later iteration ends immediately.
        """
        while True:
            event = await self._queue.get()
            if event.type == EventType.DONE:
                self._queue.put_nowait(event)
                yield event
                break
            yield event
    
    def __aiter__(self) -> AsyncIterator[OrchestrationEvent]:
        return self.events()


class StudyOrchestrator:
    """
    Coordinates agent invocations for one student request.
    Primary agent is awaited; secondary agents and enrichments run as
    independent tasks whose failures stay in their own result slot.
    """
    
    def __init__(
        self,
        registry: AgentRegistry,
        invoker: RemoteInvoker,
        cache: CacheStore,
        enable_enrichments: bool = True
    ):
        self.registry = registry
        self.invoker = invoker
        self.cache = cache
        self.enable_enrichments = enable_enrichments
        self._background: Set[asyncio.Task] = set()
        logger.info(f"Study orchestrator initialized (enrichments={'on' if enable_enrichments else 'off'})")
    
    async def run(
        self,
        subject: Union[Subject, str],
        primary_agent: Union[AgentId, str],
        all_agents: Iterable[Union[AgentId, str]],
        input: Optional[str],
        image: Optional[str] = None
    ) -> OrchestrationHandle:
        """
        Run primary_agent, then every other agent in all_agents in the background.
        
        Args:
            subject: Subject of the problem
            primary_agent: Agent the student selected
            all_agents: Full agent set; the primary may or may not be included
            input: Problem text or speech transcript
            image: Optional base64 JPEG of the problem
            
        Returns:
            OrchestrationHandle whose primary outcome is already available
            
        Raises:
            InvalidInput: Neither text nor image, or an unknown subject
            UnknownAgent: primary_agent is not registered
        """
        if not (input or "").strip() and not image:
            raise InvalidInput("Provide problem text or an image")
        try:
            subject = Subject(subject)
        except ValueError:
            raise InvalidInput(f"Unknown subject: {subject!r}", {"subject": str(subject)})
        
        primary = self.registry.describe(primary_agent).agent_id
        handle = OrchestrationHandle(primary.value)
        
        logger.info(f"Orchestrating {subject.value}: primary={primary.value}")
        outcome = await self._run_agent(subject, primary, input, image, is_primary=True)
        handle._record(outcome)
        if outcome.ok:
            self._enrich(handle, outcome.result)
        
        seen = {primary.value}
        for agent in all_agents:
            key = _agent_key(agent)
            if key in seen:
                continue
            seen.add(key)
            self._spawn(handle, self._run_secondary(handle, subject, agent, input, image))
        
        handle._seal()
        return handle
    
    async def _run_agent(
        self,
        subject: Subject,
        agent,
        input: Optional[str],
        image: Optional[str],
        is_primary: bool = False
    ) -> AgentOutcome:
        """Run one agent, turning any failure into an error slot"""
        start_time = time.time()
        key = _agent_key(agent)
        
        def elapsed() -> int:
            return int((time.time() - start_time) * 1000)
        
        try:
            descriptor = self.registry.describe(agent)
            fingerprint = self.cache.fingerprint(subject, descriptor.agent_id, input, image)
            cached = await self.cache.results.get(fingerprint)
            if cached is not None:
                logger.info(f"[Cache Hit] {key}")
                return AgentOutcome(agent=key, is_primary=is_primary, cached=True, result=cached, elapsed_ms=elapsed())
            
            result = await self.invoker.invoke(descriptor.agent_id, subject, input or "", image)
            logger.info(f"Agent {key} completed in {elapsed()}ms")
            return AgentOutcome(agent=key, is_primary=is_primary, result=result, elapsed_ms=elapsed())
        
        except StudyAssistantError as e:
            logger.warning(f"Agent {key} failed: {e.message}")
            return AgentOutcome(agent=key, is_primary=is_primary, error=e.to_response(), elapsed_ms=elapsed())
        
        except Exception as e:
            logger.error(f"Agent {key} crashed: {e}", exc_info=True)
            return AgentOutcome(
                agent=key,
                is_primary=is_primary,
                error=ErrorResponse(**create_error_response(str(e))),
                elapsed_ms=elapsed()
            )
    
    async def _run_secondary(self, handle: OrchestrationHandle, subject: Subject, agent, input, image):
        outcome = await self._run_agent(subject, agent, input, image)
        handle._record(outcome)
        if outcome.ok:
            self._enrich(handle, outcome.result)
    
    def _spawn(self, handle: OrchestrationHandle, coro: Coroutine):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        handle._track(task)
    
    def _enrich(self, handle: OrchestrationHandle, result: TaskResult):
        """Schedule best-effort spoken summary (and practice question for fast answers)"""
        if not self.enable_enrichments:
            return
        agent = result.agent.value
        source = result.text
        if result.agent == AgentId.FAST_ANSWER and result.data:
            source = result.data.get("finalAnswer", "")
            self._spawn(handle, self._practice_question(handle, agent, source))
        self._spawn(handle, self._spoken_summary(handle, agent, source))
    
    async def _practice_question(self, handle: OrchestrationHandle, agent: str, source: str):
        try:
            question = await self.invoker.practice_question(source)
        except Exception as e:
            logger.warning(f"Practice question for {agent} failed: {e}")
            return
        if question is not None:
            handle._enriched(agent, EnrichmentKind.PRACTICE_QUESTION, question)
    
    async def _spoken_summary(self, handle: OrchestrationHandle, agent: str, source: str):
        try:
            summary = await self.invoker.summarize(source)
            if not summary:
                return
            handle._enriched(agent, EnrichmentKind.SUMMARY, summary)
            audio = await self.invoker.synthesize_speech(summary)
        except Exception as e:
            logger.warning(f"Spoken summary for {agent} failed: {e}")
            return
        if audio:
            handle._enriched(agent, EnrichmentKind.AUDIO, audio)
    
    def pending_tasks(self) -> int:
        """Background tasks still running across all handles"""
        return len(self._background)
