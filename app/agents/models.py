"""
Agent Communication Models
Pydantic models for structured data exchange between the orchestrator, the API and callers
"""

from pydantic import BaseModel, Field, computed_field
from typing import Dict, Any, Optional, List
from enum import Enum
import json

from app.core.errors import ErrorResponse


class Subject(str, Enum):
    """School subjects the assistant answers questions for"""
    MATH = "math"
    PHYSICS = "physics"
    CHEMISTRY = "chemistry"

    @property
    def label(self) -> str:
        return SUBJECT_LABELS[self]


SUBJECT_LABELS = {
    Subject.MATH: "Mathematics",
    Subject.PHYSICS: "Physics",
    Subject.CHEMISTRY: "Chemistry",
}


class AgentId(str, Enum):
    """Closed set of agent personas"""
    FAST_ANSWER = "fast_answer"
    SOCRATIC = "socratic"
    PRACTICE = "practice"


class OutputContract(str, Enum):
    """Shape of an agent's reply"""
    FREE_TEXT = "free_text"
    STRUCTURED = "structured"


class FastAnswer(BaseModel):
    """Structured reply of the fast answer agent"""
    final_answer: str = Field(alias="finalAnswer", min_length=1)
    casio_steps: str = Field(alias="casioSteps")

    class Config:
        populate_by_name = True

    @property
    def steps(self) -> List[str]:
        return [line.strip() for line in self.casio_steps.split("\n") if line.strip()]


class PracticeQuestion(BaseModel):
    """Multiple choice follow-up question derived from an answer"""
    question: str
    options: List[str]
    answer: str


class TaskResult(BaseModel):
    """
    Result of one agent invocation.
    Owned by the cache once stored; never mutated afterwards.
    The stored payload is the raw text; `data` parses a fresh copy on every
    access so callers cannot alter the cached entry.
    """
    agent: AgentId
    subject: Subject
    text: str
    structured: bool = False

    class Config:
        frozen = True

    @computed_field
    @property
    def data(self) -> Optional[Dict[str, Any]]:
        if not self.structured:
            return None
        return json.loads(self.text)

    @property
    def is_structured(self) -> bool:
        return self.structured


class AgentOutcome(BaseModel):
    """Result slot for a single agent within one orchestration run"""
    agent: str
    is_primary: bool = False
    cached: bool = False
    result: Optional[TaskResult] = None
    error: Optional[ErrorResponse] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.result is not None and self.error is None


class EventType(str, Enum):
    AGENT_RESULT = "agent_result"
    ENRICHMENT = "enrichment"
    DONE = "done"


class EnrichmentKind(str, Enum):
    SUMMARY = "summary"
    AUDIO = "audio"
    PRACTICE_QUESTION = "practice_question"


class OrchestrationEvent(BaseModel):
    """
    Incremental update emitted by an orchestration run.
    One agent_result per agent (primary first), zero or more enrichments, one done.
    """
    type: EventType
    agent: Optional[str] = None
    outcome: Optional[AgentOutcome] = None
    kind: Optional[EnrichmentKind] = None
    value: Optional[Any] = None


class SolveRequest(BaseModel):
    """Inbound request from the UI collaborator"""
    subject: Subject
    primary_agent: str
    agents: List[str] = Field(default_factory=lambda: [agent.value for agent in AgentId])
    input: str = ""
    image: Optional[str] = None  # base64 JPEG, bare or data URL


class SpeechRequest(BaseModel):
    text: str
