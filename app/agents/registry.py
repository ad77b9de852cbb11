"""
Agent Registry
Declarative descriptors for every agent persona, looked up by identifier
"""

from typing import Any, Dict, List, Optional, Type, Union
from pydantic import BaseModel
import logging

from .models import AgentId, FastAnswer, OutputContract
from .prompts.templates import PromptTemplates
from app.core.errors import UnknownAgent

logger = logging.getLogger(__name__)


# Response schemas in the backend's declaration format
FAST_ANSWER_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "finalAnswer": {"type": "STRING", "description": "Final result only."},
        "casioSteps": {"type": "STRING", "description": "Casio calculator key sequence."}
    },
    "required": ["finalAnswer", "casioSteps"]
}

PRACTICE_QUESTION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "question": {"type": "STRING"},
        "options": {"type": "ARRAY", "items": {"type": "STRING"}},
        "answer": {"type": "STRING"}
    },
    "required": ["question", "options", "answer"]
}


class AgentDescriptor(BaseModel):
    """Immutable description of one agent persona"""
    agent_id: AgentId
    display_name: str
    instruction: str
    output_contract: OutputContract = OutputContract.FREE_TEXT
    response_schema: Optional[Dict[str, Any]] = None
    response_model: Optional[Type[BaseModel]] = None
    temperature: float = 0.1
    top_p: float = 0.5

    class Config:
        frozen = True
        arbitrary_types_allowed = True

    @property
    def is_structured(self) -> bool:
        return self.output_contract == OutputContract.STRUCTURED


DEFAULT_DESCRIPTORS = (
    AgentDescriptor(
        agent_id=AgentId.FAST_ANSWER,
        display_name="1s answer + Casio",
        instruction=PromptTemplates.FAST_ANSWER,
        output_contract=OutputContract.STRUCTURED,
        response_schema=FAST_ANSWER_SCHEMA,
        response_model=FastAnswer
    ),
    AgentDescriptor(
        agent_id=AgentId.SOCRATIC,
        display_name="AI tutor",
        instruction=PromptTemplates.SOCRATIC
    ),
    AgentDescriptor(
        agent_id=AgentId.PRACTICE,
        display_name="Skill practice",
        instruction=PromptTemplates.PRACTICE
    ),
)


class AgentRegistry:
    """Maps agent identifiers to their descriptors. Fixed after construction."""

    def __init__(self, descriptors=DEFAULT_DESCRIPTORS):
        self._descriptors: Dict[AgentId, AgentDescriptor] = {d.agent_id: d for d in descriptors}
        logger.info(f"Agent registry initialized with {len(self._descriptors)} agents")

    @staticmethod
    def resolve(agent_id: Union[AgentId, str]) -> AgentId:
        """Normalize an identifier to AgentId, raising UnknownAgent for anything else"""
        if isinstance(agent_id, AgentId):
            return agent_id
        try:
            return AgentId(agent_id)
        except ValueError:
            raise UnknownAgent(agent_id)

    def describe(self, agent_id: Union[AgentId, str]) -> AgentDescriptor:
        resolved = self.resolve(agent_id)
        if resolved not in self._descriptors:
            raise UnknownAgent(agent_id)
        return self._descriptors[resolved]

    def agents(self) -> List[AgentId]:
        return list(self._descriptors.keys())

    def __contains__(self, agent_id) -> bool:
        try:
            self.describe(agent_id)
        except UnknownAgent:
            return False
        return True
