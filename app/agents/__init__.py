"""
Multi-Agent orchestration and caching core for the study assistant
"""

from .models import (
    AgentId,
    AgentOutcome,
    FastAnswer,
    OrchestrationEvent,
    PracticeQuestion,
    SolveRequest,
    Subject,
    TaskResult,
)
from .cache import CacheStore, ImageKeyPolicy, RequestFingerprint, SimpleCache
from .registry import AgentDescriptor, AgentRegistry
from .invoker import RemoteInvoker
from .orchestrator import OrchestrationHandle, StudyOrchestrator

__all__ = [
    "AgentId",
    "AgentOutcome",
    "FastAnswer",
    "OrchestrationEvent",
    "PracticeQuestion",
    "SolveRequest",
    "Subject",
    "TaskResult",
    "CacheStore",
    "ImageKeyPolicy",
    "RequestFingerprint",
    "SimpleCache",
    "AgentDescriptor",
    "AgentRegistry",
    "RemoteInvoker",
    "OrchestrationHandle",
    "StudyOrchestrator"
]
