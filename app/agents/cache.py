"""
In-Memory Cache Store
Content-addressed cache for agent results and synthesized audio
"""

from datetime import datetime, timedelta
from typing import Any, Optional
from collections import OrderedDict
from enum import Enum
import asyncio
import hashlib
import logging
import sys

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ImageKeyPolicy(str, Enum):
    """How an attached image contributes to a request fingerprint"""
    PRESENCE = "presence"
    CONTENT = "content"


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class RequestFingerprint(BaseModel):
    """
    Deterministic cache key for one logical request.
    Under the presence policy two different photos with the same text collide.
    """
    kind: str = "task"
    subject: str = ""
    agent: str = ""
    input: str = ""
    image: str = "no_img"

    class Config:
        frozen = True

    @classmethod
    def for_task(
        cls,
        subject: str,
        agent: str,
        input: Optional[str],
        image: Optional[str] = None,
        policy: ImageKeyPolicy = ImageKeyPolicy.PRESENCE
    ) -> "RequestFingerprint":
        if not image:
            image_part = "no_img"
        elif ImageKeyPolicy(policy) == ImageKeyPolicy.CONTENT:
            image_part = _digest(image.split(",", 1)[-1])
        else:
            image_part = "has_img"
        return cls(
            subject=str(getattr(subject, "value", subject)),
            agent=str(getattr(agent, "value", agent)),
            input=(input or "").strip(),
            image=image_part
        )

    @classmethod
    def for_derived(cls, kind: str, content: str) -> "RequestFingerprint":
        """Key for summaries, practice questions and speech derived from a text"""
        return cls(kind=kind, input=_digest(content))

    @property
    def key(self) -> str:
        return f"{self.kind}|{self.subject}|{self.agent}|{self.input}|{self.image}"


class SimpleCache:
    """
    In-memory cache keyed by fingerprint.
    Unbounded and without expiry unless max_items / ttl_seconds are given;
    long-running deployments should set at least one of them.
    """
    
    def __init__(
        self,
        name: str = "results",
        max_items: Optional[int] = None,
        ttl_seconds: Optional[float] = None
    ):
        self.name = name
        self._cache: OrderedDict = OrderedDict()  # LRU ordering
        self._lock = asyncio.Lock()
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self._total_size_bytes = 0
        logger.info(f"SimpleCache '{name}' initialized (max_items={max_items}, ttl_seconds={ttl_seconds})")
    
    @staticmethod
    def _key(fingerprint: Any) -> str:
        return fingerprint.key if isinstance(fingerprint, RequestFingerprint) else str(fingerprint)
    
    def _estimate_size(self, value: Any) -> int:
        """Rough memory size estimate in bytes"""
        if isinstance(value, (str, bytes)):
            return sys.getsizeof(value)
        elif isinstance(value, dict):
            return sum(sys.getsizeof(k) + self._estimate_size(v) for k, v in value.items())
        elif isinstance(value, list):
            return sum(self._estimate_size(item) for item in value)
        elif isinstance(value, BaseModel):
            return self._estimate_size(value.model_dump())
        else:
            return sys.getsizeof(value)
    
    def _evict_oldest(self):
        """Evict oldest item from cache (LRU)"""
        if self._cache:
            oldest_key, (_, _, size) = self._cache.popitem(last=False)
            self._total_size_bytes -= size
            logger.debug(f"Cache EVICT [{self.name}]: {oldest_key} (freed {size} bytes)")
    
    async def get(self, fingerprint: Any) -> Optional[Any]:
        """
        Look up a cached value. Never computes anything on a miss.
        
        Args:
            fingerprint: RequestFingerprint or plain string key
            
        Returns:
            Cached value, None if absent or expired
        """
        key = self._key(fingerprint)
        async with self._lock:
            if key in self._cache:
                data, timestamp, size = self._cache[key]
                age = datetime.now() - timestamp
                
                if self.ttl_seconds is None or age < timedelta(seconds=self.ttl_seconds):
                    self._cache.move_to_end(key)
                    logger.debug(f"Cache HIT [{self.name}]: {key} (age: {age.total_seconds():.1f}s)")
                    return data
                
                logger.debug(f"Cache EXPIRED [{self.name}]: {key} (age: {age.total_seconds():.1f}s)")
                del self._cache[key]
                self._total_size_bytes -= size
            
            logger.debug(f"Cache MISS [{self.name}]: {key}")
            return None
    
    async def put(self, fingerprint: Any, value: Any):
        """
        Store a value, replacing any previous entry wholesale.
        
        Args:
            fingerprint: RequestFingerprint or plain string key
            value: Value to cache
        """
        key = self._key(fingerprint)
        async with self._lock:
            item_size = self._estimate_size(value)
            
            if key in self._cache:
                _, _, old_size = self._cache[key]
                self._total_size_bytes -= old_size
                del self._cache[key]
            
            if self.max_items is not None:
                while len(self._cache) >= self.max_items:
                    self._evict_oldest()
            
            self._cache[key] = (value, datetime.now(), item_size)
            self._total_size_bytes += item_size
            logger.debug(f"Cache SET [{self.name}]: {key} ({item_size} bytes)")
    
    async def delete(self, fingerprint: Any) -> bool:
        """Delete a specific cache entry. Returns True if it existed."""
        key = self._key(fingerprint)
        async with self._lock:
            if key in self._cache:
                _, _, size = self._cache[key]
                del self._cache[key]
                self._total_size_bytes -= size
                logger.debug(f"Cache DELETE [{self.name}]: {key}")
                return True
            return False
    
    async def clear(self, pattern: Optional[str] = None):
        """
        Clear cache entries.
        
        Args:
            pattern: Optional substring to match keys. If None, clears entire cache
        """
        async with self._lock:
            if pattern:
                keys_to_delete = [k for k in self._cache.keys() if pattern in k]
                for key in keys_to_delete:
                    _, _, size = self._cache[key]
                    self._total_size_bytes -= size
                    del self._cache[key]
                logger.info(f"Cache CLEAR [{self.name}]: {len(keys_to_delete)} keys matching '{pattern}'")
            else:
                count = len(self._cache)
                self._cache.clear()
                self._total_size_bytes = 0
                logger.info(f"Cache CLEAR [{self.name}]: All {count} keys")
    
    async def get_stats(self) -> dict:
        """Get cache statistics"""
        async with self._lock:
            total_keys = len(self._cache)
            
            if total_keys == 0:
                return {
                    "items": 0,
                    "max_items": self.max_items,
                    "ttl_seconds": self.ttl_seconds,
                    "estimated_size_mb": 0.0,
                    "oldest_entry_age_seconds": 0,
                    "newest_entry_age_seconds": 0
                }
            
            now = datetime.now()
            ages = [(now - timestamp).total_seconds() for _, timestamp, _ in self._cache.values()]
            
            return {
                "items": total_keys,
                "max_items": self.max_items,
                "ttl_seconds": self.ttl_seconds,
                "estimated_size_mb": self._total_size_bytes / (1024 * 1024),
                "oldest_entry_age_seconds": max(ages),
                "newest_entry_age_seconds": min(ages)
            }
    
    def get_size(self) -> int:
        """Number of cached keys. Non-async for quick checks."""
        return len(self._cache)


class CacheStore:
    """Result cache and audio cache shared by every component of one application context"""

    def __init__(
        self,
        image_key_policy: ImageKeyPolicy = ImageKeyPolicy.PRESENCE,
        max_items: Optional[int] = None,
        ttl_seconds: Optional[float] = None
    ):
        self.image_key_policy = ImageKeyPolicy(image_key_policy)
        self.results = SimpleCache("results", max_items=max_items, ttl_seconds=ttl_seconds)
        self.audio = SimpleCache("audio", max_items=max_items, ttl_seconds=ttl_seconds)

    def fingerprint(self, subject: Any, agent: Any, input: Optional[str], image: Optional[str] = None) -> RequestFingerprint:
        return RequestFingerprint.for_task(subject, agent, input, image, self.image_key_policy)

    async def get_stats(self) -> dict:
        return {
            "image_key_policy": self.image_key_policy.value,
            "results": await self.results.get_stats(),
            "audio": await self.audio.get_stats(),
        }
