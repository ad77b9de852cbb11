"""
Shared LLM Client for the Gemini API
Handles all generateContent calls with consistent error translation
"""

import httpx
from typing import Dict, Any, Optional, List
import logging

from app.core.errors import BackendError, TransientBackendError

logger = logging.getLogger(__name__)


class GeminiClient:
    """Shared client for making generateContent calls against the Gemini REST API"""
    
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        
        if not self.api_key:
            logger.warning("GEMINI_API_KEY not set - LLM calls will fail")
    
    async def generate(
        self,
        model: str,
        parts: List[Dict[str, Any]],
        generation_config: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Make one generateContent call.
        
        Args:
            model: Model name, e.g. gemini-3-flash-preview
            parts: Content parts (text and/or inlineData)
            generation_config: Optional generationConfig block
            
        Returns:
            Decoded JSON response body
            
        Raises:
            TransientBackendError: Rate limited / quota exhausted (HTTP 429)
            BackendError: Any other failure
        """
        
        if not self.api_key:
            raise BackendError("GEMINI_API_KEY not configured")
        
        payload: Dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config:
            payload["generationConfig"] = generation_config
        
        url = f"{self.base_url}/models/{model}:generateContent"
        logger.debug(f"LLM call: model={model}, parts={len(parts)}")
        
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    headers={
                        "x-goog-api-key": self.api_key,
                        "Content-Type": "application/json"
                    },
                    json=payload
                )
                response.raise_for_status()
                result = response.json()
                
                usage = result.get("usageMetadata", {})
                logger.info(f"LLM response: {usage.get('totalTokenCount', 0)} tokens, model={model}")
                return result
        
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"LLM API error: {status} - {e.response.text[:300]}")
            if status == 429 or "RESOURCE_EXHAUSTED" in e.response.text:
                raise TransientBackendError(f"LLM API rate limited: {status}", status_code=status)
            raise BackendError(f"LLM API error: {status}", status_code=status)
        except httpx.TimeoutException:
            logger.error(f"LLM API timeout after {self.timeout}s")
            raise BackendError(f"LLM API timeout after {self.timeout:g}s")
        except httpx.RequestError as e:
            logger.error(f"LLM transport error: {e}")
            raise BackendError(f"LLM transport error: {e}")
        except ValueError as e:
            logger.error(f"LLM response was not JSON: {e}")
            raise BackendError("LLM API returned a non-JSON body")
    
    @staticmethod
    def first_part(result: Dict[str, Any]) -> Dict[str, Any]:
        """First content part of the first candidate, empty dict if missing"""
        candidates = result.get("candidates") or []
        if not candidates:
            return {}
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return parts[0] if parts else {}
    
    async def generate_text(
        self,
        model: str,
        parts: List[Dict[str, Any]],
        generation_config: Optional[Dict[str, Any]] = None
    ) -> str:
        """Text of the first candidate ("" when the backend returned nothing)"""
        result = await self.generate(model, parts, generation_config)
        candidates = result.get("candidates") or []
        if not candidates:
            return ""
        content_parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in content_parts)
    
    async def generate_audio(self, model: str, text: str, voice: str = "Kore") -> Optional[str]:
        """Base64 PCM audio for text, None when the backend returned no audio"""
        result = await self.generate(
            model,
            [{"text": text}],
            {
                "responseModalities": ["AUDIO"],
                "speechConfig": {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}}}
            }
        )
        return (self.first_part(result).get("inlineData") or {}).get("data")
