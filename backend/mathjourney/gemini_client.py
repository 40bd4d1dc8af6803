from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .errors import CompletionError
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
	text: str
	input_tokens: int = 0
	output_tokens: int = 0
	model: str = ""

	@property
	def cost(self) -> float:
		return estimate_cost(self.input_tokens, self.output_tokens)

	def usage(self) -> Dict[str, int]:
		return {
			"inputTokens": self.input_tokens,
			"outputTokens": self.output_tokens,
			"totalTokens": self.input_tokens + self.output_tokens,
		}


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
	"""USD estimate from the configured per-million-token rates."""
	return (
		input_tokens * settings.completion_input_cost_per_million
		+ output_tokens * settings.completion_output_cost_per_million
	) / 1_000_000


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise CompletionError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		timeout = timeout if timeout is not None else settings.completion_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=timeout, transport=transport)

	async def complete(
		self,
		system_prompt: str,
		user_prompt: str,
		*,
		max_output_tokens: int,
		temperature: float,
	) -> Completion:
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system_prompt}]},
			"contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
			"generationConfig": {"maxOutputTokens": max_output_tokens, "temperature": temperature},
		}
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPError as err:
			# Covers status errors, network errors and timeouts alike
			last_error = err
		if last_error is None:
			try:
				completion = self._parse_gemini(r.json())
				self._log_usage(completion)
				return completion
			except (KeyError, IndexError, TypeError, ValueError):
				last_error = CompletionError(f"Unexpected Gemini response: {r.text[:500]}")
		logger.warning("Gemini call failed: %s", last_error)
		if not self._fallback_enabled:
			raise CompletionError(f"Gemini call failed: {last_error}") from last_error
		return await self._fallback_complete(system_prompt, user_prompt, max_output_tokens, temperature, last_error)

	def _parse_gemini(self, data: Dict[str, Any]) -> Completion:
		parts = data["candidates"][0]["content"]["parts"]
		text = "".join(part.get("text", "") for part in parts)
		usage = data.get("usageMetadata") or {}
		return Completion(
			text=text,
			input_tokens=int(usage.get("promptTokenCount", 0)),
			output_tokens=int(usage.get("candidatesTokenCount", 0)),
			model=data.get("modelVersion") or self.model,
		)

	def _log_usage(self, completion: Completion) -> None:
		logger.info(
			"Completion via %s: %d input / %d output tokens, est. $%.6f",
			completion.model, completion.input_tokens, completion.output_tokens, completion.cost,
		)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_complete(
		self,
		system_prompt: str,
		user_prompt: str,
		max_output_tokens: int,
		temperature: float,
		primary_error: Optional[Exception],
	) -> Completion:
		if not self._fallback_client or not self._openrouter_api_key:
			raise CompletionError("Fallback requested but OpenRouter is not configured") from primary_error
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [
				{"role": "system", "content": system_prompt},
				{"role": "user", "content": user_prompt},
			],
			"max_tokens": max_output_tokens,
			"temperature": temperature,
		}
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			usage = data.get("usage") or {}
			completion = Completion(
				text=data["choices"][0]["message"]["content"] or "",
				input_tokens=int(usage.get("prompt_tokens", 0)),
				output_tokens=int(usage.get("completion_tokens", 0)),
				model=data.get("model") or self._openrouter_model,
			)
		except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as fallback_err:
			raise CompletionError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err
		self._log_usage(completion)
		return completion
