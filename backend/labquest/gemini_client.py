from __future__ import annotations
import json
import re
import httpx
from typing import Any, Dict, Optional
from .settings import settings


def extract_json_object(text: str) -> Dict[str, Any]:
	"""Parse a JSON object out of a model reply.

	Accepts a bare object, a ```json fenced block, or the outermost {...} span.
	Raises ValueError when none of them parse to an object.
	"""
	candidates = [text]
	code_block = re.search(r"```json\s*([\s\S]*?)\s*```", text)
	if code_block:
		candidates.append(code_block.group(1))
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last != -1 and last > first:
		candidates.append(text[first : last + 1])
	for candidate in candidates:
		try:
			data = json.loads(candidate)
		except ValueError:
			continue
		if isinstance(data, dict):
			return data
	raise ValueError(f"Model did not return a JSON object: {text[:200]!r}")


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		http_client: Optional[httpx.AsyncClient] = None,
		fallback_http_client: Optional[httpx.AsyncClient] = None,
		enable_fallback: Optional[bool] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
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
		self._client = http_client or httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)
		self._owns_client = http_client is None
		self._fallback_client: Optional[httpx.AsyncClient] = None
		if enable_fallback is None:
			enable_fallback = bool(settings.openrouter_api_key)
		self._fallback_enabled = enable_fallback and bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		self._owns_fallback_client = fallback_http_client is None
		if self._fallback_enabled:
			self._fallback_client = fallback_http_client or httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)

	async def __aenter__(self) -> "GeminiClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()

	async def generate(self, prompt: str, *, system_instruction: Optional[str] = None) -> str:
		payload = self._build_payload(prompt, system_instruction=system_instruction)
		return await self._post_payload(payload, fallback_prompt=prompt)

	async def generate_json(self, prompt: str, *, system_instruction: Optional[str] = None) -> Dict[str, Any]:
		payload = self._build_payload(prompt, system_instruction=system_instruction)
		payload["generationConfig"] = {"responseMimeType": "application/json"}
		text = await self._post_payload(payload, fallback_prompt=prompt)
		return extract_json_object(text)

	def _build_payload(self, prompt: str, *, system_instruction: Optional[str]) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		if system_instruction:
			payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
		return payload

	async def _post_payload(self, payload: Dict[str, Any], *, fallback_prompt: Optional[str]) -> str:
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
		except httpx.HTTPStatusError as http_err:
			# Some models reject generationConfig; retry once without it
			if "generationConfig" in payload:
				retry_payload = dict(payload)
				retry_payload.pop("generationConfig", None)
				try:
					r = await self._client.post(self.base_url, params=params, headers=headers, json=retry_payload)
					r.raise_for_status()
				except httpx.HTTPError as err:
					last_error = err
			else:
				last_error = http_err
		except httpx.RequestError as net_err:
			last_error = net_err
		if last_error is None:
			try:
				data = r.json()
				return data["candidates"][0]["content"]["parts"][0]["text"]
			except (ValueError, KeyError, IndexError, TypeError):
				last_error = RuntimeError(f"Unexpected Gemini response: {r.text}")
		if not self._fallback_enabled or fallback_prompt is None:
			raise last_error
		return await self._fallback_generate(fallback_prompt, last_error)

	async def aclose(self) -> None:
		if self._owns_client:
			await self._client.aclose()
		if self._fallback_client is not None and self._owns_fallback_client:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, prompt: str, primary_error: Optional[Exception]) -> str:
		if not self._fallback_client or not self._openrouter_api_key:
			raise primary_error or RuntimeError("Fallback requested but OpenRouter is not configured")
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			if primary_error is not None:
				raise RuntimeError(
					f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
				) from fallback_err
			raise fallback_err
