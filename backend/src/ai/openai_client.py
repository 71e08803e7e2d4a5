import json
import logging
import re

import openai
from openai import OpenAI

from backend.config import settings

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class AIGatewayError(Exception):
    """The chat-completion service could not produce a reply."""


def parse_json_reply(content):
    """Parse a reply that was asked to be a JSON object.

    The upstream model is not guaranteed to honour JSON mode, so anything that
    is not a JSON object (prose, a list, markdown fences around broken JSON)
    becomes an empty dict instead of an exception.
    """
    if not content:
        return {}
    cleaned = _FENCE_RE.sub("", content.strip())
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        logger.warning("AI reply was not valid JSON (%d chars)", len(content))
        return {}
    if not isinstance(data, dict):
        logger.warning("AI reply was JSON %s, expected an object", type(data).__name__)
        return {}
    return data


class AIGateway:
    """Single outbound client for lesson generation, assessments, tutoring and grading.

    One request per call: no retries, no caching, no streaming. Every failure
    surfaces as AIGatewayError so callers decide their own fallback.
    """

    def __init__(self, api_key=None, base_url=None, model=None, timeout=None, client=None):
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.base_url = base_url or settings.AI_BASE_URL
        self.model = model or settings.AI_MODEL
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, system_prompt, user_prompt=None, json_mode=False, history=None, max_tokens=None):
        """Return the assistant's text for one chat-completion round trip."""
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history or [])
        if user_prompt is not None:
            messages.append({"role": "user", "content": user_prompt})

        kwargs = {"model": self.model, "messages": messages}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        try:
            response = self._get_client().chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            raise AIGatewayError(str(e)) from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    def complete_json(self, system_prompt, user_prompt=None, history=None):
        return parse_json_reply(self.complete(system_prompt, user_prompt, json_mode=True, history=history))


def get_ai_gateway():
    """FastAPI dependency; tests override it with a scripted gateway."""
    return AIGateway()
