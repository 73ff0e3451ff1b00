"""LLM-backed proposal of correction rules.

Shows Claude a batch of transactions and asks for reusable tagging rules.
Proposals are returned to the caller and never saved here; each one is
confirmed through CorrectionLearningService.create_or_update.
"""
from __future__ import annotations

import json
import logging
import os
import random
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from tagledger.models.corrections import MatchType
from tagledger.models.rules import ProposedRule, TransactionSample
from tagledger.services.errors import LLMError

logger = logging.getLogger(__name__)

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
MAX_RETRIES = 5
BASE_DELAY_SECONDS = 1.0

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$", re.MULTILINE)


class RuleGenerator:
    """
    Proposes tagging rules for a batch of transactions.

    Usage:
        generator = RuleGenerator(known_tags=service.known_tags)
        for rule in generator.propose_rules(samples):
            print(rule.pattern, rule.tags, rule.reasoning)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        known_tags: Optional[Callable[[], List[str]]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.getenv("ANTHROPIC_API_KEY")
        self.model = os.getenv("ANTHROPIC_MODEL", "claude-haiku-4-5-20251001")
        self.timeout = int(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
        self.known_tags = known_tags or (lambda: [])
        self._sleep = sleep

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def propose_rules(self, transactions: Sequence[TransactionSample]) -> List[ProposedRule]:
        """Ask the model for rules covering ``transactions``."""
        if not self.is_available:
            raise LLMError("ANTHROPIC_API_KEY not configured")
        if not transactions:
            return []

        prompt = self._build_prompt(transactions, self.known_tags())
        data = self._call_with_retry(prompt)
        text = _extract_message_text(data)
        if not text:
            return []

        proposals = parse_proposals(text)
        usage = data.get("usage") or {}
        logger.info(
            f"Generated {len(proposals)} rule proposals from {len(transactions)} transactions "
            f"(input_tokens={usage.get('input_tokens')}, output_tokens={usage.get('output_tokens')})"
        )
        return proposals

    def _build_prompt(self, transactions: Sequence[TransactionSample], available_tags: List[str]) -> str:
        lines = []
        for i, t in enumerate(transactions, start=1):
            entity = t.entity_name or "unknown"
            tags = ", ".join(t.current_tags) if t.current_tags else "none"
            lines.append(
                f'{i}. "{t.description}" | entity: {entity} | amount: {t.amount} '
                f"| account: {t.account or 'unknown'} | current tags: {tags}"
            )
        tag_list = ", ".join(available_tags) if available_tags else "common financial categories"
        transaction_lines = "\n".join(lines)

        return f"""You are a transaction categorization assistant. Given these bank transactions, propose reusable tagging rules that could apply to similar transactions in the future.

Available tags: {tag_list}

Transactions:
{transaction_lines}

Return a JSON array of proposed rules. Each rule should:
- Have a short pattern (the key merchant/description fragment to match)
- Specify match_type: "exact" (full normalized match) or "contains" (pattern appears in description)
- List relevant tags from the available tags list
- Include brief reasoning

Format:
[{{"pattern":"...","match_type":"exact|contains","tags":["Tag1","Tag2"],"reasoning":"..."}}]

Return ONLY the JSON array, no markdown, no explanation."""

    def _call_with_retry(self, prompt: str) -> Dict[str, Any]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": 2000,
            "messages": [{"role": "user", "content": prompt}],
        }

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = requests.post(ANTHROPIC_URL, headers=headers, json=payload, timeout=self.timeout)
            except requests.RequestException as exc:
                raise LLMError(f"Anthropic API unreachable: {exc}") from exc
            if response.status_code == 429 and attempt < MAX_RETRIES:
                delay = BASE_DELAY_SECONDS * 2 ** attempt + random.random() * 0.5
                logger.warning(
                    f"Rule generation rate limited (429), retrying in {delay:.1f}s "
                    f"({attempt + 1}/{MAX_RETRIES})"
                )
                self._sleep(delay)
                continue
            try:
                response.raise_for_status()
            except requests.HTTPError as exc:
                raise LLMError(f"Anthropic API error: {exc}") from exc
            try:
                return response.json()
            except ValueError as exc:
                raise LLMError(f"Anthropic API returned a non-JSON body: {exc}") from exc

        raise LLMError("Max retries exceeded")  # pragma: no cover


def parse_proposals(text: str) -> List[ProposedRule]:
    """Parse the model's JSON array, dropping anything malformed."""
    cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text.strip()))
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.error(f"Failed to parse rule proposals: {cleaned[:200]!r}")
        return []
    if not isinstance(parsed, list):
        return []

    proposals: List[ProposedRule] = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        pattern = item.get("pattern") or item.get("descriptionPattern")
        if not isinstance(pattern, str) or not pattern.strip():
            continue
        match_type = item.get("match_type") or item.get("matchType")
        if not isinstance(match_type, str) or match_type not in {m.value for m in MatchType}:
            match_type = MatchType.CONTAINS.value
        tags = item.get("tags")
        proposals.append(
            ProposedRule(
                pattern=pattern,
                match_type=match_type,
                tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
                reasoning=item.get("reasoning") if isinstance(item.get("reasoning"), str) else "",
            )
        )
    return proposals


def _extract_message_text(data: Dict[str, Any]) -> str:
    content = data.get("content", [])
    if isinstance(content, list):
        parts = [c.get("text", "") for c in content if isinstance(c, dict) and c.get("type", "text") == "text"]
        return "\n".join([p for p in parts if p])
    return str(content or "")
