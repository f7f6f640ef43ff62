"""
agent/compressor.py — History compression

When the model rejects a transcript as too large (LLMContextError), the
conversation loop hands the transcript to HistoryCompressor, which replaces
its oldest ~70% (by serialized byte size) with a single summary entry:

    [e0, e1, e2, e3, e4]  →  [user "=== Previous Conversation Summary ===\\n\\n…", e3, e4]
"""

from __future__ import annotations

import json

from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content, GenerateConfig
from alertsleuth.exceptions import CompressionError, LLMError
from alertsleuth.observability.logger import get_logger

DEFAULT_COMPRESSION_RATIO = 0.7
SUMMARY_HEADER = "=== Previous Conversation Summary ===\n\n"
SUMMARY_SYSTEM_INSTRUCTION = "You are an assistant for security alert analysis."

SUMMARIZE_PROMPT = """\
Summarize the conversation above so that the security alert investigation can continue
without it. Keep:

- the analyst's questions and goals
- every concrete finding: indicators (IPs, domains, hashes, URLs, accounts), timestamps,
  counts and verdicts
- which tools were called, with what arguments, and what they returned
- open questions and hypotheses that are still being investigated

Drop greetings, repetition and raw tool output that has already been interpreted.
Write plain text. Do not add new analysis."""


def content_size(content: Content) -> int:
    """Serialized byte size of one transcript entry."""
    doc = content.model_dump(mode="json", exclude_none=True)
    return len(json.dumps(doc, ensure_ascii=False).encode("utf-8"))


class HistoryCompressor:
    """Replaces the oldest part of a transcript with a model-written summary."""

    def __init__(
        self,
        llm: BaseLLMClient,
        ratio: float = DEFAULT_COMPRESSION_RATIO,
        logger=None,
    ):
        self._llm = llm
        self._ratio = ratio
        self._log = logger or get_logger(__name__)

    def split_index(self, contents: list[Content]) -> int:
        """
        Number of leading entries to summarise.

        Smallest prefix whose cumulative size reaches ratio * total; the rest
        is kept unchanged, even when it starts with a TOOL entry.
        Raises CompressionError when the prefix would be empty or cover
        everything.
        """
        if not contents:
            raise CompressionError("history is empty")

        sizes = [content_size(c) for c in contents]
        threshold = int(sum(sizes) * self._ratio)

        index = 0
        cumulative = 0
        for i, size in enumerate(sizes):
            cumulative += size
            if cumulative >= threshold:
                index = i + 1
                break

        if index == 0 or index >= len(contents):
            raise CompressionError("insufficient content to compress")
        return index

    def compress(self, contents: list[Content]) -> list[Content]:
        index = self.split_index(contents)
        to_compress, to_keep = contents[:index], contents[index:]

        self._log.info(
            "compressor.compress_start",
            total_entries=len(contents),
            compressed_entries=len(to_compress),
            kept_entries=len(to_keep),
        )

        summary = self.summarize(to_compress)
        compressed = [Content.user(SUMMARY_HEADER + summary)] + list(to_keep)

        self._log.info(
            "compressor.compress_done",
            entries_before=len(contents),
            entries_after=len(compressed),
            summary_chars=len(summary),
        )
        return compressed

    def summarize(self, contents: list[Content]) -> str:
        """One dedicated model call over the prefix plus the summarise instruction."""
        request = list(contents) + [Content.user(SUMMARIZE_PROMPT)]
        config = GenerateConfig(system_instruction=SUMMARY_SYSTEM_INSTRUCTION)

        try:
            response = self._llm.generate_content(request, config)
        except LLMError as e:
            raise CompressionError(f"failed to summarize contents: {e}") from e

        if not response.candidates:
            raise CompressionError("no summary generated")

        summary = "".join(response.candidates[0].content.texts)
        if not summary:
            raise CompressionError("empty summary generated")
        return summary
