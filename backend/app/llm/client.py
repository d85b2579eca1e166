"""Report writer for session transcripts with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides deterministic fallback when no key present for testing.
"""

import logging
from typing import Protocol

from openai import AsyncOpenAI

from backend.app.config import Settings, get_settings
from backend.app.models.reports import QAPair, ReportDraft

logger = logging.getLogger(__name__)

MAX_REPORT_CHARS = 20000
UNANSWERED = "_No answer was recorded for this question._"


class ReportWriter(Protocol):
    """Protocol for report writer implementations."""

    async def write_report(self, *, document_id: str, pairs: list[QAPair]) -> ReportDraft:
        """Turn an ordered question/answer transcript into a Markdown report.

        Args:
            document_id: Document the session was opened against
            pairs: Questions in the order they were asked

        Returns:
            ReportDraft with Markdown and the synthesis source
        """
        ...


class DeterministicReportWriter:
    """Deterministic writer (no API key required).

    Lays the transcript out as one section per question, answers verbatim,
    followed by a numbered source list.
    """

    async def write_report(self, *, document_id: str, pairs: list[QAPair]) -> ReportDraft:
        lines = [f"# Analysis of document {document_id}", ""]
        lines.append(f"This report summarizes {len(pairs)} question(s) asked in the session.")

        sources: list[str] = []
        for index, pair in enumerate(pairs, start=1):
            lines.append("")
            lines.append(f"## {index}. {pair.question}")
            lines.append("")
            lines.append(pair.answer if pair.answer is not None else UNANSWERED)
            for citation in pair.citations:
                label = citation.source_uri or "source"
                excerpt = " ".join(citation.text.split())
                sources.append(f"{label}: {excerpt}" if excerpt else label)

        if sources:
            lines.append("")
            lines.append("## Sources")
            lines.append("")
            for index, source in enumerate(sources, start=1):
                lines.append(f"{index}. {source}")

        return ReportDraft(markdown="\n".join(lines) + "\n", synthesis_source="stub")


class OpenAIReportWriter:
    """OpenAI-backed writer for real synthesis."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: AsyncOpenAI | None = None):
        """Initialize OpenAI writer.

        Args:
            api_key: OpenAI API key
            model: Model name to use
            client: Pre-built client (tests)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def write_report(self, *, document_id: str, pairs: list[QAPair]) -> ReportDraft:
        """Generate the report using the OpenAI API, falling back to the stub."""
        context = self._build_context(document_id, pairs)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt()},
                    {"role": "user", "content": context},
                ],
                temperature=0.3,
                max_tokens=3000,
            )

            markdown = response.choices[0].message.content or ""

            if not markdown.strip():
                logger.warning("OpenAI returned empty report, using deterministic fallback")
                return await DeterministicReportWriter().write_report(
                    document_id=document_id, pairs=pairs
                )

            if len(markdown) > MAX_REPORT_CHARS:
                logger.warning(
                    f"OpenAI report unexpectedly large ({len(markdown)} chars), "
                    f"truncating to {MAX_REPORT_CHARS}"
                )
                markdown = markdown[:MAX_REPORT_CHARS] + "\n\n[Truncated]"

            return ReportDraft(markdown=markdown, synthesis_source="openai")

        except Exception as e:
            logger.error(f"OpenAI API call failed: {e}")
            logger.warning("Falling back to deterministic report writer")
            return await DeterministicReportWriter().write_report(
                document_id=document_id, pairs=pairs
            )

    def _build_system_prompt(self) -> str:
        return """You are an analyst writing a white paper from a question-and-answer session
about a single document. Produce a Markdown report with a title, an executive summary,
one section per topic covered, and a closing list of sources.

CRITICAL CONSTRAINTS:
- Use only facts that appear in the answers and source excerpts below.
- Do NOT invent figures, names or conclusions that are not present in the transcript.
- Keep numbers exactly as written in the answers.
- If a question has no recorded answer, mention it as an open question."""

    def _build_context(self, document_id: str, pairs: list[QAPair]) -> str:
        lines = [f"## Document: {document_id}", "", "## Transcript"]
        for index, pair in enumerate(pairs, start=1):
            lines.append(f"Q{index}: {pair.question}")
            lines.append(f"A{index}: {pair.answer if pair.answer is not None else '(unanswered)'}")
            for citation in pair.citations[:5]:  # Limit for context size
                excerpt = citation.text if len(citation.text) <= 300 else citation.text[:297] + "..."
                lines.append(f"  - source: {excerpt}")
            lines.append("")
        return "\n".join(lines)


def get_report_writer(settings: Settings | None = None) -> ReportWriter:
    """Factory: OpenAIReportWriter if an API key is configured, deterministic otherwise."""
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI report writer")
        return OpenAIReportWriter(api_key=api_key.get_secret_value(), model=settings.openai_model)

    logger.warning("No OpenAI API key configured, using deterministic report writer")
    return DeterministicReportWriter()
