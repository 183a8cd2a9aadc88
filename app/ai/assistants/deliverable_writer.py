"""
Project Delivery Platform
Deliverable Writer Assistant.

Drafts deliverable content from project, phase and template context.

Pipeline:
    1. Collect context (project, phase, template deliverable)
    2. Build a system + user prompt
    3. Call LLM through the gateway → markdown document
"""

import logging

from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior project manager writing professional project deliverables. "
    "Produce a complete, well-structured markdown document. Use headings, "
    "numbered sections and tables where appropriate. Do not add commentary "
    "outside the document."
)


class DeliverableWriter:
    """AI-powered deliverable drafting."""

    def __init__(self, gateway=None):
        self.gateway = gateway

    def build_messages(self, deliverable, project, phase=None) -> list[dict]:
        """Prompt messages for one deliverable."""
        template = deliverable.template_deliverable
        template_content = template.template_content if template else None
        deliverable_type = deliverable.deliverable_type or (
            template.deliverable_type if template else None
        )

        lines = [
            f"Deliverable: {deliverable.name}",
            f"Type: {deliverable_type or 'document'}",
        ]
        if deliverable.description:
            lines.append(f"Description: {deliverable.description}")
        lines += [
            "",
            f"Project: {project.name}",
            f"Project description: {project.description or 'N/A'}",
        ]
        if phase is not None:
            lines += [
                f"Phase: {phase.name}",
                f"Phase description: {phase.description or 'N/A'}",
                f"Phase window: {phase.start_date or 'TBD'} to {phase.end_date or 'TBD'}",
            ]
        if template_content:
            lines += ["", "Follow this template structure:", template_content]

        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "\n".join(lines)},
        ]

    def generate(self, deliverable, project, phase=None, *, user="system") -> str:
        """
        Draft content for *deliverable*.

        Raises:
            ExternalServiceError: gateway missing, call failed, or empty response.
        """
        if not self.gateway:
            raise ExternalServiceError("llm", "LLM Gateway not available")

        messages = self.build_messages(deliverable, project, phase)
        try:
            response = self.gateway.chat(
                messages=messages,
                purpose="deliverable_generation",
                user=str(user),
            )
        except RuntimeError as exc:
            logger.error("Deliverable %s generation failed: %s", deliverable.id, exc)
            raise ExternalServiceError("llm", "AI generation failed") from exc

        content = (response.get("content") or "").strip()
        if not content:
            raise ExternalServiceError("llm", "AI returned empty content")
        return content
