"""
Project Delivery Platform
AI Assistants package.

Assistants:
    - deliverable_writer: project/phase/template context → markdown deliverable draft
"""

from app.ai.assistants.deliverable_writer import DeliverableWriter

__all__ = ["DeliverableWriter"]
