"""
Project Delivery Platform
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, local stub fallback)
    - assistants: task-specific assistants built on the gateway
"""
