"""
Agent package — drives an LLM agent from photos to a validated listing.

Public API:
    from agent import ProviderRegistry, AgentProvider
    from agent.output import extract_json, validate_listing_output
    from agent.progress import extract_progress_events
"""

from agent.provider import AgentProvider, ProgressSink, ProviderRegistry

__all__ = ["AgentProvider", "ProgressSink", "ProviderRegistry"]
