"""
Concrete agent providers.

  sandbox        — Claude CLI inside an E2B sandbox (agent.providers.sandbox)
  anthropic-api  — Messages API with server-side web search (agent.providers.anthropic_api)
"""
