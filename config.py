"""
Configuration — loads settings from environment / .env file.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).parent
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", str(PROJECT_ROOT / "blob_store")))
STORAGE_BASE_URL = os.getenv("STORAGE_BASE_URL", "http://localhost:8000/blobs")

# Postgres
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost:5432/listings")

# Agent provider: "sandbox" (alias "e2b") or "anthropic-api"
AGENT_PROVIDER = os.getenv("AGENT_PROVIDER", "sandbox")
DEFAULT_AGENT_PROVIDER = "sandbox"

# Anthropic
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
ANTHROPIC_MAX_TOKENS = 8192
AGENT_MAX_TURNS = int(os.getenv("AGENT_MAX_TURNS", "10"))

# Token pricing (USD per million tokens)
INPUT_COST_PER_M = 3.0
OUTPUT_COST_PER_M = 15.0

# E2B sandbox
E2B_API_KEY = os.getenv("E2B_API_KEY", "")
SANDBOX_TEMPLATE = os.getenv("SANDBOX_TEMPLATE", "claude")
SANDBOX_TIMEOUT_S = int(os.getenv("SANDBOX_TIMEOUT_S", "330"))
SANDBOX_COMMAND_TIMEOUT_S = int(os.getenv("SANDBOX_COMMAND_TIMEOUT_S", "270"))
SANDBOX_MAX_TURNS = 15
SANDBOX_MODEL = os.getenv("SANDBOX_MODEL", "sonnet")

# OpenAI (image enhancement)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_IMAGE_MODEL = os.getenv("OPENAI_IMAGE_MODEL", "gpt-image-1")

# Temporal
TEMPORAL_HOST = os.getenv("TEMPORAL_HOST", "localhost:7233")
TEMPORAL_TASK_QUEUE = "listing-agent-queue"
TEMPORAL_NAMESPACE = "default"

# Notifications
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL", "")

# HTTP
IMAGE_DOWNLOAD_TIMEOUT_S = float(os.getenv("IMAGE_DOWNLOAD_TIMEOUT_S", "30"))

# Max characters of a text block kept in a progress event
PROGRESS_TEXT_LIMIT = 200
