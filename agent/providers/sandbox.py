"""
Isolated-execution provider — runs the Claude CLI inside an E2B sandbox.

Flow:
  1. Provision a time-boxed sandbox with the Anthropic key in its env
  2. Pre-flight: CLI answers --version, key is visible inside
  3. Write CLAUDE.md, user-prompt.txt, images/* and the runner script
  4. Run the CLI with stream-json output, feeding stdout through LineBuffer
  5. Read listing-output.json and validate it
The sandbox is killed on every exit path.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from e2b import AsyncSandbox, CommandExitException, NotFoundException

import config
from agent import prompts
from agent.errors import AgentError, OutputValidationError, ProviderConfigError, ProviderProtocolError
from agent.output import validate_listing_output
from agent.progress import extract_progress_events
from agent.provider import AgentProvider, ProgressSink
from agent.stream import LineBuffer, parse_stream_event
from features.listings.models import ProgressEvent, ProgressKind
from models.schemas import AgentImage, AgentProviderResult

log = logging.getLogger(__name__)

SANDBOX_DIR = "/home/user"
OUTPUT_PATH = f"{SANDBOX_DIR}/listing-output.json"
SYSTEM_PROMPT_PATH = f"{SANDBOX_DIR}/CLAUDE.md"
USER_PROMPT_PATH = f"{SANDBOX_DIR}/user-prompt.txt"
RUNNER_PATH = f"{SANDBOX_DIR}/run-agent.sh"
IMAGES_DIR = f"{SANDBOX_DIR}/images"

SandboxFactory = Callable[..., Awaitable[Any]]


def build_runner_script() -> str:
    # stdin from /dev/null so the CLI never waits on input during init
    return "\n".join([
        "#!/bin/bash",
        f"PROMPT=$(cat {USER_PROMPT_PATH})",
        'claude -p "$PROMPT" \\',
        "  --dangerously-skip-permissions \\",
        "  --output-format stream-json \\",
        f"  --model {config.SANDBOX_MODEL} \\",
        f"  --max-turns {config.SANDBOX_MAX_TURNS} < /dev/null",
    ])


@asynccontextmanager
async def sandbox_session(factory: SandboxFactory, **kwargs) -> AsyncIterator[Any]:
    """Create a sandbox and always kill it afterwards. Teardown errors are logged only."""
    sandbox = await factory(**kwargs)
    try:
        yield sandbox
    finally:
        try:
            await sandbox.kill()
        except Exception as e:
            log.warning("Sandbox teardown failed: %s", e)


async def _run(sandbox: Any, cmd: str, **kwargs) -> Any:
    """commands.run, returning the result instead of raising on a non-zero exit."""
    try:
        return await sandbox.commands.run(cmd, **kwargs)
    except CommandExitException as e:
        return e


class _StreamState:
    """Consumes CLI stdout lines: transcript, progress, terminal result."""

    def __init__(self, on_progress: ProgressSink):
        self.on_progress = on_progress
        self.buffer = LineBuffer()
        self.transcript: list[str] = []
        self.error_message: str | None = None
        self.cost_usd = 0.0
        self.stdout_calls = 0

    def feed(self, chunk: str) -> None:
        self.stdout_calls += 1
        for line in self.buffer.feed(chunk):
            self.process_line(line)

    def finish(self) -> None:
        for line in self.buffer.flush():
            self.process_line(line)

    def process_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        self.transcript.append(line)
        event = parse_stream_event(line)
        if event is None:
            return

        etype = event.get("type")
        if etype == "assistant":
            content = (event.get("message") or {}).get("content")
            if isinstance(content, list):
                for progress in extract_progress_events(content):
                    self.on_progress(progress)
        elif etype == "result":
            cost = event.get("total_cost_usd")
            if isinstance(cost, (int, float)):
                self.cost_usd = float(cost)
            if event.get("is_error"):
                errors = event.get("errors")
                if isinstance(errors, list) and errors:
                    self.error_message = "; ".join(str(e) for e in errors)
                else:
                    self.error_message = "Agent execution failed"


def exit_summary(proc: Any, state: _StreamState, stderr: str) -> str:
    parts = [
        f"CLI exited code={proc.exit_code}",
        f"stdout chunks={state.stdout_calls}",
        f"transcript lines={len(state.transcript)}",
        f"stderr length={len(stderr)}",
    ]
    if stderr:
        parts.append(f"stderr tail: {stderr[-300:]}")
    return ", ".join(parts)


class SandboxProvider(AgentProvider):
    """Claude CLI in an E2B sandbox."""

    name = "sandbox"

    def __init__(self, sandbox_factory: SandboxFactory | None = None):
        self._factory = sandbox_factory or AsyncSandbox.create

    async def run(
        self,
        images: list[AgentImage],
        user_description: str | None,
        on_progress: ProgressSink,
    ) -> AgentProviderResult:
        if not config.ANTHROPIC_API_KEY:
            raise ProviderConfigError("ANTHROPIC_API_KEY environment variable is required")
        if not config.E2B_API_KEY:
            raise ProviderConfigError("E2B_API_KEY environment variable is required")
        if config.SANDBOX_COMMAND_TIMEOUT_S >= config.SANDBOX_TIMEOUT_S:
            raise ProviderConfigError(
                f"SANDBOX_COMMAND_TIMEOUT_S ({config.SANDBOX_COMMAND_TIMEOUT_S}) must be less than "
                f"SANDBOX_TIMEOUT_S ({config.SANDBOX_TIMEOUT_S})"
            )

        state = _StreamState(on_progress)
        try:
            return await self._run_in_sandbox(state, images, user_description, on_progress)
        except AgentError as e:
            e.transcript_lines = list(state.transcript)
            raise

    async def _run_in_sandbox(
        self,
        state: _StreamState,
        images: list[AgentImage],
        user_description: str | None,
        on_progress: ProgressSink,
    ) -> AgentProviderResult:
        log.info("Provisioning sandbox (template=%s, timeout=%ds)",
                 config.SANDBOX_TEMPLATE, config.SANDBOX_TIMEOUT_S)
        async with sandbox_session(
            self._factory,
            template=config.SANDBOX_TEMPLATE,
            timeout=config.SANDBOX_TIMEOUT_S,
            api_key=config.E2B_API_KEY,
            envs={
                "ANTHROPIC_API_KEY": config.ANTHROPIC_API_KEY,
                "DISABLE_AUTOUPDATE": "1",
                "DO_NOT_TRACK": "1",
                "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC": "1",
            },
        ) as sandbox:
            await self._preflight(sandbox, on_progress)
            await self._write_inputs(sandbox, images, user_description)

            stderr_chunks: list[str] = []
            on_progress(ProgressEvent(ProgressKind.STATUS, "Running Claude agent in sandbox..."))

            def on_stderr(chunk: str) -> None:
                stderr_chunks.append(chunk)
                on_progress(ProgressEvent(ProgressKind.STATUS, f"[stderr] {chunk.strip()[:300]}"))

            proc = await _run(
                sandbox,
                f"bash {RUNNER_PATH}",
                cwd=SANDBOX_DIR,
                on_stdout=state.feed,
                on_stderr=on_stderr,
                timeout=config.SANDBOX_COMMAND_TIMEOUT_S,
            )
            state.finish()
            collected_stderr = "".join(stderr_chunks)
            on_progress(ProgressEvent(ProgressKind.STATUS, exit_summary(proc, state, collected_stderr)))
            if state.stdout_calls == 0 and proc.stdout:
                for line in proc.stdout.split("\n"):
                    state.process_line(line)

            if proc.exit_code != 0 or state.error_message:
                stderr = collected_stderr.strip() or (proc.stderr or "").strip()
                detail = state.error_message or stderr[:1000] or f"exit code {proc.exit_code}"
                log.error("Claude CLI failed in sandbox: %s", detail)
                raise ProviderProtocolError(f"Claude CLI failed: {detail}")

            output = await self._read_output(sandbox)
            return AgentProviderResult(
                output=output,
                cost_usd=state.cost_usd,
                transcript_lines=state.transcript,
            )

    async def _preflight(self, sandbox: Any, on_progress: ProgressSink) -> None:
        version = await _run(sandbox, "claude --version 2>&1", timeout=30)
        cli_version = (version.stdout or version.stderr or "").strip()
        on_progress(ProgressEvent(
            ProgressKind.STATUS, f"CLI version: {cli_version} (exit {version.exit_code})",
        ))
        if version.exit_code != 0:
            raise ProviderProtocolError(f"Claude CLI unavailable in sandbox: {cli_version}")

        env_check = await _run(
            sandbox, 'test -n "$ANTHROPIC_API_KEY" && echo "ok" || echo "missing"', timeout=10,
        )
        if (env_check.stdout or "").strip() != "ok":
            raise ProviderConfigError("ANTHROPIC_API_KEY not set in sandbox environment")

    async def _write_inputs(
        self, sandbox: Any, images: list[AgentImage], user_description: str | None,
    ) -> None:
        image_paths = [f"{IMAGES_DIR}/{img.filename}" for img in images]
        writes = [
            sandbox.files.write(SYSTEM_PROMPT_PATH, prompts.sandbox_system_prompt(OUTPUT_PATH)),
            sandbox.files.write(USER_PROMPT_PATH, prompts.sandbox_user_prompt(image_paths, user_description)),
            sandbox.files.write(RUNNER_PATH, build_runner_script()),
        ]
        writes += [sandbox.files.write(path, img.data) for path, img in zip(image_paths, images)]
        await asyncio.gather(*writes)
        log.info("Wrote %d image(s) and prompts to sandbox", len(images))

    async def _read_output(self, sandbox: Any):
        try:
            raw = await sandbox.files.read(OUTPUT_PATH)
        except NotFoundException:
            raw = ""
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if not raw or not raw.strip():
            raise ProviderProtocolError("Agent did not produce output file")
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise OutputValidationError(f"Agent output file is not valid JSON: {e}") from e
        return validate_listing_output(value)
