"""agent-engine CLI entrypoint

Composes a prompt from an instruction file and an input file, runs a single
tool-using agent against a chat model and prints the final answer.

Usage:
    agent-engine --instructions prompts/instruction.md --input prompts/input.md

    # expose capabilities defined in an importable module
    agent-engine --instructions prompts/instruction.md --input prompts/input.md \\
        --capabilities my_tools:CAPABILITIES --model openai:gpt-4o
"""
import argparse
import asyncio
import importlib
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from agent_engine.config.settings import AgentSettings, get_settings
from agent_engine.domain.errors import AgentEngineError, OrchestrationError
from agent_engine.domain.models.agent_state import ExecutionConfig
from agent_engine.domain.orchestration.backend.chat_model_backend import ChatModelBackend
from agent_engine.domain.orchestration.core.main_agent import AgentOrchestrator
from agent_engine.domain.streaming.streaming_handler import StreamingHandler
from agent_engine.domain.tool.capability import Capability
from agent_engine.domain.tool.tool_registry import CapabilityRegistry
from agent_engine.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


def read_prompt_file(path: Path) -> str:
    """Read a prompt file, expanding literal \\n sequences into newlines"""
    return path.read_text(encoding="utf-8").replace("\\n", "\n")


def compose_prompt(instructions: str, user_input: str) -> str:
    return f"{instructions}\n\n{user_input}" if instructions else user_input


def load_capabilities(spec: Optional[str]) -> CapabilityRegistry:
    """Load capabilities from a 'module:attribute' reference

    The attribute may be a CapabilityRegistry, a single Capability or an
    iterable of Capabilities.
    """

    if not spec:
        return CapabilityRegistry()

    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Capabilities must be given as 'module:attribute', got {spec!r}")

    target = getattr(importlib.import_module(module_name), attribute)
    if isinstance(target, CapabilityRegistry):
        return target
    if isinstance(target, Capability):
        return CapabilityRegistry([target])
    return CapabilityRegistry(target)


def build_backend(settings: AgentSettings, registry: CapabilityRegistry) -> ChatModelBackend:
    """Create the chat model backend from settings"""

    # provider packages are optional, import lazily
    from langchain.chat_models import init_chat_model

    chat_model = init_chat_model(settings.model, temperature=settings.model_temperature)
    return ChatModelBackend(chat_model, registry)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="agent-engine", description="Run a tool-using agent")
    parser.add_argument("--instructions", type=Path, help="Instruction file prepended to the input")
    parser.add_argument("--input", type=Path, required=True, help="Input file with the task or transcript")
    parser.add_argument("--capabilities", help="Capabilities to expose, as module:attribute")
    parser.add_argument("--model", help="provider:model identifier, overrides AGENT_ENGINE_MODEL")
    parser.add_argument("--max-iterations", type=int)
    parser.add_argument("--max-retries-per-step", type=int)
    parser.add_argument("--total-max-retries", type=int)
    parser.add_argument("--quiet", action="store_true", help="Do not print agent events")
    return parser.parse_args(argv)


def execution_config_from_args(args: argparse.Namespace, settings: AgentSettings) -> ExecutionConfig:
    defaults = settings.execution_config()
    return ExecutionConfig(
        max_retries_per_step=(
            args.max_retries_per_step if args.max_retries_per_step is not None else defaults.max_retries_per_step
        ),
        total_max_retries=(
            args.total_max_retries if args.total_max_retries is not None else defaults.total_max_retries
        ),
        max_iterations=args.max_iterations if args.max_iterations is not None else defaults.max_iterations,
    )


async def run_agent(args: argparse.Namespace, settings: AgentSettings) -> str:
    instructions = read_prompt_file(args.instructions) if args.instructions else ""
    prompt = compose_prompt(instructions, read_prompt_file(args.input))

    if args.model:
        settings = settings.model_copy(update={"model": args.model})

    registry = load_capabilities(args.capabilities)
    orchestrator = AgentOrchestrator(
        backend=build_backend(settings, registry),
        capabilities=registry,
        tool_timeout=settings.tool_timeout_seconds
    )

    observers = [] if args.quiet else [StreamingHandler(stream=sys.stdout)]
    output = await orchestrator.run(prompt, execution_config_from_args(args, settings), observers=observers)
    return output.result


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    try:
        result = asyncio.run(run_agent(args, settings))
    except OrchestrationError as e:
        logger.error("Agent run failed", error=e.dump())
        return 1
    except (AgentEngineError, ImportError, ValueError, OSError) as e:
        logger.error("Agent could not be started", error=AgentEngineError.ensure(e).dump())
        return 2

    print(f"Agent 🤖 : {result}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
