"""CLI entry point for turnwise."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import typer

from turnwise.config import TurnwiseConfig

if TYPE_CHECKING:
    from turnwise.datasets import LocalDatasetService
    from turnwise.llm.provider import ChatProvider
    from turnwise.session.wire import Wire
    from turnwise.tool.registry import ToolRegistry

app = typer.Typer(
    name="turnwise",
    help="Ask questions about CSV datasets with a tool-using analysis agent.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # litellm is chatty at INFO.
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


@dataclass
class AnalysisPipeline:
    """Components needed to run turns from the CLI."""

    provider: ChatProvider
    code_provider: ChatProvider
    registry: ToolRegistry
    datasets: LocalDatasetService


def _build_pipeline(config: TurnwiseConfig) -> AnalysisPipeline:
    from turnwise.codegen import LLMCodeGenerator
    from turnwise.datasets import LocalDatasetService
    from turnwise.llm.provider import create_provider
    from turnwise.sandbox import SubprocessSandbox
    from turnwise.tool.builtin import default_tools
    from turnwise.tool.registry import ToolRegistry

    provider = create_provider(
        model=config.llm.model,
        temperature=config.llm.temperature,
        max_tokens=config.llm.max_tokens,
        reasoning_effort=config.llm.reasoning_effort,
        request_timeout=config.llm.request_timeout,
        max_attempts=config.llm.max_attempts,
    )
    # Code is written deterministically, without extended reasoning.
    code_provider = create_provider(
        model=config.llm.code_model or config.llm.model,
        temperature=0.0,
        max_tokens=config.llm.max_tokens,
        request_timeout=config.llm.request_timeout,
        max_attempts=config.llm.max_attempts,
    )

    datasets = LocalDatasetService(config.data_dir)
    registry = ToolRegistry()
    registry.register_many(
        default_tools(
            datasets,
            SubprocessSandbox(),
            LLMCodeGenerator(code_provider),
            sandbox_timeout=config.agent.sandbox_timeout,
        )
    )
    return AnalysisPipeline(
        provider=provider, code_provider=code_provider, registry=registry, datasets=datasets
    )


async def _consume_wire(wire: Wire, show_tokens: bool) -> None:
    from turnwise.session.wire import EventType

    queue = wire.subscribe()
    streaming = False
    while True:
        event = await queue.get()
        if event is None:
            break

        d = event.data

        if event.type == EventType.THINKING_STARTED:
            if streaming:
                print(flush=True)
                streaming = False
            print("\n[thinking]", flush=True)

        elif event.type == EventType.TOKEN:
            if show_tokens:
                print(d.get("text", ""), end="", flush=True)
                streaming = True

        elif event.type == EventType.EXPLANATION:
            if streaming:
                print(flush=True)
                streaming = False
            print(f"  {d.get('text', '')}", flush=True)

        elif event.type == EventType.TOOL_STARTED:
            if streaming:
                print(flush=True)
                streaming = False
            args = json.dumps(d.get("args", {}), default=str)
            print(f"  > {d.get('name', '?')} {args}", flush=True)

        elif event.type == EventType.TOOL_FINISHED:
            status = "ERROR" if d.get("error") else "OK"
            print(f"  < {d.get('name', '?')} [{status}] {d.get('summary', '')}", flush=True)

        elif event.type == EventType.FINAL_ANSWER:
            print(f"\n{d.get('text', '')}", flush=True)
            artifacts = d.get("artifacts") or {}
            if "report_code" in artifacts:
                print("\n[report component generated]", flush=True)

        elif event.type == EventType.CLARIFICATION_NEEDED:
            print(f"\n? {d.get('question', '')}", flush=True)

        elif event.type == EventType.ERROR:
            print(f"\n! {d.get('message', '')} ({d.get('code', '')})", flush=True)


async def _run_ask(
    query: str,
    config: TurnwiseConfig,
    dataset_ids: list[str],
    show_tokens: bool,
) -> str:
    from turnwise.agent.orchestrator import TurnOrchestrator, TurnSeed
    from turnwise.session.emitter import WireEmitter
    from turnwise.session.store import JsonlTurnStore
    from turnwise.session.wire import Wire

    pipeline = _build_pipeline(config)
    if not dataset_ids:
        dataset_ids = [d.id for d in await pipeline.datasets.list_datasets()]

    typer.echo(f"Datasets: {', '.join(dataset_ids) or '(none)'}")
    typer.echo(f"Tools: {', '.join(pipeline.registry.names())}")
    typer.echo("---")

    wire = Wire()
    consumer_task = asyncio.create_task(_consume_wire(wire, show_tokens))

    orchestrator = TurnOrchestrator(
        provider=pipeline.provider,
        registry=pipeline.registry,
        store=JsonlTurnStore(config.store_path),
        emitter=WireEmitter(wire),
        config=config.agent,
        dataset_service=pipeline.datasets,
        summary_provider=pipeline.code_provider,
    )
    try:
        turn = await orchestrator.run(TurnSeed(query=query, dataset_ids=dataset_ids))
    finally:
        # Signal wire close and wait for consumer to finish
        wire.close()
        await consumer_task

    print(f"\n---\nTurn finished: {turn.status.value}")
    print(f"Record saved to: {Path(config.store_path).expanduser()}")
    return turn.status.value


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question about your data."),
    data_dir: str | None = typer.Option(
        None, "--data-dir", "-d", help="Directory of CSV datasets."
    ),
    dataset: list[str] = typer.Option(
        [], "--dataset", "-s", help="Dataset id to focus on (repeatable)."
    ),
    model: str | None = typer.Option(
        None, "--model", "-m", help="LLM model (litellm format, e.g. anthropic/claude-sonnet-4-5-20250929)."
    ),
    tokens: bool = typer.Option(
        False, "--tokens", "-t", help="Stream the raw oracle output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run one turn against the datasets in a directory."""
    setup_logging(verbose)

    config = TurnwiseConfig.load(config_file)
    if model:
        config.llm.model = model
    if data_dir:
        config.data_dir = data_dir

    if not Path(config.data_dir).expanduser().is_dir():
        typer.echo(f"Error: Data directory not found: {config.data_dir}", err=True)
        raise typer.Exit(1)

    status = asyncio.run(_run_ask(query, config, dataset, tokens))
    if status == "error":
        raise typer.Exit(1)


@app.command()
def tools(
    data_dir: str | None = typer.Option(
        None, "--data-dir", "-d", help="Directory of CSV datasets."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """List the tools the agent can call."""
    config = TurnwiseConfig.load(config_file)
    if data_dir:
        config.data_dir = data_dir

    pipeline = _build_pipeline(config)
    for definition in pipeline.registry.definitions():
        params = ", ".join(definition["parameters"].get("properties", {}))
        typer.echo(f"{definition['name']}({params})")
        typer.echo(f"    {definition['description']}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
