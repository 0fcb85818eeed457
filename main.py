"""mnemos - Main entry point."""

import asyncio
import logging
import os

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

# Load environment variables from .env file
load_dotenv()

from src.mnemos.core import PersonalAssistant, AssistantConfig
from src.mnemos.errors import MnemosError
from src.mnemos.llm import LLMProvider
from src.mnemos.memory import MemoryManager, MemoryConfig, MaintenanceScheduler, SchedulerConfig


console = Console()


def setup_logging() -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    # Keep third-party chatter out of the conversation
    for noisy in ("LiteLLM", "httpx", "pymilvus"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def print_welcome(assistant: PersonalAssistant, memory: MemoryManager):
    """Print welcome message."""
    provider_info = assistant.llm.get_provider_info()

    console.print(Panel.fit(
        "[bold blue]mnemos[/bold blue] - Personal assistant with long-term memory\n"
        f"Provider: {provider_info['provider']}\n"
        f"Model: {provider_info['model']}\n"
        f"Memory backend: {memory.config.backend}",
        title="Welcome"
    ))

    console.print(
        "\n[dim]Commands: 'exit' to quit, 'clear' to reset chat history, "
        "'end' to close and consolidate the thread, "
        "'reconcile' to merge conflicting memories, 'stats' for memory stats, "
        "'provider' for provider info, "
        "'env' for a .env template[/dim]\n"
    )


async def run_interactive(
    assistant: PersonalAssistant,
    memory: MemoryManager,
    scheduler: MaintenanceScheduler,
):
    """Run interactive session."""
    while True:
        try:
            user_input = Prompt.ask("[bold green]You[/bold green]")

            if not user_input.strip():
                continue

            cmd = user_input.lower().strip()

            if cmd == "quit" or cmd == "exit":
                console.print("[dim]Goodbye![/dim]")
                break

            if cmd == "clear":
                assistant.clear_history()
                console.print("[dim]Chat history cleared.[/dim]")
                continue

            if cmd == "provider":
                info = assistant.llm.get_provider_info()
                console.print(Panel(str(info), title="Provider Info"))
                continue

            if cmd == "env":
                console.print(LLMProvider.get_env_template())
                continue

            if cmd == "end":
                consolidated = await assistant.end_thread()
                if consolidated:
                    console.print(f"[dim]Thread consolidated: {consolidated.preview()}[/dim]")
                else:
                    console.print("[dim]Thread ended (too short to consolidate).[/dim]")
                continue

            if cmd == "stats":
                console.print(Panel(str(await memory.get_stats()), title="Memory Stats"))
                continue

            if cmd == "reconcile":
                report = await scheduler.run_once()
                console.print(
                    f"[dim]Scanned {report.scanned} memories, "
                    f"merged {report.merge_count}.[/dim]"
                )
                continue

            reply = await assistant.chat(user_input)
            console.print("\n[bold blue]Assistant:[/bold blue]")
            console.print(Markdown(reply))
            console.print()

        except KeyboardInterrupt:
            console.print("\n[dim]Interrupted. Type 'exit' to quit.[/dim]")
        except MnemosError as e:
            console.print(f"[red]Error: {e}[/red]")


async def main():
    """Main entry point."""
    setup_logging()

    try:
        memory = MemoryManager(MemoryConfig.from_env())
        assistant = PersonalAssistant(
            memory,
            AssistantConfig(
                model=os.getenv("MODEL", "gpt-4o-mini"),
                temperature=float(os.getenv("TEMPERATURE", "0.7")),
            ),
        )
        await memory.initialize()
    except MnemosError as e:
        console.print(f"[red]Startup failed: {e}[/red]")
        return

    scheduler = MaintenanceScheduler(
        memory,
        SchedulerConfig(reconcile_interval=float(os.getenv("RECONCILE_INTERVAL", "3600"))),
    )

    try:
        # Single prompt mode
        prompt = os.getenv("PROMPT")
        if prompt:
            console.print(Markdown(await assistant.chat(prompt)))
            return

        await scheduler.start()
        print_welcome(assistant, memory)
        await run_interactive(assistant, memory, scheduler)
    finally:
        await scheduler.stop()
        await memory.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
