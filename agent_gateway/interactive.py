"""
Agent Gateway Interactive CLI

A command-line front end over the same gateway context the API serves:
local and provider tools, multi-turn tool calling, conversation history.
"""

import argparse
import json
import logging
import signal
import sys
import threading
from dataclasses import replace
from typing import Optional

from . import __version__
from .config import Config, config
from .context import GatewayContext
from .errors import BackendError
from .orchestration import OrchestrationResult
from .tracing import init_tracing_from_config, shutdown_tracing

_shutdown_requested = threading.Event()

logger = logging.getLogger(__name__)


def _signal_handler(signum: int, frame) -> None:
    """First Ctrl+C finishes the current message; a second one exits."""
    if _shutdown_requested.is_set():
        # atexit still stops the providers
        logger.debug("Second interrupt, exiting")
        sys.exit(1)
    else:
        logger.debug("Interrupt received")
        _shutdown_requested.set()
        print("\n\nStopping after the current message (Ctrl+C again to quit now)")


def setup_logging(verbose: bool = False) -> None:
    """Log to stderr so answers on stdout stay clean."""
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def print_banner() -> None:
    """Print the welcome banner and command list."""
    banner = f"""
agent-gateway {__version__}: tool-calling chat over local and provider tools

Commands:
  /help       - Show this help message
  /tools      - List available tools
  /providers  - List running tool providers
  /trace      - Show the tool calls of the last message
  /clear      - Clear conversation history
  /quit       - Exit the CLI

Anything else is sent to the model as a message.
"""
    print(banner)


def print_tools(context: GatewayContext) -> None:
    """Print registered tools grouped by origin."""
    tools = context.tools.all_tools()
    if not tools:
        print("\nNo tools registered.\n")
        return
    print("\nAvailable Tools:")
    print("─" * 64)
    for i, tool in enumerate(tools, start=1):
        print(f"{i}. {tool.name.ljust(20)} [{tool.origin}] {tool.description[:60]}")
    print()


def print_providers(context: GatewayContext) -> None:
    """Print running providers and the tools they contribute."""
    providers = context.providers.all_providers()
    if not providers:
        print("\nNo providers running.\n")
        return
    print("\nProviders:")
    print("─" * 64)
    for provider in providers:
        status = "alive" if provider.alive else "dead"
        print(f"- {provider.name} ({status}, server={provider.server_name})")
        print(f"    {provider.command} {' '.join(provider.args)}")
        for name in provider.tool_names:
            print(f"    • {name}")
    print()


def print_trace(result: Optional[OrchestrationResult]) -> None:
    """Print the tool-calling turns of the last orchestration run."""
    if result is None:
        print("\nNo trace available. Send a message first.\n")
        return
    if not result.steps:
        print("\nThe last answer used no tools.\n")
        return

    for step in result.steps:
        print(f"\n┌─ Turn {step.turn}")
        for call, output in zip(step.tool_calls, step.results):
            print(f"│  {call.name}({json.dumps(call.arguments)})")
            if len(output) > 200:
                output = output[:200] + "..."
            print(f"│    -> {output}")
        print("└" + "─" * 68)
    if result.turn_limit_reached:
        print("\n(stopped at the turn limit)")
    print()


def result_to_json(query: str, result: OrchestrationResult) -> dict:
    return {
        "query": query,
        "answer": result.answer,
        "state": result.state.value,
        "turns": result.turns,
        "turn_limit_reached": result.turn_limit_reached,
        "steps": [
            {
                "turn": step.turn,
                "tool_calls": [call.to_json() for call in step.tool_calls],
                "results": step.results,
            }
            for step in result.steps
        ],
    }


class InteractiveCLI:
    """Interactive CLI over a gateway context."""

    def __init__(self, context: GatewayContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.last_result: Optional[OrchestrationResult] = None

    def clear_history(self) -> None:
        """Clear the conversation; the system prompt is re-seeded."""
        self.context.clear_conversation()
        self.last_result = None
        print("\nConversation cleared; system prompt restored.\n")

    def process_query(self, query: str) -> bool:
        """Send one message and print the answer.

        Returns:
            False once the CLI should stop reading input
        """
        print("\n... thinking\n")

        try:
            result = self.context.send_message(query)
        except KeyboardInterrupt:
            _shutdown_requested.set()
            print("\n\nInterrupted; exiting.\n")
            return False
        except BackendError as e:
            print(f"\nModel backend error ({e.kind}): {e}\n")
            return True

        self.last_result = result
        if _shutdown_requested.is_set():
            print("\n\nMessage finished; exiting.\n")
            return False

        print(f"assistant> {result.answer}\n")

        turns = result.turns
        print(f"(Completed in {turns} turn{'s' if turns != 1 else ''})")
        if result.steps:
            print("Use /trace to see the tool calls.\n")
        return True

    def handle_command(self, user_input: str) -> bool:
        """Run a slash command. Returns False when the CLI should exit."""
        command = user_input.lower()
        if command in ("/quit", "/exit", "/q"):
            print("\nBye.\n")
            return False
        if command in ("/help", "/h", "/?"):
            print_banner()
        elif command == "/tools":
            print_tools(self.context)
        elif command == "/providers":
            print_providers(self.context)
        elif command == "/trace":
            print_trace(self.last_result)
        elif command == "/clear":
            self.clear_history()
        else:
            print(f"\nUnknown command: {user_input}")
            print("Type /help for available commands.\n")
        return True

    def run(self) -> None:
        """Run the interactive CLI loop."""
        print_banner()

        while not _shutdown_requested.is_set():
            try:
                user_input = input(">>> ").strip()

                if _shutdown_requested.is_set():
                    break
                if not user_input:
                    continue

                if user_input.startswith("/"):
                    if not self.handle_command(user_input):
                        break
                elif not self.process_query(user_input):
                    break

            except KeyboardInterrupt:
                if _shutdown_requested.is_set():
                    print("\n")
                    break
                print("\n(use /quit or Ctrl+D to leave)\n")
            except EOFError:
                print("\nBye.\n")
                break


def build_config(args: argparse.Namespace) -> Config:
    """Apply command-line overrides to the environment configuration."""
    model = config.model
    if args.model_url:
        model = replace(model, base_url=args.model_url)
    if args.model:
        model = replace(model, model=args.model)
    providers = config.providers
    if args.providers:
        providers = replace(providers, config_path=args.providers)
    return replace(config, model=model, providers=providers)


def main() -> None:
    """Main entry point."""
    signal.signal(signal.SIGINT, _signal_handler)

    parser = argparse.ArgumentParser(
        description="Agent Gateway Interactive CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Start interactive mode
  %(prog)s -v                       # Start with verbose logging
  %(prog)s -q "What time is it?"    # Send a single message
  %(prog)s --providers providers.yaml

Use /tools in interactive mode to see available tools.
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--query", type=str, help="Send a single message and exit")
    parser.add_argument(
        "--model-url",
        type=str,
        default=None,
        help=f"Model endpoint URL (default: from MODEL_BASE_URL env or {config.model.base_url})",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help=f"Model name (default: from MODEL_NAME env or {config.model.model})",
    )
    parser.add_argument(
        "--providers",
        type=str,
        default=None,
        help="YAML file listing tool providers to start",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON (for scripting)",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)
    cli_config = build_config(args)
    init_tracing_from_config(cli_config.langfuse, release=__version__)

    context = GatewayContext(cli_config)
    context.register_atexit()
    try:
        context.preload_providers()
        if args.query:
            try:
                result = context.send_message(args.query)
            except BackendError as e:
                print(f"Model backend error ({e.kind}): {e}", file=sys.stderr)
                sys.exit(2)
            if args.json:
                print(json.dumps(result_to_json(args.query, result), indent=2))
            else:
                print(result.answer)
        else:
            InteractiveCLI(context, verbose=args.verbose).run()
    finally:
        context.close()
        shutdown_tracing()


if __name__ == "__main__":
    main()
