import asyncio
from dataclasses import replace

import typer
from dotenv import load_dotenv
from loguru import logger

from chatdelta.app_config import load_json_config, parse_app_config
from chatdelta.client_config import ClientConfig
from chatdelta.errors import ClientError
from chatdelta.logging_config import setup_logging
from chatdelta.parallel import execute_parallel
from chatdelta.provider import create_client, get_available_providers

# One name per vendor; "claude" and "google" are aliases
_PARALLEL_PROVIDERS = ("openai", "anthropic", "gemini")

app = typer.Typer(
    name="chatdelta",
    help="Send a prompt to one AI provider, or to every configured provider at once.",
    add_completion=False,
)


async def _run_single(provider_name: str, model: str, prompt: str, config: ClientConfig, stream: bool) -> None:
    client = create_client(provider_name, model=model, config=config)
    logger.debug(f"Using {client.name} ({client.model})")

    if stream and client.supports_streaming():
        chunks = await client.stream_prompt(prompt)
        async for chunk in chunks:
            print(chunk.content, end="", flush=True)
        print()
        if chunks.error is not None:
            raise chunks.error
        return

    print(await client.send_prompt(prompt))


async def _run_parallel(prompt: str, config: ClientConfig) -> None:
    names = [name for name in get_available_providers() if name in _PARALLEL_PROVIDERS]
    if not names:
        logger.error("No provider API key found in the environment.")
        raise typer.Exit(code=1)

    clients = [create_client(name, config=config) for name in names]
    results = await execute_parallel(clients, prompt)
    for client, result in zip(clients, results):
        print(f"=== {result.client_name} ({client.model}) ===")
        print(result.result if result.ok else f"error: {result.error}")
        print()


@app.command()
def chat(
    prompt: str = typer.Option(..., "--prompt", "-p", help="Prompt to send"),
    provider: str | None = typer.Option(None, help="openai, anthropic, claude, google or gemini"),
    model: str | None = typer.Option(None, help="Model name; defaults per provider"),
    temperature: float | None = typer.Option(None, help="Sampling temperature (0-2)"),
    max_tokens: int | None = typer.Option(None, help="Maximum tokens in the reply"),
    timeout: float | None = typer.Option(None, help="Per-request timeout in seconds"),
    stream: bool = typer.Option(False, help="Print the reply as it arrives"),
    parallel: bool = typer.Option(False, help="Ask every provider that has an API key"),
):
    """Send PROMPT and print the reply."""
    load_dotenv()

    app_config = parse_app_config(load_json_config())
    log_descriptions = setup_logging(
        level=app_config.log_level, consumers=app_config.log_consumers, exclusive=True
    )
    logger.debug(f"Logging: {', '.join(log_descriptions)}")

    overrides = {
        key: value
        for key, value in (("temperature", temperature), ("max_tokens", max_tokens), ("timeout", timeout))
        if value is not None
    }
    client_config = replace(app_config.client, **overrides)

    try:
        if parallel:
            asyncio.run(_run_parallel(prompt, client_config))
        else:
            asyncio.run(
                _run_single(
                    provider or app_config.provider_name,
                    model or app_config.model,
                    prompt,
                    client_config,
                    stream,
                )
            )
    except ClientError as ex:
        logger.error(f"Request failed: {ex}")
        raise typer.Exit(code=1)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
