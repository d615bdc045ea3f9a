"""CLI entrypoint for file-stream."""

import logging
from pathlib import Path
from typing import TextIO

import rich_click as click

from file_stream import __version__
from file_stream.config import Settings
from file_stream.controllers import (
    ExtractCommand,
    FileStreamCliController,
    PromptCommand,
    SessionCommandResult,
)
from file_stream.extraction import UnterminatedPolicy

click.rich_click.USE_MARKDOWN = True
_POLICY_CHOICE = click.Choice([policy.value for policy in UnterminatedPolicy])
_FORMAT_CHOICE = click.Choice(["text", "json"])
CONTROLLER = FileStreamCliController(progress=lambda line: click.echo(line, err=True))


@click.group()
@click.version_option(version=__version__, prog_name="file-stream")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level. Defaults to FILE_STREAM_LOG_LEVEL or WARNING.",
)
def file_stream(log_level: str | None) -> None:
    """Write files from `<file path="...">` records in streamed model output."""

    try:
        settings = Settings.from_env()
    except ValueError as error:
        raise click.UsageError(str(error)) from error
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@file_stream.command("extract")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory that contains the sandbox root. Defaults to FILE_STREAM_BASE_DIR or `.`.",
)
@click.option("--root", "root_prefix", default=None, help="Sandbox root prefix, e.g. `src`.")
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=None,
    help="Fragment size used to replay the text.",
)
@click.option("--unterminated", type=_POLICY_CHOICE, default=None, help="Unterminated policy.")
@click.option("--format", "output_format", type=_FORMAT_CHOICE, default="text", show_default=True)
def extract(  # noqa: PLR0913
    source: TextIO,
    base_dir: Path | None,
    root_prefix: str | None,
    chunk_size: int | None,
    unterminated: str | None,
    output_format: str,
) -> None:
    """Replay a saved model response (file or `-` for stdin) and write its records."""

    try:
        text = source.read()
    except UnicodeDecodeError as error:
        raise click.ClickException(f"Cannot read {source.name} as UTF-8: {error}") from error
    _finish(
        CONTROLLER.extract(
            ExtractCommand(
                text=text,
                base_dir=base_dir,
                root_prefix=root_prefix,
                chunk_size=chunk_size,
                unterminated_policy=unterminated,
                output_format=output_format,
            ),
        ),
    )


@file_stream.command("prompt")
@click.argument("prompt")
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory that contains the sandbox root. Defaults to FILE_STREAM_BASE_DIR or `.`.",
)
@click.option("--root", "root_prefix", default=None, help="Sandbox root prefix, e.g. `src`.")
@click.option(
    "--credentials",
    "credentials_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON file holding `token` or `accessToken`.",
)
@click.option("--model", default=None, help="Model id. Defaults to FILE_STREAM_MODEL.")
@click.option(
    "--context-file",
    "context_files",
    multiple=True,
    help="Project file (relative to base dir) to include in the prompt. Can be repeated.",
)
@click.option(
    "--read-only-file",
    "read_only_files",
    multiple=True,
    help="Path the model may reference but must not rewrite. Can be repeated.",
)
@click.option("--unterminated", type=_POLICY_CHOICE, default=None, help="Unterminated policy.")
@click.option("--echo/--no-echo", default=False, help="Print the raw model output too.")
@click.option("--format", "output_format", type=_FORMAT_CHOICE, default="text", show_default=True)
def prompt_command(  # noqa: PLR0913
    prompt: str,
    base_dir: Path | None,
    root_prefix: str | None,
    credentials_path: Path | None,
    model: str | None,
    context_files: tuple[str, ...],
    read_only_files: tuple[str, ...],
    unterminated: str | None,
    echo: bool,
    output_format: str,
) -> None:
    """Stream a completion for PROMPT and write every file record as it closes."""

    _finish(
        CONTROLLER.prompt(
            PromptCommand(
                prompt=prompt,
                base_dir=base_dir,
                root_prefix=root_prefix,
                credentials_path=credentials_path,
                model=model,
                unterminated_policy=unterminated,
                context_files=context_files,
                read_only_files=read_only_files,
                echo=echo,
                output_format=output_format,
            ),
        ),
    )


def _finish(result: SessionCommandResult) -> None:
    for line in result.lines:
        click.echo(line)
    if not result.success:
        raise click.ClickException("file-stream session failed.")


if __name__ == "__main__":  # pragma: no cover
    file_stream()
