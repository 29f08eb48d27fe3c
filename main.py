import logging
import sys
from typing import Optional

import click
import structlog

from config import Settings, get_settings, get_settings_for_environment
from exceptions import DuplicateTransactionError, MalformedRecordError
from records import RecordSource, write_accounts
from services import get_ledger_service

logger = structlog.get_logger()

EXIT_FATAL = 1


def configure_logging(settings: Settings) -> None:
    """Send structured diagnostics to stderr, keeping stdout for the report."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=settings.log_level.upper(),
        force=True,
    )

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def load_settings(env: Optional[str], log_level: Optional[str],
                  log_format: Optional[str], strict: Optional[bool]) -> Settings:
    settings = get_settings_for_environment(env) if env else get_settings()
    overrides = {
        "log_level": log_level,
        "log_format": log_format,
        "strict_parsing": strict,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@click.command(name="ledger-replay")
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, allow_dash=True))
@click.option(
    "--output", "-o", "output_path",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    metavar="PATH",
    help="Write the account report to PATH instead of stdout.",
)
@click.option(
    "--env",
    type=click.Choice(["development", "production", "testing"], case_sensitive=False),
    default=None,
    help="Settings profile to load.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    default=None,
    help="Override the configured log format.",
)
@click.option(
    "--strict/--lenient",
    default=None,
    help="Abort on the first malformed record instead of skipping it.",
)
@click.version_option(package_name="ledger-replay")
def cli(
    input_path: str,
    output_path: Optional[str],
    env: Optional[str],
    log_level: Optional[str],
    log_format: Optional[str],
    strict: Optional[bool],
) -> None:
    """
    Replay a CSV file of ledger events and print the final account balances.

    INPUT is a CSV file with columns type,client,tx,amount, or - for stdin.

    \b
    Exit codes:
      0  report written
      1  fatal ledger error (duplicate transaction id, or a malformed
         record with --strict); no report is written
      2  usage error or unreadable input
    """
    settings = load_settings(env, log_level, log_format, strict)
    configure_logging(settings)

    service = get_ledger_service()
    input_file = click.open_file(input_path, "r", encoding="utf-8", errors="replace", lazy=False)

    logger.info("Ledger replay started", input=input_path, strict=settings.strict_parsing)

    with input_file:
        source = RecordSource(input_file, strict=settings.strict_parsing, name=input_path)
        try:
            accounts = service.process(event for _, event in source)
        except DuplicateTransactionError as e:
            logger.error("Ledger replay aborted", error=str(e), tx=e.tx)
            sys.exit(EXIT_FATAL)
        except MalformedRecordError as e:
            logger.error("Ledger replay aborted", error=str(e), line=e.line)
            sys.exit(EXIT_FATAL)

    if source.malformed:
        logger.warning("Malformed records skipped", count=source.malformed)

    with click.open_file(output_path or "-", "w", encoding="utf-8", lazy=False) as out:
        write_accounts(accounts, out)


if __name__ == "__main__":
    cli()
