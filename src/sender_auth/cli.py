"""Command-line interface for sender-auth.

Evaluate SPF policies and verify DKIM signatures from the terminal.
"""

import ipaddress
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console

from .authenticator import MessageAuthenticator
from .config import Config, load_config
from .exceptions import SPFParseError
from .output import VerbosityLevel
from .renderers import BaseRenderer, CLIRenderer, JSONRenderer
from .resolvers.base import DNSResolver
from .resolvers.dnspython_resolver import DNSPythonResolver
from .utils.debug_stats import get_stats_tracker
from .utils.logger import setup_logger
from .validators.base import AuthResult
from .validators.headers import get_dkim_signatures, split_message
from .validators.spf import SPFValidator

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="sender-auth",
    help="SPF and DKIM email sender authentication",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


# ============================================================================
# Validation Functions
# ============================================================================


def validate_ip(value: str) -> str:
    """
    Validate an IP address literal.

    Raises:
        typer.BadParameter: If the value is not an IPv4 or IPv6 address
    """
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        raise typer.BadParameter(f"Invalid IP address: {value}")
    return value.strip()


def validate_verbosity(value: str) -> str:
    """
    Validate verbosity level.

    Args:
        value: Verbosity level string

    Returns:
        Validated verbosity level

    Raises:
        typer.BadParameter: If verbosity is invalid
    """
    valid_levels = [level.value for level in VerbosityLevel]
    if value.lower() not in valid_levels:
        raise typer.BadParameter(
            f"Invalid verbosity: {value}. Must be one of: {', '.join(valid_levels)}"
        )
    return value.lower()


def validate_format(value: str) -> str:
    if value.lower() not in ("cli", "json"):
        raise typer.BadParameter(f"Invalid output format: {value}. Must be one of: cli, json")
    return value.lower()


# Shared option declarations
VerbosityOption = Annotated[
    str | None,
    typer.Option(
        "--verbosity",
        "-v",
        help="Output verbosity: quiet, normal, verbose, debug (default: from config)",
    ),
]
FormatOption = Annotated[
    str,
    typer.Option("--format", "-f", help="Output format: cli, json", callback=validate_format),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file",
        exists=True,
        dir_okay=False,
    ),
]


# ============================================================================
# Helper Functions
# ============================================================================


def create_dns_resolver(config: Config) -> DNSResolver:
    """Create the production resolver from configuration."""
    return DNSPythonResolver(nameservers=config.dns.nameservers, timeout=config.dns.timeout)


def _prepare(
    verbosity: str | None,
    output_format: str,
    config_file: Path | None,
) -> tuple[Config, BaseRenderer]:
    """Load configuration, set up logging and debug statistics, create the renderer."""
    try:
        config = load_config(extra_path=config_file)
    except (OSError, ValueError, ValidationError) as e:
        console.print(f"[red]Error: Failed to load configuration: {e}[/red]")
        raise typer.Exit(2)

    level_name = validate_verbosity(verbosity or config.output.verbosity)
    verbosity_level = VerbosityLevel(level_name)
    setup_logger(verbosity_level, output=config.output)

    stats_tracker = get_stats_tracker()
    if verbosity_level == VerbosityLevel.DEBUG:
        stats_tracker.enable()
        stats_tracker.reset()

    if output_format == "json":
        renderer: BaseRenderer = JSONRenderer(verbosity=verbosity_level)
    else:
        renderer = CLIRenderer(verbosity=verbosity_level, color=config.output.color)

    return config, renderer


def _finish(renderer: BaseRenderer) -> None:
    """Render the summary and, in debug mode, the DNS statistics."""
    renderer.render_summary()

    stats_tracker = get_stats_tracker()
    if renderer.verbosity == VerbosityLevel.DEBUG and stats_tracker.is_enabled():
        # stderr, so JSON on stdout stays parseable
        sys.stderr.write(stats_tracker.get_summary() + "\n")


def _read_message(message_file: str) -> str:
    """Read a raw RFC 5322 message from a file or stdin ('-')."""
    try:
        if message_file == "-":
            data = sys.stdin.buffer.read() if hasattr(sys.stdin, "buffer") else sys.stdin.read()
        else:
            data = Path(message_file).read_bytes()
    except OSError as e:
        console.print(f"[red]Error: Cannot read message: {e}[/red]")
        raise typer.Exit(2)

    if isinstance(data, bytes):
        # surrogateescape keeps non-UTF-8 bytes intact for hashing
        return data.decode("utf-8", errors="surrogateescape")
    return data


# ============================================================================
# Commands
# ============================================================================


@app.command()
def spf(
    ip: Annotated[str, typer.Argument(help="Connecting IP address", callback=validate_ip)],
    domain: Annotated[str, typer.Argument(help="Domain whose SPF policy is checked")],
    sender: Annotated[
        str | None,
        typer.Option("--sender", "-s", help="Envelope sender (default: postmaster@DOMAIN)"),
    ] = None,
    helo: Annotated[str | None, typer.Option("--helo", help="HELO/EHLO name")] = None,
    verbosity: VerbosityOption = None,
    output_format: FormatOption = "cli",
    config_file: ConfigOption = None,
):
    """
    Evaluate the SPF policy of DOMAIN for a message sent from IP.

    Exits 0 on pass, 1 on any other result.

    Example:
        sender-auth spf 192.0.2.10 example.com
        sender-auth spf 2001:db8::1 example.com --sender alice@example.com --format json
    """
    config, renderer = _prepare(verbosity, output_format, config_file)
    validator = SPFValidator(
        create_dns_resolver(config),
        max_lookups=config.spf.max_lookups,
        max_mx_hosts=config.spf.max_mx_hosts,
        fetch_explanation=config.spf.fetch_explanation,
    )

    result = validator.validate(ip, sender or f"postmaster@{domain}", domain, helo=helo)

    renderer.render(validator.describe_output(result), result, "spf", validator.to_dict(result))
    _finish(renderer)

    if result.result != AuthResult.PASS:
        raise typer.Exit(1)


@app.command()
def parse_spf(
    record: Annotated[str, typer.Argument(help="SPF record text, e.g. 'v=spf1 mx -all'")],
    verbosity: VerbosityOption = None,
    output_format: FormatOption = "cli",
    config_file: ConfigOption = None,
):
    """
    Parse an SPF record without evaluating it.

    Example:
        sender-auth parse-spf "v=spf1 ip4:192.0.2.0/24 include:_spf.example.com -all"
    """
    config, renderer = _prepare(verbosity, output_format, config_file)
    # Parsing needs no DNS; the resolver is never queried
    validator = SPFValidator(create_dns_resolver(config), max_lookups=config.spf.max_lookups)

    try:
        parsed = validator.parse_record(record)
    except SPFParseError as e:
        console.print(f"[red]✗ Invalid SPF record: {e}[/red]")
        raise typer.Exit(1)

    renderer.render(
        validator.describe_record(parsed), parsed, "spf_record", validator.record_to_dict(parsed)
    )
    _finish(renderer)


@app.command()
def dkim(
    message_file: Annotated[str, typer.Argument(help="Raw message file, or '-' for stdin")],
    verbosity: VerbosityOption = None,
    output_format: FormatOption = "cli",
    config_file: ConfigOption = None,
):
    """
    Verify every DKIM signature of a raw message.

    Exits 0 when at least one signature passes, 1 otherwise.

    Example:
        sender-auth dkim message.eml
        cat message.eml | sender-auth dkim - --format json
    """
    config, renderer = _prepare(verbosity, output_format, config_file)
    authenticator = MessageAuthenticator.from_config(config, resolver=create_dns_resolver(config))

    headers, body = split_message(_read_message(message_file))
    results = authenticator.dkim.verify_multiple(headers, body, get_dkim_signatures(headers))

    renderer.render(
        authenticator.dkim.describe_output(results),
        results,
        "dkim",
        [authenticator.dkim.to_dict(r) for r in results],
    )
    _finish(renderer)

    if not any(r.result == AuthResult.PASS for r in results):
        raise typer.Exit(1)


@app.command()
def check(
    message_file: Annotated[str, typer.Argument(help="Raw message file, or '-' for stdin")],
    ip: Annotated[str, typer.Option("--ip", help="Connecting IP address", callback=validate_ip)],
    sender: Annotated[str, typer.Option("--sender", "-s", help="Envelope sender (MAIL FROM)")],
    helo: Annotated[str | None, typer.Option("--helo", help="HELO/EHLO name")] = None,
    verbosity: VerbosityOption = None,
    output_format: FormatOption = "cli",
    config_file: ConfigOption = None,
):
    """
    Run SPF and DKIM for one message and show both results.

    Exits 0 only when SPF passes and at least one DKIM signature passes.

    Example:
        sender-auth check message.eml --ip 192.0.2.10 --sender alice@example.com
    """
    config, renderer = _prepare(verbosity, output_format, config_file)
    authenticator = MessageAuthenticator.from_config(config, resolver=create_dns_resolver(config))

    results = authenticator.authenticate_message(
        _read_message(message_file), ip, sender, helo=helo
    )

    renderer.render(
        authenticator.spf.describe_output(results.spf),
        results.spf,
        "spf",
        authenticator.spf.to_dict(results.spf),
    )
    renderer.render(
        authenticator.dkim.describe_output(results.dkim),
        results.dkim,
        "dkim",
        [authenticator.dkim.to_dict(r) for r in results.dkim],
    )
    _finish(renderer)

    dkim_pass = any(r.result == AuthResult.PASS for r in results.dkim)
    if results.spf.result != AuthResult.PASS or not dkim_pass:
        raise typer.Exit(1)


@app.command()
def create_config(
    output: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Output file path",
        ),
    ] = Path(".sender-auth.toml"),
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing file",
        ),
    ] = False,
):
    """
    Create a default configuration file.

    Example:
        sender-auth create-config
        sender-auth create-config --output ~/.config/sender-auth/config.toml
    """
    if output.exists() and not force:
        console.print(f"[yellow]File already exists: {output}[/yellow]")
        console.print("Use --force to overwrite")
        raise typer.Exit(1)

    try:
        Config().to_toml_file(output)
    except OSError as e:
        console.print(f"[red]✗ Failed to create config: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Created configuration file: {output}[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    import importlib.metadata

    try:
        version = importlib.metadata.version("sender-auth")
        console.print(f"sender-auth version {version}")
    except importlib.metadata.PackageNotFoundError:
        console.print("sender-auth (version unknown)")


# ============================================================================
# Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
