"""guildsync command line."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, NoReturn, Optional

import click

from guildsync import __version__
from guildsync.adapters import InMemoryAdapter
from guildsync.config import SyncConfig, load_config
from guildsync.errors import ConfigError, DiffError, FormatError, FormatErrorCode, SessionError
from guildsync.formats import parse_file, validate, write_document
from guildsync.models import FORMAT_DUMP, FORMAT_UPLOAD, Plan, Snapshot
from guildsync.plan import diff as diff_documents
from guildsync.session import SyncSession
from guildsync.util.log import TRACE

LOG_LEVELS: dict[str, int] = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Exit status for validation or sync failures; click uses 2 for usage errors.
EXIT_FAILURE = 1


def setup_logging(level: str = "warn") -> logging.Logger:
    """Attach a single stderr handler to the ``guildsync`` logger."""
    logger = logging.getLogger("guildsync")
    for handler in list(logger.handlers):
        if getattr(handler, "_guildsync_cli", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._guildsync_cli = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(LOG_LEVELS[level])
    return logger


@dataclass
class CliContext:
    config: SyncConfig
    json_output: bool

    def emit(self, payload: dict[str, Any], text: str) -> None:
        if self.json_output:
            click.echo(json.dumps(payload, indent=2, sort_keys=True))
        else:
            click.echo(text)


pass_context = click.make_pass_decorator(CliContext)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Config file (default: ~/.guildsync/config.yaml).")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output.")
@click.option("--log", "log_level", type=click.Choice(list(LOG_LEVELS)), default="warn",
              show_default=True, help="Log level.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], json_output: bool, log_level: str) -> None:
    """Keep guild structure in sync with dump/upload documents."""
    setup_logging(log_level)
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.BadParameter(f"{exc} ({exc.details})", param_hint="--config") from exc
    ctx.obj = CliContext(config=config, json_output=json_output)


# ── format ───────────────────────────────────────────────────────────


@cli.group("format")
def format_group() -> None:
    """Validate dump/upload documents."""


@format_group.command("validate")
@click.option("--in", "in_path", required=True, type=click.Path(dir_okay=False),
              help="Document to validate.")
@click.option("--format", "expected", type=click.Choice([FORMAT_DUMP, FORMAT_UPLOAD]),
              default=None, help="Expected format.")
@pass_context
def format_validate(obj: CliContext, in_path: str, expected: Optional[str]) -> None:
    """Validate a dump or upload document."""
    data = _read_bytes(in_path)
    report = validate(
        data,
        expected or obj.config.default_format,
        strict=obj.config.strict,
    )

    payload = {"action": "format.validate", "path": in_path, **report.to_dict()}
    if report.ok:
        lines = [f"{in_path}: ok (format={report.format}, {report.entity_count} entities)"]
    else:
        lines = [f"{in_path}: invalid: {report.error}"]
    lines.extend(f"warning: {w}" for w in report.warnings)
    obj.emit(payload, "\n".join(lines))
    if not report.ok:
        sys.exit(EXIT_FAILURE)


# ── diff ─────────────────────────────────────────────────────────────


@cli.command("diff")
@click.option("--from", "from_path", required=True, type=click.Path(dir_okay=False),
              help="Observed state (dump).")
@click.option("--to", "to_path", required=True, type=click.Path(dir_okay=False),
              help="Desired state (upload).")
@pass_context
def diff_command(obj: CliContext, from_path: str, to_path: str) -> None:
    """Show the operations that would turn FROM into TO."""
    action = "diff"
    try:
        source = _load(from_path, FORMAT_DUMP, obj.config)
        desired = _load(to_path, FORMAT_UPLOAD, obj.config)
        operations = diff_documents(source, desired, strict_prune=obj.config.strict_prune)
    except (FormatError, DiffError) as exc:
        _fail(obj, action, exc)

    payload = {
        "ok": True,
        "action": action,
        "operations": [op.to_dict() for op in operations],
    }
    if operations:
        text = "\n".join(f"{op.seq:>4}  {op.describe()}" for op in operations)
    else:
        text = "No changes."
    obj.emit(payload, text)


# ── discord ──────────────────────────────────────────────────────────


@cli.group("discord")
def discord_group() -> None:
    """Guild import and export."""


@discord_group.command("import")
@click.option("--in", "in_path", required=True, type=click.Path(dir_okay=False),
              help="Upload (or dump) document describing the desired guild.")
@click.option("--state", "state_path", required=True, type=click.Path(dir_okay=False),
              help="Dump of the guild to import into.")
@click.option("--dry-run", is_flag=True, help="Only show planned actions.")
@click.option("--out", "out_path", type=click.Path(dir_okay=False), default=None,
              help="Write the resulting guild state as a dump.")
@pass_context
def discord_import(
    obj: CliContext,
    in_path: str,
    state_path: str,
    dry_run: bool,
    out_path: Optional[str],
) -> None:
    """Import a document into a guild seeded from a dump file."""
    action = "discord.import"
    try:
        state = _load(state_path, FORMAT_DUMP, obj.config)
        desired = _load(in_path, FORMAT_UPLOAD, obj.config)
    except FormatError as exc:
        _fail(obj, action, exc)

    with InMemoryAdapter(state) as adapter:  # type: ignore[arg-type]
        session = SyncSession(adapter, desired, config=obj.config)  # type: ignore[arg-type]
        try:
            result = session.run(dry_run=dry_run)
        except (DiffError, SessionError) as exc:
            _fail(obj, action, exc)
        if out_path is not None:
            write_document(adapter.state, out_path)

    ok = result.status == "success"
    payload = {"ok": ok, "action": action, "result": result.to_dict()}
    lines = [f"{r.seq:>4}  {r.kind} {r.entity_kind}:{r.target_id}  {r.outcome}"
             + (f"  ({r.reason})" if r.reason else "")
             for r in result.results]
    lines.append(f"status: {result.status}")
    obj.emit(payload, "\n".join(lines))
    if not ok:
        sys.exit(EXIT_FAILURE)


@discord_group.command("export")
@click.option("--state", "state_path", required=True, type=click.Path(dir_okay=False),
              help="Dump of the guild to export.")
@click.option("--out", "out_path", required=True, type=click.Path(dir_okay=False),
              help="Where to write the dump (.json, .yaml or .yml).")
@pass_context
def discord_export(obj: CliContext, state_path: str, out_path: str) -> None:
    """Fetch the guild structure and write it as a dump."""
    action = "discord.export"
    try:
        state = _load(state_path, FORMAT_DUMP, obj.config)
    except FormatError as exc:
        _fail(obj, action, exc)

    with InMemoryAdapter(state) as adapter:  # type: ignore[arg-type]
        snapshot = adapter.fetch_snapshot()
    try:
        write_document(snapshot, out_path)
    except OSError as exc:
        _fail(obj, action, exc)

    payload = {"ok": True, "action": action, "path": out_path, "entities": len(snapshot)}
    obj.emit(payload, f"{out_path}: wrote {len(snapshot)} entities")


# ── helpers) ──────────────────────────────────────────────────────────


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise click.BadParameter(f"cannot read {path}: {exc.strerror}", param_hint="--in") from exc


def _load(path: str, expected: str, config: SyncConfig) -> Snapshot | Plan:
    try:
        document = parse_file(path, expected_format=expected, strict=config.strict)
    except OSError as exc:
        raise click.BadParameter(f"cannot read {path}: {exc.strerror}") from exc
    if expected == FORMAT_DUMP and not isinstance(document, Snapshot):
        raise FormatError(FormatErrorCode.FORMAT_MISMATCH, f"{path} is not a dump document")
    if expected == FORMAT_UPLOAD and not isinstance(document, Plan):
        # A dump describes a complete guild; use it as the desired state.
        document = Plan.from_entities(
            [e.copy() for e in document], format=document.format, version=document.version
        )
    return document  # type: ignore[return-value]


def _fail(obj: CliContext, action: str, exc: Exception) -> NoReturn:
    payload: dict[str, Any] = {"ok": False, "action": action, "message": str(exc)}
    if isinstance(exc, FormatError):
        payload["code"] = exc.code.value
    details = getattr(exc, "details", None)
    if details:
        payload["details"] = details
    if obj.json_output:
        click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))
    else:
        click.echo(f"{action}: {exc}", err=True)
    sys.exit(EXIT_FAILURE)


def main() -> None:
    cli(prog_name="guildsync")


if __name__ == "__main__":
    main()
