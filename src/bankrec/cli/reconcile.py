#!/usr/bin/env python3
"""
Reconciliation CLI - Matching Commands

Commands operating on the JSON ledger under <data_dir>/reconciliation/.
"""

from pathlib import Path

import click

from ..core.config import Config, get_config
from ..core.errors import ReconciliationError
from ..core.json_utils import format_json, read_json
from ..core.money import Money
from ..reconciliation.models import BankFeedLine, LineFilter, SystemRecord
from ..reconciliation.normalize import normalize_documents
from ..reconciliation.service import ReconciliationService

ENGINE_ERRORS = (ReconciliationError, ValueError, KeyError, OSError)


def _service(ctx: click.Context) -> ReconciliationService:
    config: Config = (ctx.obj or {}).get("config") or get_config()
    return ReconciliationService.from_config(config)


def _actor(ctx: click.Context, actor: str | None) -> str:
    config: Config = (ctx.obj or {}).get("config") or get_config()
    return actor or config.default_actor


def _read_items(path: Path, key: str) -> list[dict]:
    """JSON file holding either a list or an object with ``key`` as a list."""
    data = read_json(path)
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise click.ClickException(f"Expected a JSON list of {key} in {path}")
    return data


def _line_filter(accounts: tuple, currencies: tuple) -> LineFilter | None:
    if not accounts and not currencies:
        return None
    return LineFilter(account_ids=tuple(accounts), currencies=tuple(c.upper() for c in currencies))


@click.command("load-lines")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--actor", help="Who imported the lines (default: configured actor)")
@click.pass_context
def load_lines(ctx: click.Context, file: Path, actor: str | None) -> None:
    """
    Import bank feed lines from a JSON file.

    Lines whose id already exists in the ledger are skipped.

    Examples:
      bankrec load-lines statement.json
    """
    try:
        lines = [BankFeedLine.from_dict(item) for item in _read_items(file, "lines")]
        service = _service(ctx)
        added = service.repository.add_lines(lines, imported_by=_actor(ctx, actor))
    except ENGINE_ERRORS as e:
        raise click.ClickException(f"Failed to load bank lines: {e}") from e

    click.echo(f"Imported {added} of {len(lines)} bank line(s)")


@click.command("load-records")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--normalized",
    is_flag=True,
    help="Records are already in system record form instead of receipt/invoice/expense documents",
)
@click.pass_context
def load_records(ctx: click.Context, file: Path, normalized: bool) -> None:
    """
    Import system records (receipts, invoices, expenses) from a JSON file.

    Examples:
      bankrec load-records documents.json
      bankrec load-records records.json --normalized
    """
    try:
        items = _read_items(file, "records")
        if normalized:
            records = [SystemRecord.from_dict(item) for item in items]
        else:
            records = normalize_documents(items)
        service = _service(ctx)
        count = service.repository.add_records(records)
    except ENGINE_ERRORS as e:
        raise click.ClickException(f"Failed to load system records: {e}") from e

    skipped = len(items) - count
    click.echo(f"Loaded {count} system record(s)" + (f" ({skipped} skipped)" if skipped else ""))


@click.command()
@click.argument("line_id")
@click.option("--json", "as_json", is_flag=True, help="Output suggestions as JSON")
@click.pass_context
def suggest(ctx: click.Context, line_id: str, as_json: bool) -> None:
    """Show ranked match suggestions for a bank line."""
    try:
        suggestions = _service(ctx).generate_suggested_matches(line_id)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(format_json([s.to_dict() for s in suggestions]))
        return

    if not suggestions:
        click.echo(f"No suggestions for line {line_id}")
        return

    click.echo(f"Suggestions for line {line_id}:")
    for rank, suggestion in enumerate(suggestions, start=1):
        record = suggestion.record
        click.echo(
            f"  {rank}. {record.type.value} {record.id} "
            f"{record.reference or '-'} {record.amount.abs()} "
            f"score={suggestion.match_score} ({', '.join(suggestion.score.reasons)})"
        )


@click.command()
@click.option("--account", "accounts", multiple=True, help="Restrict to bank account id(s)")
@click.option("--currency", "currencies", multiple=True, help="Restrict to currency code(s)")
@click.option("--actor", help="Actor recorded on created matches")
@click.pass_context
def automatch(ctx: click.Context, accounts: tuple, currencies: tuple, actor: str | None) -> None:
    """
    Auto-match unmatched bank lines above the confidence threshold.

    Examples:
      bankrec automatch
      bankrec automatch --account acc-1 --currency THB
    """
    try:
        service = _service(ctx)
        result = service.auto_match_bank_lines(
            line_filter=_line_filter(accounts, currencies), actor=_actor(ctx, actor)
        )
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Auto-match complete: {result.summary_text()}")
    if result.missing_record_line_ids:
        click.echo(f"  Missing records: {len(result.missing_record_line_ids)} line(s)")
    for usage in service.rule_usage.all():
        click.echo(f"  Rule {usage.rule_id}: {usage.use_count} match(es)")
    for failure in result.failures:
        click.echo(f"  Failed {failure.line_id}: {failure.error}", err=True)


@click.command()
@click.argument("line_id")
@click.argument("record_id")
@click.option("--amount", help="Amount to attribute (default: record amount, capped at the outstanding amount)")
@click.option("--actor", help="Actor recorded on the match")
@click.option("--reason", help="Adjustment reason when amounts differ")
@click.pass_context
def match(
    ctx: click.Context,
    line_id: str,
    record_id: str,
    amount: str | None,
    actor: str | None,
    reason: str | None,
) -> None:
    """Match a bank line to a system record."""
    try:
        created = _service(ctx).match_record(
            line_id,
            record_id,
            actor=_actor(ctx, actor),
            amount=Money.from_amount(amount) if amount is not None else None,
            adjustment_reason=reason,
        )
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.echo(
        f"Created match {created.id}: line {line_id} -> {created.record_type.value} {record_id} "
        f"for {created.matched_amount} ({created.match_method.value}, score {created.match_score})"
    )
    if created.adjustment_required:
        click.echo(f"  Adjustment required: {created.amount_difference} ({created.adjustment_reason})")


@click.command()
@click.argument("line_id")
@click.argument("match_id")
@click.pass_context
def unmatch(ctx: click.Context, line_id: str, match_id: str) -> None:
    """Remove a match from a bank line."""
    try:
        line = _service(ctx).remove_match(line_id, match_id)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Removed match {match_id}; line {line_id} is now {line.status.value}")


@click.command()
@click.argument("line_id")
@click.option("--reason", help="Why the line needs no matching record")
@click.option("--actor", help="Who is ignoring the line")
@click.pass_context
def ignore(ctx: click.Context, line_id: str, reason: str | None, actor: str | None) -> None:
    """Mark a bank line as ignored."""
    try:
        _service(ctx).ignore_line(line_id, actor=_actor(ctx, actor), reason=reason)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Ignored line {line_id}")


@click.command()
@click.argument("line_id")
@click.pass_context
def unignore(ctx: click.Context, line_id: str) -> None:
    """Restore an ignored bank line."""
    try:
        line = _service(ctx).unignore_line(line_id)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Unignored line {line_id}; now {line.status.value}")


@click.command()
@click.option("--account", "accounts", multiple=True, help="Restrict to bank account id(s)")
@click.option("--currency", "currencies", multiple=True, help="Restrict to currency code(s)")
@click.option("--by-account", is_flag=True, help="Show per-account coverage table")
@click.option("--json", "as_json", is_flag=True, help="Output statistics as JSON")
@click.pass_context
def stats(ctx: click.Context, accounts: tuple, currencies: tuple, by_account: bool, as_json: bool) -> None:
    """Show reconciliation statistics."""
    line_filter = _line_filter(accounts, currencies)
    try:
        service = _service(ctx)
        summary = service.get_stats(line_filter)
        coverage = service.get_coverage(line_filter) if by_account else None
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        data = summary.to_dict()
        if coverage is not None:
            data["by_account"] = coverage.to_dict(orient="records")
        click.echo(format_json(data, default=str))
        return

    click.echo("Reconciliation Statistics:")
    click.echo(f"  Total lines: {summary.total_lines}")
    for status, count in summary.status_counts.items():
        click.echo(f"  {status.value}: {count}")
    click.echo(f"  Coverage: {summary.coverage_ratio * 100:.1f}%")
    for currency, amount in sorted(summary.unmatched_amount.items()):
        click.echo(f"  Unmatched amount ({currency}): {amount}")
    for currency, amount in sorted(summary.discrepancy_amount.items()):
        click.echo(f"  Discrepancy amount ({currency}): {amount}")
    for currency, amount in sorted(summary.partial_gap_amount.items()):
        click.echo(f"  Partially matched gap ({currency}): {amount}")
    for currency, amount in sorted(summary.net_difference.items()):
        click.echo(f"  Net difference ({currency}): {amount}")

    if coverage is not None:
        click.echo()
        click.echo("Coverage by account:")
        if coverage.empty:
            click.echo("  (no lines)")
        else:
            click.echo(coverage.to_string(index=False))
