"""Command-line interface for the Carrier Rule Engine."""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer

from carrier_rules.config.env_loader import load_environment_variables
from carrier_rules.config.logging_config import configure_from_environment, get_logger
from carrier_rules.core.engine import CarrierRuleEngine
from carrier_rules.core.errors import CarrierRuleError
from carrier_rules.core.snapshot_loader import JsonRuleRepository

logger = get_logger(__name__)

app = typer.Typer(add_completion=False, help="Carrier rule engine developer tooling")


@app.command("evaluate")
def evaluate_command(
    request_file: Path = typer.Option(..., "--request", help="JSON file holding one evaluation request"),
    rules_dir: Optional[Path] = typer.Option(None, "--rules-dir", help="Directory of <carrier_id>.json rule documents"),
    as_of_value: Optional[str] = typer.Option(None, "--as-of", help="Evaluation date (YYYY-MM-DD), defaults to today"),
) -> None:
    """Evaluate a request and print the result JSON."""
    with open(request_file, "r", encoding="utf-8") as f:
        request = json.load(f)

    engine = CarrierRuleEngine(JsonRuleRepository(rules_dir), cache=False)
    as_of = _parse_iso_date(as_of_value) if as_of_value else None
    try:
        result = engine.evaluate(request, as_of=as_of)
    except CarrierRuleError as e:
        typer.echo(f"Evaluation failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


@app.command("validate")
def validate_command(
    carrier_id: str = typer.Argument(..., help="Carrier id (rule document file stem)"),
    rules_dir: Optional[Path] = typer.Option(None, "--rules-dir", help="Directory of <carrier_id>.json rule documents"),
    as_of_value: Optional[str] = typer.Option(None, "--as-of", help="Snapshot date (YYYY-MM-DD), defaults to today"),
) -> None:
    """Build a carrier's rule snapshot and list the rules excluded as misconfigured."""
    repository = JsonRuleRepository(rules_dir)
    as_of = _parse_iso_date(as_of_value) if as_of_value else date.today()
    try:
        snapshot = repository.load_carrier_rule_snapshot(carrier_id, as_of)
    except CarrierRuleError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps({
        "carrier_id": snapshot.carrier.id,
        "as_of": as_of.isoformat(),
        "excluded": [rule.model_dump() for rule in snapshot.excluded],
    }, indent=2))
    if snapshot.excluded:
        raise typer.Exit(code=2)


@app.command("carriers")
def carriers_command(
    rules_dir: Optional[Path] = typer.Option(None, "--rules-dir", help="Directory of <carrier_id>.json rule documents"),
) -> None:
    """List the carriers that have a rule document."""
    for carrier_id in JsonRuleRepository(rules_dir).carrier_ids():
        typer.echo(carrier_id)


def _parse_iso_date(value: str) -> date:
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as exc:
        raise typer.BadParameter("Date must be in YYYY-MM-DD format") from exc


def main():
    load_environment_variables(Path(__file__).parent)
    configure_from_environment()
    app()


if __name__ == "__main__":
    main()
