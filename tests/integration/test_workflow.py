"""Integration tests for the complete evaluation workflow."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from app import app
from carrier_rules.core.engine import CarrierRuleEngine
from carrier_rules.core.errors import InvalidInputError, SnapshotNotFoundError, UnclassifiedError
from carrier_rules.core.snapshot_loader import JsonRuleRepository
from carrier_rules.core.workflow import CarrierRuleWorkflow
from carrier_rules.models.context_models import EvaluationRequest
from carrier_rules.models.results import AcceptanceStatus
from tests.test_fixtures import AS_OF, make_request

PROJECT_DIR = Path(__file__).parent.parent.parent
RULES_DIR = PROJECT_DIR / "carrier_rules_data"
CONAKRY_REQUEST = RULES_DIR / "requests" / "conakry_truck.json"


class TestCarrierRuleWorkflow:
    """Test the LangGraph workflow over the example snapshot."""

    @pytest.fixture
    def workflow(self, settings):
        """Create and initialize workflow."""
        workflow = CarrierRuleWorkflow(settings)
        workflow.initialize()
        return workflow

    def test_workflow_initialization(self, workflow):
        """Test workflow initialization is idempotent."""
        graph = workflow.graph
        assert graph is not None
        workflow.initialize()
        assert workflow.graph is graph

    def test_accepted_overwidth_car(self, workflow, example_snapshot):
        """Test a 265cm wide car declared at 4.5 LM: accepted, one 22.5 overwidth line."""
        request = EvaluationRequest(**make_request(loading_meters=4.5))
        result = workflow.run(request, example_snapshot)

        assert result.status == AcceptanceStatus.ACCEPTED
        assert result.vehicle_category == "CAR"
        assert result.category_group == "CARS"
        assert len(result.surcharges) == 1

        line = result.surcharges[0]
        assert line.event_code == "OVERWIDTH"
        assert line.amount == pytest.approx(22.5)
        assert line.article_id == 501
        assert line.qty_mode.value == "PER_LM"
        assert line.matched_rule_id == 1
        assert not line.requires_manual_review
        assert result.total_surcharge_amount == pytest.approx(22.5)
        assert [clause.text for clause in result.clauses] == [
            "Subject to all surcharges valid at time of shipment."
        ]

    def test_rejection_skips_surcharges(self, workflow, example_snapshot):
        """Test that a rejected cargo line carries no surcharges."""
        request = EvaluationRequest(**make_request(weight_kg=2500, flags={"non_self_propelled": True}))
        result = workflow.run(request, example_snapshot)

        assert result.status == AcceptanceStatus.REJECTED
        assert result.acceptance.rejection_reasons == ("max_weight_exceeded", "must_be_self_propelled_required")
        assert result.surcharges == []
        assert result.total_surcharge_amount == 0
        assert result.transform.applied_rule_id is None

    def test_classification_by_band(self, workflow, example_snapshot):
        """Test that an undeclared category is classified and grouped."""
        request = EvaluationRequest(**make_request(declared_category=None, width_cm=180, loading_meters=4.5))
        result = workflow.run(request, example_snapshot)
        assert result.vehicle_category == "CAR"
        assert result.category_group == "CARS"
        assert result.surcharges == []

    def test_unclassified_raises(self, workflow, example_snapshot):
        """Test that an unclassifiable cargo line raises UnclassifiedError."""
        request = EvaluationRequest(**make_request(declared_category=None, height_cm=400))
        with pytest.raises(UnclassifiedError):
            workflow.run(request, example_snapshot)


class TestCarrierRuleEngine:
    """Test the engine over in-memory and JSON repositories."""

    def test_evaluate(self, engine):
        """Test evaluating a raw request mapping."""
        result = engine.evaluate(make_request(loading_meters=4.5), as_of=AS_OF)
        payload = result.to_dict()
        assert payload["acceptance"] == "accepted"
        assert payload["loading_meters"]["base"] == 4.5
        assert payload["surcharges"][0]["article_id"] == 501
        assert payload["total_surcharge_amount"] == pytest.approx(22.5)

    def test_evaluation_is_deterministic(self, engine):
        """Test that identical inputs give identical results."""
        first = engine.evaluate(make_request(loading_meters=4.5), as_of=AS_OF).to_dict()
        second = engine.evaluate(make_request(loading_meters=4.5), as_of=AS_OF).to_dict()
        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)

    def test_invalid_input(self, engine):
        """Test that negative geometry is rejected as invalid input."""
        with pytest.raises(InvalidInputError):
            engine.evaluate(make_request(width_cm=-1), as_of=AS_OF)
        with pytest.raises(InvalidInputError):
            engine.evaluate(make_request(unit_count=0), as_of=AS_OF)

    def test_unknown_carrier(self, engine):
        """Test that a carrier without rules raises SnapshotNotFoundError."""
        with pytest.raises(SnapshotNotFoundError):
            engine.evaluate(make_request(carrier_id="NOBODY"), as_of=AS_OF)

    def test_cached_engine_invalidate(self, repository, settings, example_payload):
        """Test that edited rules apply after invalidation."""
        engine = CarrierRuleEngine(repository, settings=settings)
        before = engine.evaluate(make_request(loading_meters=4.5), as_of=AS_OF)

        example_payload["surcharge_rules"][0]["params"]["amount_per_lm"] = 10
        repository.put("C", example_payload)
        cached = engine.evaluate(make_request(loading_meters=4.5), as_of=AS_OF)
        engine.invalidate("C")
        after = engine.evaluate(make_request(loading_meters=4.5), as_of=AS_OF)

        assert before.total_surcharge_amount == pytest.approx(22.5)
        assert cached.total_surcharge_amount == pytest.approx(22.5)
        assert after.total_surcharge_amount == pytest.approx(45)

    def test_conakry_truck(self, settings):
        """Test the sample carrier document with an overwidth truck to Conakry."""
        engine = CarrierRuleEngine(JsonRuleRepository(RULES_DIR), settings=settings, cache=False)
        request = json.loads(CONAKRY_REQUEST.read_text(encoding="utf-8"))
        result = engine.evaluate(request, as_of=AS_OF)

        assert result.status == AcceptanceStatus.ACCEPTED
        assert result.category_group == "LM_CARGO"
        assert result.acceptance.destination_terms.requires_waiver
        assert result.acceptance.destination_terms.waiver_provided_by_carrier
        assert result.transform.applied_rule_id == 1
        assert result.transform.chargeable_lm == pytest.approx(12.96)

        amounts = {line.event_code: line.amount for line in result.surcharges}
        assert amounts == {
            "TRACKING_PERCENT": pytest.approx(240),
            "CONAKRY_WEIGHT_TIER": pytest.approx(210),
        }
        assert [line.article_id for line in result.surcharges] == [1001, 1002]
        assert result.total_surcharge_amount == pytest.approx(450)
        assert len(result.clauses) == 5

    def test_missing_freight_flags_review(self, settings):
        """Test that a missing basic freight flags the percent surcharge for review."""
        engine = CarrierRuleEngine(JsonRuleRepository(RULES_DIR), settings=settings, cache=False)
        request = json.loads(CONAKRY_REQUEST.read_text(encoding="utf-8"))
        del request["basic_freight_amount"]
        result = engine.evaluate(request, as_of=AS_OF)

        tracking = [line for line in result.surcharges if line.event_code == "TRACKING_PERCENT"]
        assert len(tracking) == 1
        assert tracking[0].requires_manual_review
        assert tracking[0].amount == 0
        assert result.total_surcharge_amount == pytest.approx(210)


class TestCli:
    """Test the command-line interface."""

    runner = CliRunner()

    def test_evaluate(self):
        """Test evaluating the sample request."""
        result = self.runner.invoke(app, [
            "evaluate", "--request", str(CONAKRY_REQUEST),
            "--rules-dir", str(RULES_DIR), "--as-of", AS_OF.isoformat(),
        ])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["acceptance"] == "accepted"
        assert payload["total_surcharge_amount"] == pytest.approx(450)

    def test_evaluate_unknown_carrier(self, tmp_path):
        """Test that evaluation errors exit with code 1."""
        request_file = tmp_path / "request.json"
        request_file.write_text(json.dumps(make_request()), encoding="utf-8")
        result = self.runner.invoke(app, ["evaluate", "--request", str(request_file), "--rules-dir", str(tmp_path)])
        assert result.exit_code == 1

    def test_carriers(self):
        """Test listing carriers with a rule document."""
        result = self.runner.invoke(app, ["carriers", "--rules-dir", str(RULES_DIR)])
        assert result.exit_code == 0
        assert "GRIMALDI" in result.stdout.split()

    def test_validate(self, tmp_path, example_payload):
        """Test that validate reports excluded rules with exit code 2."""
        (tmp_path / "C.json").write_text(json.dumps(example_payload), encoding="utf-8")
        clean = self.runner.invoke(app, ["validate", "C", "--rules-dir", str(tmp_path), "--as-of", "2025-06-01"])
        assert clean.exit_code == 0
        assert json.loads(clean.stdout)["excluded"] == []

        example_payload["article_maps"].append({"id": 2, "event_code": "NOTHING", "article_id": 9})
        (tmp_path / "C.json").write_text(json.dumps(example_payload), encoding="utf-8")
        broken = self.runner.invoke(app, ["validate", "C", "--rules-dir", str(tmp_path), "--as-of", "2025-06-01"])
        assert broken.exit_code == 2
        assert json.loads(broken.stdout)["excluded"][0]["table"] == "article_maps"

    def test_invalid_date(self):
        """Test that a malformed date is a usage error."""
        result = self.runner.invoke(app, ["validate", "GRIMALDI", "--rules-dir", str(RULES_DIR), "--as-of", "June"])
        assert result.exit_code != 0
