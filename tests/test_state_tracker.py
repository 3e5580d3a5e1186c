# [TEMPLATE: CUI // SP-CTI]
"""Tests for specgate.state.state_tracker."""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
import yaml

from specgate.documents.document_parser import file_checksum
from specgate.schemas.state import Phase, ValidationMode
from specgate.schemas.validation import (
    ErrorCategory,
    Severity,
    StateError,
    ValidationError,
    ValidationResult,
)
from specgate.state.state_tracker import STATE_FILE, StateTracker


def _result(*severities):
    return ValidationResult([
        ValidationError(f"problem {i}", "specs/auth-flow.md", sev, ErrorCategory.MISSING_HEADING)
        for i, sev in enumerate(severities)
    ])


class TestLoadSave:
    def test_default_record(self, change_dir):
        tracker = StateTracker.load(change_dir)
        assert tracker.state.change_id == "add-auth"
        assert tracker.state.phase == "proposed"
        assert tracker.state.iteration == 1
        assert tracker.dirty
        assert not (change_dir / STATE_FILE).exists()

    def test_round_trip(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.set_phase(Phase.CHALLENGED)
        tracker.increment_iteration()
        tracker.update_all_checksums()
        tracker.record_validation("validate-proposal", ValidationMode.NORMAL, _result(Severity.LOW))
        assert tracker.save() is True

        reloaded = StateTracker.load(change_dir)
        assert reloaded.to_dict() == tracker.to_dict()
        assert not reloaded.dirty
        assert reloaded.state.phase == "challenged"
        assert reloaded.state.iteration == 2

    def test_save_is_noop_when_clean(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.save()
        mtime = (change_dir / STATE_FILE).stat().st_mtime_ns
        assert tracker.save() is False
        assert (change_dir / STATE_FILE).stat().st_mtime_ns == mtime

    def test_same_phase_does_not_dirty(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.save()
        tracker.set_phase("proposed")
        assert not tracker.dirty

    def test_field_order_on_disk(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.save()
        keys = list(yaml.safe_load((change_dir / STATE_FILE).read_text()).keys())
        assert keys[:3] == ["change_id", "schema_version", "created_at"]

    @pytest.mark.parametrize("content", ["phase: [unclosed\n", "- just\n- a list\n", "phase: proposed\n"])
    def test_corrupt_file_raises(self, change_dir, content):
        (change_dir / STATE_FILE).write_text(content)
        with pytest.raises(StateError):
            StateTracker.load(change_dir)

    def test_unknown_phase_rejected(self, change_dir):
        with pytest.raises(ValueError):
            StateTracker.load(change_dir).set_phase("shipping")


class TestChecksums:
    def test_update_records_all_tracked_files(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.update_all_checksums()
        assert list(tracker.state.checksums) == ["proposal.md", "tasks.md", "specs/auth-flow.md"]
        entry = tracker.state.checksums["specs/auth-flow.md"]
        assert entry.hash == file_checksum(change_dir / "specs" / "auth-flow.md")
        assert entry.hash.startswith("sha256:")

    def test_templates_not_tracked(self, change_dir):
        (change_dir / "specs" / "_template.md").write_text("# T\n")
        assert "specs/_template.md" not in StateTracker.load(change_dir).tracked_files()

    def test_removed_file_entry_dropped(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.update_all_checksums()
        (change_dir / "tasks.md").unlink()
        tracker.update_all_checksums()
        assert "tasks.md" not in tracker.state.checksums

    def test_edit_after_validation_is_stale(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.update_all_checksums()
        spec = change_dir / "specs" / "auth-flow.md"
        spec.write_text(spec.read_text() + "\n### R3: Logout\n")

        report = tracker.check_staleness()
        assert report.stale == ["specs/auth-flow.md"]
        assert report.missing_checksum == []
        assert "proposal.md" in report.up_to_date
        assert report.has_stale
        assert report.needs_validation() == ["specs/auth-flow.md"]
        assert tracker.is_file_stale("specs/auth-flow.md")

    def test_trailing_whitespace_is_not_an_edit(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.update_all_checksums()
        proposal = change_dir / "proposal.md"
        proposal.write_text(proposal.read_text().replace("today.", "today.   ") + "\n\n")
        assert not tracker.is_file_stale("proposal.md")

    def test_unrecorded_file_is_stale(self, change_dir):
        tracker = StateTracker.load(change_dir)
        assert tracker.is_file_stale("proposal.md")
        assert tracker.check_staleness().missing_checksum == ["proposal.md", "tasks.md", "specs/auth-flow.md"]

    def test_missing_file_is_not_stale(self, change_dir):
        assert StateTracker.load(change_dir).is_file_stale("VERIFICATION.md") is False

    def test_undecodable_file_is_stale_not_fatal(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.update_all_checksums()
        spec = change_dir / "specs" / "auth-flow.md"
        spec.write_bytes(b"# x\n\xff\xfe broken\n")

        assert tracker.is_file_stale("specs/auth-flow.md")
        assert tracker.check_staleness().stale == ["specs/auth-flow.md"]
        assert tracker.update_checksum("specs/auth-flow.md") == file_checksum(spec)
        assert not tracker.is_file_stale("specs/auth-flow.md")


class TestValidationHistory:
    def test_normal_mode_ignores_low(self, change_dir):
        tracker = StateTracker.load(change_dir)
        entry = tracker.record_validation("validate-proposal", ValidationMode.NORMAL,
                                          _result(Severity.MEDIUM, Severity.LOW), rules_hash="sha256:abc")
        assert entry.result.valid
        assert (entry.result.high, entry.result.medium, entry.result.low) == (0, 1, 1)
        assert entry.errors == []
        assert len(entry.warnings) == 2
        assert entry.to_dict()["rules_hash"] == "sha256:abc"

    def test_strict_mode_fails_on_any_error(self, change_dir):
        tracker = StateTracker.load(change_dir)
        entry = tracker.record_validation("validate-proposal", "strict", _result(Severity.LOW))
        assert entry.mode == "strict"
        assert not entry.result.valid

    def test_high_errors_listed_formatted(self, change_dir):
        tracker = StateTracker.load(change_dir)
        entry = tracker.record_validation("validate-proposal", ValidationMode.NORMAL, _result(Severity.HIGH))
        assert not entry.result.valid
        assert entry.errors == ["[HIGH] specs/auth-flow.md - problem 0"]

    def test_history_is_append_only(self, change_dir):
        tracker = StateTracker.load(change_dir)
        first = tracker.record_validation("validate-proposal", ValidationMode.NORMAL, _result(Severity.HIGH))
        second = tracker.record_validation("validate-proposal", ValidationMode.NORMAL, _result())
        assert tracker.state.validations == [first, second]
        assert tracker.last_validation("validate-proposal") is second
        assert tracker.last_validation("validate-challenge") is None

    def test_challenge_record(self, change_dir):
        tracker = StateTracker.load(change_dir)
        entry = tracker.record_challenge_validation("NEEDS_REVISION", issues_parsed=4, high=1, medium=2, low=1)
        data = entry.to_dict()
        assert data["step"] == "validate-challenge"
        assert data["result"]["verdict"] == "NEEDS_REVISION"
        assert data["result"]["issues_parsed"] == 4
        assert data["result"]["valid"] is False


class TestTelemetry:
    def test_cost_computed_from_pricing(self, change_dir):
        tracker = StateTracker.load(change_dir)
        call = tracker.record_llm_call("challenge", "model-a", 1_000_000, 500_000,
                                       price_in_per_m=3.0, price_out_per_m=15.0)
        assert call.cost_usd == pytest.approx(10.5)
        assert tracker.state.telemetry.total_cost_usd == pytest.approx(10.5)

    def test_no_pricing_means_no_cost(self, change_dir):
        tracker = StateTracker.load(change_dir)
        call = tracker.record_llm_call("challenge", "model-a", 100, 50, duration_ms=1200)
        assert call.cost_usd is None
        assert "cost_usd" not in call.to_dict()
        telemetry = tracker.state.telemetry
        assert (telemetry.total_tokens_in, telemetry.total_tokens_out) == (100, 50)
        assert telemetry.total_cost_usd == 0.0

    def test_totals_accumulate_and_persist(self, change_dir):
        tracker = StateTracker.load(change_dir)
        tracker.record_llm_call("challenge", "model-a", 100, 10)
        tracker.record_llm_call("implement", "model-b", 200, 20)
        tracker.save()
        telemetry = StateTracker.load(change_dir).state.telemetry
        assert telemetry.total_tokens_in == 300
        assert [c.step for c in telemetry.calls] == ["challenge", "implement"]
