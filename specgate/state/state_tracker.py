# CUI // SP-CTI
# specgate Workflow State Tracking

"""
Persistent state for one workflow instance (change directory).

State is stored at <change_dir>/STATE.yaml and tracks:
- change_id, phase, iteration, last_action
- checksums of tracked documents (staleness detection)
- append-only validation history
- model usage telemetry (tokens, cost)

Usage:
    tracker = StateTracker.load(change_dir, logger)
    report = tracker.check_staleness()
    tracker.record_validation("validate-proposal", ValidationMode.NORMAL, result)
    tracker.update_all_checksums()
    tracker.save()
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import yaml

from specgate.documents.document_parser import file_checksum
from specgate.schemas.state import (
    ChecksumEntry,
    LlmCall,
    Phase,
    RULES_VERSION,
    StalenessReport,
    Telemetry,
    ValidationEntry,
    ValidationMode,
    ValidationOutcome,
    WorkflowState,
)
from specgate.schemas.validation import Severity, StateError, ValidationResult

STATE_FILE = "STATE.yaml"

# Top-level documents whose content is checksummed; specs/*.md are added
TRACKED_FILES = (
    "proposal.md",
    "tasks.md",
    "CHALLENGE.md",
    "IMPLEMENTATION.md",
    "VERIFICATION.md",
)

_module_logger = logging.getLogger("specgate.state.tracker")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateTracker:
    """Load, mutate and persist the state record of one workflow instance."""

    def __init__(self, change_dir: Path, state: WorkflowState, logger=None):
        self.change_dir = Path(change_dir)
        self.state = state
        self._logger = logger or _module_logger
        self._dirty = False

    @property
    def state_file(self) -> Path:
        return self.change_dir / STATE_FILE

    @property
    def dirty(self) -> bool:
        return self._dirty

    @classmethod
    def load(cls, change_dir: Path, logger=None) -> "StateTracker":
        """Load STATE.yaml, or create a default record (phase proposed).

        Raises StateError if the file exists but cannot be parsed.
        """
        change_dir = Path(change_dir)
        state_file = change_dir / STATE_FILE
        log = logger or _module_logger
        if state_file.exists():
            try:
                with open(state_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
                if not isinstance(data, dict) or "change_id" not in data:
                    raise StateError(f"{state_file} is not a state record")
                tracker = cls(change_dir, WorkflowState.from_dict(data), logger)
            except (yaml.YAMLError, OSError, ValueError, TypeError) as e:
                raise StateError(f"Could not load state from {state_file}: {e}") from e
            log.debug(f"State loaded from {state_file}")
            return tracker

        now = _now()
        tracker = cls(
            change_dir,
            WorkflowState(change_id=change_dir.resolve().name, created_at=now, updated_at=now),
            logger,
        )
        tracker._dirty = True
        return tracker

    def save(self) -> bool:
        """Persist the record if anything changed. Returns True if written."""
        if not self._dirty:
            return False
        self.state.updated_at = _now()
        try:
            self.change_dir.mkdir(parents=True, exist_ok=True)
            with open(self.state_file, "w", encoding="utf-8") as f:
                yaml.safe_dump(self.state.to_dict(), f, sort_keys=False, allow_unicode=True)
        except OSError as e:
            raise StateError(f"Could not write {self.state_file}: {e}") from e
        self._dirty = False
        self._logger.debug(f"State saved to {self.state_file}")
        return True

    # ------------------------------------------------------------------
    # Phase management
    # ------------------------------------------------------------------

    def set_phase(self, phase: Phase):
        phase = Phase(phase)
        if self.state.phase != phase.value:
            self.state.phase = phase.value
            self._dirty = True

    def increment_iteration(self) -> int:
        self.state.iteration += 1
        self._dirty = True
        return self.state.iteration

    def set_last_action(self, action: str):
        self.state.last_action = action
        self._dirty = True

    # ------------------------------------------------------------------
    # Checksums and staleness
    # ------------------------------------------------------------------

    def tracked_files(self) -> List[str]:
        """Tracked names relative to the change dir, in a stable order."""
        names = [name for name in TRACKED_FILES if (self.change_dir / name).is_file()]
        specs_dir = self.change_dir / "specs"
        if specs_dir.is_dir():
            names.extend(
                f"specs/{p.name}" for p in sorted(specs_dir.glob("*.md"))
                if p.is_file() and not p.name.startswith("_")
            )
        return names

    def update_checksum(self, name: str) -> Optional[str]:
        """Record the current checksum of *name*; drop the entry if the file is gone or unreadable."""
        path = self.change_dir / name
        checksum = self._current_checksum(name) if path.is_file() else None
        if checksum is None:
            if self.state.checksums.pop(name, None) is not None:
                self._dirty = True
            return None
        self.state.checksums[name] = ChecksumEntry(hash=checksum, validated_at=_now())
        self._dirty = True
        return checksum

    def update_all_checksums(self):
        for name in self.tracked_files():
            self.update_checksum(name)
        for name in list(self.state.checksums):
            if not (self.change_dir / name).is_file():
                self.update_checksum(name)

    def is_file_stale(self, name: str) -> bool:
        """True if *name* exists and has no recorded checksum or a different one."""
        path = self.change_dir / name
        if not path.is_file():
            return False
        entry = self.state.checksums.get(name)
        if entry is None:
            return True
        return entry.hash != self._current_checksum(name)

    def _current_checksum(self, name: str) -> Optional[str]:
        """Checksum of *name*, or ``None`` (counted as changed) if it cannot be read."""
        try:
            return file_checksum(self.change_dir / name)
        except OSError as e:
            self._logger.warning(f"Cannot checksum {name}: {e}")
            return None

    def check_staleness(self) -> StalenessReport:
        report = StalenessReport()
        for name in self.tracked_files():
            entry = self.state.checksums.get(name)
            if entry is None:
                report.missing_checksum.append(name)
            elif entry.hash != self._current_checksum(name):
                report.stale.append(name)
            else:
                report.up_to_date.append(name)
        return report

    # ------------------------------------------------------------------
    # Validation history
    # ------------------------------------------------------------------

    def record_validation(self, step: str, mode: ValidationMode, result: ValidationResult,
                          rules_hash: Optional[str] = None) -> ValidationEntry:
        """Append a history entry; ``valid`` follows the mode (strict: no errors)."""
        mode = ValidationMode(mode)
        counts = result.counts()
        entry = ValidationEntry(
            step=step,
            timestamp=_now(),
            mode=mode.value,
            rules_version=RULES_VERSION,
            rules_hash=rules_hash,
            result=ValidationOutcome(
                valid=result.is_valid(strict=mode == ValidationMode.STRICT),
                high=counts["high"],
                medium=counts["medium"],
                low=counts["low"],
            ),
            errors=[e.format() for e in result.errors if e.severity == Severity.HIGH],
            warnings=[e.format() for e in result.errors if e.severity != Severity.HIGH],
        )
        self.state.validations.append(entry)
        self._dirty = True
        return entry

    def record_challenge_validation(self, verdict: str, issues_parsed: int,
                                    high: int, medium: int, low: int) -> ValidationEntry:
        entry = ValidationEntry(
            step="validate-challenge",
            timestamp=_now(),
            result=ValidationOutcome(
                valid=high == 0,
                high=high,
                medium=medium,
                low=low,
                verdict=verdict,
                issues_parsed=issues_parsed,
            ),
        )
        self.state.validations.append(entry)
        self._dirty = True
        return entry

    def last_validation(self, step: str) -> Optional[ValidationEntry]:
        for entry in reversed(self.state.validations):
            if entry.step == step:
                return entry
        return None

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def record_llm_call(self, step: str, model: str, tokens_in: int, tokens_out: int,
                        duration_ms: Optional[int] = None, version: Optional[str] = None,
                        price_in_per_m: Optional[float] = None,
                        price_out_per_m: Optional[float] = None) -> LlmCall:
        """Add a usage ledger entry and update totals.

        Cost is ``tokens / 1e6 * price`` and only computed when pricing is given.
        """
        cost = None
        if price_in_per_m is not None or price_out_per_m is not None:
            cost = (tokens_in / 1_000_000) * (price_in_per_m or 0.0) \
                + (tokens_out / 1_000_000) * (price_out_per_m or 0.0)
        call = LlmCall(
            step=step,
            model=model,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            timestamp=_now(),
            version=version,
            cost_usd=cost,
            duration_ms=duration_ms,
        )
        telemetry = self.state.telemetry
        if telemetry is None:
            telemetry = self.state.telemetry = Telemetry()
        telemetry.calls.append(call)
        telemetry.total_tokens_in += tokens_in
        telemetry.total_tokens_out += tokens_out
        if cost is not None:
            telemetry.total_cost_usd += cost
        self._dirty = True
        return call

    def to_dict(self) -> dict:
        return self.state.to_dict()

    def __repr__(self):
        return f"StateTracker(change_id={self.state.change_id}, phase={self.state.phase})"
