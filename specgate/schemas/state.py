#!/usr/bin/env python3
# CUI // SP-CTI
"""Workflow state record models persisted to ``STATE.yaml``."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

SCHEMA_VERSION = "2.0"
RULES_VERSION = "2.0"


class Phase(str, Enum):
    PROPOSED = "proposed"
    CHALLENGED = "challenged"
    REJECTED = "rejected"
    IMPLEMENTING = "implementing"
    COMPLETE = "complete"
    ARCHIVED = "archived"


class ValidationMode(str, Enum):
    NORMAL = "normal"
    STRICT = "strict"


@dataclass
class ChecksumEntry:
    hash: str
    validated_at: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ChecksumEntry":
        return cls(hash=str(data.get("hash", "")),
                   validated_at=str(data.get("validated_at", "")))


@dataclass
class ValidationOutcome:
    valid: bool
    high: int = 0
    medium: int = 0
    low: int = 0
    verdict: Optional[str] = None
    issues_parsed: Optional[int] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "ValidationOutcome":
        known = {f.name for f in cls.__dataclass_fields__.values()}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ValidationEntry:
    """Append-only history record of one validation run."""

    step: str
    timestamp: str
    result: ValidationOutcome
    mode: str = ValidationMode.NORMAL.value
    rules_version: str = RULES_VERSION
    rules_hash: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "step": self.step,
            "timestamp": self.timestamp,
            "rules_version": self.rules_version,
            "mode": self.mode,
            "result": self.result.to_dict(),
        }
        if self.rules_hash:
            data["rules_hash"] = self.rules_hash
        if self.errors:
            data["errors"] = list(self.errors)
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ValidationEntry":
        return cls(
            step=str(data.get("step", "")),
            timestamp=str(data.get("timestamp", "")),
            result=ValidationOutcome.from_dict(data.get("result") or {"valid": False}),
            mode=str(data.get("mode", ValidationMode.NORMAL.value)),
            rules_version=str(data.get("rules_version", RULES_VERSION)),
            rules_hash=data.get("rules_hash"),
            errors=list(data.get("errors") or []),
            warnings=list(data.get("warnings") or []),
        )


@dataclass
class LlmCall:
    """One recorded model invocation (usage ledger entry)."""

    step: str
    model: str
    tokens_in: int
    tokens_out: int
    timestamp: str
    version: Optional[str] = None
    cost_usd: Optional[float] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "LlmCall":
        known = {f.name for f in cls.__dataclass_fields__.values()}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Telemetry:
    total_cost_usd: float = 0.0
    total_tokens_in: int = 0
    total_tokens_out: int = 0
    calls: List[LlmCall] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_cost_usd": round(self.total_cost_usd, 6),
            "total_tokens_in": self.total_tokens_in,
            "total_tokens_out": self.total_tokens_out,
            "calls": [c.to_dict() for c in self.calls],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Telemetry":
        return cls(
            total_cost_usd=float(data.get("total_cost_usd", 0.0) or 0.0),
            total_tokens_in=int(data.get("total_tokens_in", 0) or 0),
            total_tokens_out=int(data.get("total_tokens_out", 0) or 0),
            calls=[LlmCall.from_dict(c) for c in data.get("calls") or []],
        )


@dataclass
class WorkflowState:
    """Persisted per-instance record."""

    change_id: str
    created_at: str
    updated_at: str
    schema_version: str = SCHEMA_VERSION
    phase: str = Phase.PROPOSED.value
    iteration: int = 1
    last_action: Optional[str] = None
    checksums: Dict[str, ChecksumEntry] = field(default_factory=dict)
    validations: List[ValidationEntry] = field(default_factory=list)
    telemetry: Optional[Telemetry] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "change_id": self.change_id,
            "schema_version": self.schema_version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "phase": self.phase,
            "iteration": self.iteration,
        }
        if self.last_action:
            data["last_action"] = self.last_action
        data["checksums"] = {name: c.to_dict() for name, c in self.checksums.items()}
        data["validations"] = [v.to_dict() for v in self.validations]
        if self.telemetry is not None:
            data["telemetry"] = self.telemetry.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowState":
        telemetry = data.get("telemetry")
        return cls(
            change_id=str(data["change_id"]),
            created_at=str(data.get("created_at", "")),
            updated_at=str(data.get("updated_at", "")),
            schema_version=str(data.get("schema_version", SCHEMA_VERSION)),
            phase=str(data.get("phase", Phase.PROPOSED.value)),
            iteration=int(data.get("iteration", 1)),
            last_action=data.get("last_action"),
            checksums={
                str(name): ChecksumEntry.from_dict(entry or {})
                for name, entry in (data.get("checksums") or {}).items()
            },
            validations=[ValidationEntry.from_dict(v) for v in data.get("validations") or []],
            telemetry=Telemetry.from_dict(telemetry) if telemetry else None,
        )


@dataclass
class StalenessReport:
    """Partition of tracked files by checksum status."""

    stale: List[str] = field(default_factory=list)
    missing_checksum: List[str] = field(default_factory=list)
    up_to_date: List[str] = field(default_factory=list)

    @property
    def has_stale(self) -> bool:
        return bool(self.stale) or bool(self.missing_checksum)

    def needs_validation(self) -> List[str]:
        return self.stale + self.missing_checksum

    def to_dict(self) -> dict:
        return asdict(self)
