"""Assignment rule catalog loaded from a JSON file"""

import json
import logging
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from collections_desk.config import settings
from collections_desk.domain.exceptions import RuleCatalogError
from collections_desk.domain.models import (
    AssignmentGroup,
    AssignmentRule,
    CaseStage,
    RuleActions,
    RuleConditions,
)
from collections_desk.domain.rules import RuleEngine


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RuleConditionsEntry(_CamelModel):
    dpd_min: Optional[int] = Field(None, ge=0)
    dpd_max: Optional[int] = Field(None, ge=0)
    dpd_gt: Optional[int] = Field(None, ge=0)
    risk_score_gt: Optional[float] = None


class RuleActionsEntry(_CamelModel):
    stage: Optional[CaseStage] = None
    assign_group: Optional[AssignmentGroup] = None
    assigned_to: Optional[str] = Field(None, min_length=1)


class RuleEntry(_CamelModel):
    """One entry of the rules file"""

    code: str = Field(..., min_length=1)
    description: str = ""
    priority: int
    conditions: RuleConditionsEntry = Field(default_factory=RuleConditionsEntry)
    actions: RuleActionsEntry = Field(default_factory=RuleActionsEntry)

    def to_domain(self) -> AssignmentRule:
        return AssignmentRule(
            code=self.code,
            description=self.description,
            priority=self.priority,
            conditions=RuleConditions(**self.conditions.model_dump()),
            actions=RuleActions(**self.actions.model_dump()),
        )


_rules_adapter = TypeAdapter(List[RuleEntry])


def parse_rules(raw: str) -> Tuple[AssignmentRule, ...]:
    """
    Parse and validate rule file content.

    Returns rules sorted ascending by priority; entries sharing a priority
    keep their file order.

    Raises:
        RuleCatalogError: On malformed JSON or an invalid rule entry
    """
    try:
        entries = _rules_adapter.validate_python(json.loads(raw))
    except json.JSONDecodeError as e:
        raise RuleCatalogError(f"Rules file is not valid JSON: {e}") from e
    except PydanticValidationError as e:
        raise RuleCatalogError(f"Invalid assignment rule: {e}") from e

    codes = [entry.code for entry in entries]
    duplicates = sorted({code for code in codes if codes.count(code) > 1})
    if duplicates:
        raise RuleCatalogError(f"Duplicate rule codes: {', '.join(duplicates)}")

    return tuple(sorted((entry.to_domain() for entry in entries), key=lambda r: r.priority))


def resolve_rules_path(path: str) -> Path:
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = Path.cwd() / resolved
    return resolved


class RuleCatalog:
    """
    Holds the current rule snapshot and the engine bound to it.

    The snapshot is loaded on first use (or eagerly via load()) and is never
    mutated; reload() builds a new engine and swaps the reference, so callers
    see either the old rule set or the new one in full.
    """

    def __init__(self, rules_file: Optional[str] = None):
        self.rules_file = rules_file or settings.rules_file
        self._engine: Optional[RuleEngine] = None
        self._lock = threading.Lock()

    @classmethod
    def from_rules(cls, rules: List[AssignmentRule]) -> "RuleCatalog":
        """Build a catalog around an in-memory rule list"""
        catalog = cls(rules_file="<memory>")
        catalog._engine = RuleEngine(rules)
        return catalog

    @property
    def engine(self) -> RuleEngine:
        engine = self._engine
        if engine is None:
            engine = self.load()
        return engine

    @property
    def rules(self) -> Tuple[AssignmentRule, ...]:
        return self.engine.rules

    def load(self) -> RuleEngine:
        """Load the rules file if no snapshot exists yet"""
        with self._lock:
            if self._engine is None:
                self._engine = self._read_engine()
            return self._engine

    def reload(self) -> RuleEngine:
        """Re-read the rules file and atomically replace the snapshot"""
        engine = self._read_engine()
        with self._lock:
            self._engine = engine
        return engine

    def _read_engine(self) -> RuleEngine:
        path = resolve_rules_path(self.rules_file)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RuleCatalogError(f"Cannot read rules file {path}: {e}") from e

        rules = parse_rules(raw)
        logging.info(
            f"Loaded {len(rules)} assignment rules from {path}",
            extra={"step": "rules_loaded", "rule_count": len(rules)},
        )
        return RuleEngine(rules)


_catalog: Optional[RuleCatalog] = None


def get_rule_catalog() -> RuleCatalog:
    """Process-wide catalog, shared read-only across requests and jobs"""
    global _catalog
    if _catalog is None:
        _catalog = RuleCatalog()
    return _catalog
