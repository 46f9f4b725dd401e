"""Rule evaluation engine - core business logic for case assignment"""

from typing import Iterable, List, Tuple
from collections_desk.domain.models import (
    AssignmentGroup,
    AssignmentRule,
    CaseStage,
    Decision,
    DEFAULT_ASSIGNEES,
)

DEFAULT_GROUP = AssignmentGroup.TIER1
NO_RULE_MATCHED_REASON = "No rule matched. Keeping current stage and defaulting to Tier1Queue."


def rule_matches(rule: AssignmentRule, dpd: int, risk_score: float) -> bool:
    """
    Check whether every condition declared by the rule holds.

    Bounds are inclusive for dpd_min/dpd_max and strict for dpd_gt and
    risk_score_gt. A rule with no conditions always matches.
    """
    conditions = rule.conditions

    if conditions.dpd_min is not None and dpd < conditions.dpd_min:
        return False
    if conditions.dpd_max is not None and dpd > conditions.dpd_max:
        return False
    if conditions.dpd_gt is not None and dpd <= conditions.dpd_gt:
        return False
    if conditions.risk_score_gt is not None and risk_score <= conditions.risk_score_gt:
        return False

    return True


def explain_rule(rule: AssignmentRule, dpd: int, risk_score: float) -> str:
    """Build the justification fragment for one matched rule"""
    conditions = rule.conditions
    actions = rule.actions

    tokens = []
    if conditions.dpd_min is not None or conditions.dpd_max is not None:
        tokens.append(f"dpd={dpd}")
    if conditions.dpd_gt is not None:
        tokens.append(f"dpd>{conditions.dpd_gt}")
    if conditions.risk_score_gt is not None:
        tokens.append(f"riskScore={format_number(risk_score)}")

    outputs = []
    if actions.stage is not None:
        outputs.append(f"stage={actions.stage.value}")
    if actions.assign_group is not None:
        outputs.append(f"group={actions.assign_group.value}")
    if actions.assigned_to:
        outputs.append(f"assignedTo={actions.assigned_to}")

    condition_text = ", ".join(tokens) if tokens else "conditions met"
    output_text = ", ".join(outputs) if outputs else "no action"
    return f"{rule.code} ({condition_text}) -> {output_text}"


def format_number(value: float) -> str:
    """Render integral floats without a trailing .0 (92.0 -> "92")"""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def evaluate_rules(
    rules: Iterable[AssignmentRule],
    dpd: int,
    risk_score: float,
    current_stage: CaseStage,
) -> Decision:
    """
    Apply every matching rule, in the given order, on top of the default decision.

    Requirements:
    - Default: Tier1 group, its default assignee, stage left as current_stage
    - Matching is cumulative, not first-match-wins: later rules override
      earlier ones field by field
    - A group override resets the assignee to the group default before the
      same rule's explicit assignee (if any) is applied

    Example (rules sorted by priority):
        DPD_8_30 (dpd 8-30 -> HARD, Tier2) + RISK_GT_80 (risk > 80 -> SeniorAgent)
        dpd=12, risk=92, SOFT -> HARD / Tier2 / SeniorAgent
    """
    stage = current_stage
    group = DEFAULT_GROUP
    assignee = DEFAULT_ASSIGNEES[DEFAULT_GROUP]

    matched: List[str] = []
    reasons: List[str] = []

    for rule in rules:
        if not rule_matches(rule, dpd, risk_score):
            continue

        matched.append(rule.code)
        actions = rule.actions

        if actions.stage is not None:
            stage = actions.stage

        if actions.assign_group is not None:
            group = actions.assign_group
            assignee = DEFAULT_ASSIGNEES[group]

        # Explicit assignee wins over the group default set just above
        if actions.assigned_to:
            assignee = actions.assigned_to

        reasons.append(explain_rule(rule, dpd, risk_score))

    if not matched:
        reasons.append(NO_RULE_MATCHED_REASON)

    return Decision(
        stage=stage,
        assignment_group=group,
        assigned_to=assignee,
        matched_rules=tuple(matched),
        reason="; ".join(reasons),
    )


class RuleEngine:
    """Stateless evaluator bound to one immutable, priority-sorted rule snapshot"""

    def __init__(self, rules: Iterable[AssignmentRule]):
        self._rules: Tuple[AssignmentRule, ...] = tuple(sorted(rules, key=lambda r: r.priority))

    @property
    def rules(self) -> Tuple[AssignmentRule, ...]:
        return self._rules

    def evaluate(self, dpd: int, risk_score: float, current_stage: CaseStage) -> Decision:
        return evaluate_rules(self._rules, dpd, risk_score, current_stage)
