"""Deterministic fingerprint of an assignment decision"""

import hashlib
from collections_desk.domain.models import Decision
from collections_desk.domain.rules import format_number


def build_decision_key(case_id: int, dpd: int, risk_score: float, decision: Decision) -> str:
    """
    SHA-256 over the decision inputs and outputs.

    Matched rule codes are sorted so the key only depends on which rules
    fired, and risk scores are rendered canonically so 92 and 92.0 agree.
    """
    payload = ":".join(
        [
            str(case_id),
            str(dpd),
            format_number(risk_score),
            decision.stage.value,
            decision.assignment_group.value,
            decision.assigned_to,
            ",".join(sorted(decision.matched_rules)),
        ]
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
