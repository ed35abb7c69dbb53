"""
freshstock_engines.approval -- Pure transfer approval authority evaluation.

Responsibility:
    Decide whether an approver may approve a transfer of a given value
    between two branches.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import freshstock_kernel/domain/ types.

Invariants enforced:
    - Only configured approver roles may approve.
    - Values strictly above the elevated threshold need an elevated role.
    - Branch-scoped roles must belong to the source or destination branch.

Failure modes:
    - Returns ``ApprovalEvaluation(authorized=False, reason=...)``; the
      caller raises ApprovalAuthorityError.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from freshstock_kernel.domain.transfer import Approver


@dataclass(frozen=True)
class ApprovalPolicy:
    """Who may approve which transfers."""
    approver_roles: frozenset[str]
    elevated_roles: frozenset[str]
    branch_scoped_roles: frozenset[str]
    elevated_approval_threshold: Decimal


@dataclass(frozen=True)
class ApprovalEvaluation:
    authorized: bool
    requires_elevated: bool
    reason: str


def evaluate_approval_authority(
    policy: ApprovalPolicy,
    approver: Approver,
    transfer_value: Decimal,
    source_branch_id: UUID,
    destination_branch_id: UUID,
) -> ApprovalEvaluation:
    """Check role, value threshold and branch scope, in that order."""
    requires_elevated = transfer_value > policy.elevated_approval_threshold

    if approver.role not in policy.approver_roles:
        return ApprovalEvaluation(
            authorized=False,
            requires_elevated=requires_elevated,
            reason=f"role '{approver.role}' cannot approve transfers",
        )

    if requires_elevated and approver.role not in policy.elevated_roles:
        return ApprovalEvaluation(
            authorized=False,
            requires_elevated=True,
            reason=(
                f"transfer value {transfer_value} exceeds "
                f"{policy.elevated_approval_threshold}; elevated role required"
            ),
        )

    if approver.role in policy.branch_scoped_roles and not (
        source_branch_id in approver.branch_ids
        or destination_branch_id in approver.branch_ids
    ):
        return ApprovalEvaluation(
            authorized=False,
            requires_elevated=requires_elevated,
            reason="approver is not assigned to the source or destination branch",
        )

    return ApprovalEvaluation(
        authorized=True,
        requires_elevated=requires_elevated,
        reason="authorized",
    )
