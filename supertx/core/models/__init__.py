"""Core models - chains, instructions and plans.

This module exports:
- ChainDescriptor, FinalityPolicy, BridgeRoute: static chain description
- Call, Instruction, ResourceRequirement, ResourceOutput: user input
- DependencyEdge, BridgeStep, PlanNode, ExecutionPlan, Quote: planner output
"""

from supertx.core.models.chain import (
    BridgeRoute,
    ChainDescriptor,
    FinalityKind,
    FinalityPolicy,
)
from supertx.core.models.instruction import (
    Call,
    Instruction,
    ResourceOutput,
    ResourceRequirement,
)
from supertx.core.models.plan import (
    BridgeStep,
    ChainActions,
    DependencyEdge,
    ExecutionPlan,
    FeeInstruction,
    FeeSpec,
    NodeKind,
    PlanNode,
    PlanSignature,
    PlanSkeleton,
    Quote,
    QuoteSummary,
    canonical_json,
    compute_plan_hash,
    linearization_problems,
)

__all__ = [
    # Chains
    "BridgeRoute",
    "ChainDescriptor",
    "FinalityKind",
    "FinalityPolicy",
    # Instructions
    "Call",
    "Instruction",
    "ResourceOutput",
    "ResourceRequirement",
    # Plans
    "BridgeStep",
    "ChainActions",
    "DependencyEdge",
    "ExecutionPlan",
    "FeeInstruction",
    "FeeSpec",
    "NodeKind",
    "PlanNode",
    "PlanSignature",
    "PlanSkeleton",
    "Quote",
    "QuoteSummary",
    "canonical_json",
    "compute_plan_hash",
    "linearization_problems",
]
