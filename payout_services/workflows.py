"""
Statement and Payout Workflows (``payout_services.workflows``).

Responsibility
--------------
Declares the state machines for the statement document lifecycle and the
independent payout lifecycle.  Services resolve every status change
through ``Workflow.apply``; an illegal move such as
``transferred -> queued`` has no transition and is rejected.

Architecture position
---------------------
**Services layer** -- declarative workflow definitions.  Imports the
canonical Guard, Transition, Workflow from ``payout_kernel.domain.workflow``.

Invariants enforced
-------------------
* ``transferred`` and ``abandoned`` are terminal payout states.
* A payout only leaves ``failed``/``topup_failed`` through an explicit
  operator ``retry`` or ``abandon``.
* ``paid`` is terminal for the statement document.

Audit relevance
---------------
Workflow definitions are logged at module-load time with state and
transition counts.
"""

from payout_kernel.domain.dtos import PayoutStatus, StatementStatus
from payout_kernel.domain.workflow import Guard, Transition, Workflow
from payout_kernel.logging_config import get_logger

logger = get_logger("services.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

POSITIVE_PAYOUT = Guard(
    name="positive_payout",
    description="Owner payout is greater than zero",
)

STATEMENT_FINALIZED = Guard(
    name="statement_finalized",
    description="Statement has left the draft stage",
)

OPERATOR_REQUESTED = Guard(
    name="operator_requested",
    description="Manual retry or abandon requested by an operator",
)


# -----------------------------------------------------------------------------
# Statement Workflow
# -----------------------------------------------------------------------------

_S = StatementStatus

STATEMENT_WORKFLOW = Workflow(
    name="statement",
    description="Owner statement document lifecycle",
    initial_state=_S.DRAFT.value,
    states=tuple(s.value for s in _S),
    transitions=(
        Transition(_S.DRAFT.value, _S.GENERATED.value, action="finalize"),
        Transition(_S.GENERATED.value, _S.SENT.value, action="send"),
        Transition(_S.MODIFIED.value, _S.SENT.value, action="send"),
        Transition(_S.GENERATED.value, _S.PAID.value, action="mark_paid"),
        Transition(_S.SENT.value, _S.PAID.value, action="mark_paid"),
        Transition(_S.MODIFIED.value, _S.PAID.value, action="mark_paid"),
        Transition(_S.GENERATED.value, _S.MODIFIED.value, action="adjust"),
        Transition(_S.SENT.value, _S.MODIFIED.value, action="adjust"),
    ),
    terminal_states=(_S.PAID.value,),
)


# -----------------------------------------------------------------------------
# Payout Workflow
# -----------------------------------------------------------------------------

_P = PayoutStatus

PAYOUT_WORKFLOW = Workflow(
    name="payout",
    description="Outbound owner transfer lifecycle",
    initial_state=_P.NONE.value,
    states=tuple(s.value for s in _P),
    transitions=(
        Transition(
            _P.NONE.value, _P.PENDING.value, action="initiate",
            guard=POSITIVE_PAYOUT,
        ),
        Transition(_P.PENDING.value, _P.TRANSFERRED.value, action="transfer_succeeded"),
        Transition(_P.QUEUED.value, _P.TRANSFERRED.value, action="transfer_succeeded"),
        Transition(_P.PENDING.value, _P.QUEUED.value, action="insufficient_balance"),
        Transition(_P.PENDING.value, _P.FAILED.value, action="transfer_failed"),
        Transition(_P.QUEUED.value, _P.FAILED.value, action="transfer_failed"),
        Transition(_P.QUEUED.value, _P.TOPUP_FAILED.value, action="topup_failed"),
        Transition(
            _P.PENDING.value, _P.PENDING.value, action="retry",
            guard=OPERATOR_REQUESTED,
        ),
        Transition(
            _P.QUEUED.value, _P.PENDING.value, action="retry",
            guard=OPERATOR_REQUESTED,
        ),
        Transition(
            _P.FAILED.value, _P.PENDING.value, action="retry",
            guard=OPERATOR_REQUESTED,
        ),
        Transition(
            _P.TOPUP_FAILED.value, _P.PENDING.value, action="retry",
            guard=OPERATOR_REQUESTED,
        ),
        Transition(
            _P.FAILED.value, _P.ABANDONED.value, action="abandon",
            guard=OPERATOR_REQUESTED,
        ),
        Transition(
            _P.TOPUP_FAILED.value, _P.ABANDONED.value, action="abandon",
            guard=OPERATOR_REQUESTED,
        ),
    ),
    terminal_states=(_P.TRANSFERRED.value, _P.ABANDONED.value),
)

logger.info(
    "payout_workflows_defined",
    extra={
        "workflows": [STATEMENT_WORKFLOW.name, PAYOUT_WORKFLOW.name],
        "statement_transitions": len(STATEMENT_WORKFLOW.transitions),
        "payout_transitions": len(PAYOUT_WORKFLOW.transitions),
        "guards": [
            POSITIVE_PAYOUT.name,
            STATEMENT_FINALIZED.name,
            OPERATOR_REQUESTED.name,
        ],
    },
)
