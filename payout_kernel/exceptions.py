"""
Typed Exception Hierarchy for the Payout Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Statement generation and payouts run unattended: the scheduler fires at
09:00 on a Monday and a webhook arrives at 03:00 on a Sunday.  Whoever
reads the resulting error (a log pipeline, an operator screen, the run
report of a schedule) must be able to act on it without parsing prose.

Every exception therefore:
  1. Has its own class (catch by type, not by message)
  2. Carries a ``code`` class attribute (machine-readable, API-safe)
  3. Stores the context as attributes (statement id, tag, status, ...)

Example:
    try:
        orchestrator.initiate_payout(statement_id)
    except MissingDestinationAccountError as e:
        report.append({"code": e.code, "entity": e.entity_key})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayoutKernelError (base)
    |
    +-- ConfigurationError
    |   +-- MissingFeeConfigurationError
    |   +-- MissingDestinationAccountError
    |   +-- InvalidScheduleConfigurationError
    |
    +-- StatementError
    |   +-- EntityNotFoundError
    |   +-- StatementNotFoundError
    |   +-- StatementAlreadyGeneratedError
    |   +-- DuplicateStatementError
    |
    +-- WorkflowTransitionError
    |   +-- InvalidStatementTransitionError
    |   +-- InvalidPayoutTransitionError
    |
    +-- PayoutError
    |   +-- PayoutNotAllowedError
    |   +-- TransferGatewayError
    |
    +-- WebhookError
    |   +-- WebhookVerificationError
    |   +-- UnsupportedWebhookEventError
    |
    +-- ScheduleError
    |   +-- ScheduleNotFoundError
    |   +-- GenerationJobNotFoundError
    |
    +-- ConcurrencyError
        +-- ScheduleAlreadyRunningError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                           | When Raised
--------------|--------------------------------|-------------------------------------
Configuration | MISSING_FEE_CONFIGURATION      | Property has no commission percentage
              | MISSING_DESTINATION_ACCOUNT    | No transfer account on property/group
              | INVALID_SCHEDULE_CONFIGURATION | Bad frequency, anchor or time of day
--------------|--------------------------------|-------------------------------------
Statement     | ENTITY_NOT_FOUND               | Property or group id does not exist
              | STATEMENT_NOT_FOUND            | Statement id does not exist
              | STATEMENT_ALREADY_GENERATED    | Regeneration past the draft stage
              | DUPLICATE_STATEMENT            | Concurrent insert for same entity+period
--------------|--------------------------------|-------------------------------------
Workflow      | INVALID_STATEMENT_TRANSITION   | e.g. paid -> draft
              | INVALID_PAYOUT_TRANSITION      | e.g. transferred -> queued
--------------|--------------------------------|-------------------------------------
Payout        | PAYOUT_NOT_ALLOWED             | Non-positive payout, already paid
              | TRANSFER_GATEWAY_ERROR         | Gateway raised instead of answering
--------------|--------------------------------|-------------------------------------
Webhook       | WEBHOOK_VERIFICATION_FAILED    | Bad/missing signature or stale stamp
              | UNSUPPORTED_WEBHOOK_EVENT      | Event type not handled
--------------|--------------------------------|-------------------------------------
Schedule      | SCHEDULE_NOT_FOUND             | Unknown tag name
              | GENERATION_JOB_NOT_FOUND       | Unknown generate-now job id
--------------|--------------------------------|-------------------------------------
Concurrency   | SCHEDULE_ALREADY_RUNNING       | Manual run while the tag is generating

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Configuration errors are per entity.  The aggregator raises them; the
   scheduler records them in the run report and moves on to the next
   property.

2. Webhook errors never touch state.  The HTTP layer maps
   WebhookVerificationError to 400 and stops.

3. Workflow errors mean the caller asked for an illegal move.  They are
   rejected, never coerced into the nearest legal state.
"""


class PayoutKernelError(Exception):
    """
    Base exception for all payout kernel errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "PAYOUT_KERNEL_ERROR"


# Configuration errors


class ConfigurationError(PayoutKernelError):
    """Base exception for per-entity configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class MissingFeeConfigurationError(ConfigurationError):
    """Property has no commission percentage configured."""

    code: str = "MISSING_FEE_CONFIGURATION"

    def __init__(self, property_id: str, property_name: str | None = None):
        self.property_id = property_id
        self.property_name = property_name
        label = f"{property_name} ({property_id})" if property_name else property_id
        super().__init__(f"No commission percentage configured for property {label}")


class MissingDestinationAccountError(ConfigurationError):
    """Neither the property nor its group has a transfer account."""

    code: str = "MISSING_DESTINATION_ACCOUNT"

    def __init__(self, statement_id: str, entity_key: str):
        self.statement_id = statement_id
        self.entity_key = entity_key
        super().__init__(
            f"No destination account configured for {entity_key} "
            f"(statement {statement_id})"
        )


class InvalidScheduleConfigurationError(ConfigurationError):
    """A tag schedule cannot be evaluated with its current settings."""

    code: str = "INVALID_SCHEDULE_CONFIGURATION"

    def __init__(self, tag_name: str, reason: str):
        self.tag_name = tag_name
        self.reason = reason
        super().__init__(f"Schedule '{tag_name}' is misconfigured: {reason}")


# Statement errors


class StatementError(PayoutKernelError):
    """Base exception for statement generation and lifecycle errors."""

    code: str = "STATEMENT_ERROR"


class EntityNotFoundError(StatementError):
    """Property or listing group does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class StatementNotFoundError(StatementError):
    """Statement with given ID was not found."""

    code: str = "STATEMENT_NOT_FOUND"

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement not found: {statement_id}")


class StatementAlreadyGeneratedError(StatementError):
    """Regeneration requested for a statement that has left the draft stage."""

    code: str = "STATEMENT_ALREADY_GENERATED"

    def __init__(self, statement_id: str, entity_key: str, status: str):
        self.statement_id = statement_id
        self.entity_key = entity_key
        self.status = status
        super().__init__(
            f"Statement {statement_id} for {entity_key} is already {status}; "
            "regeneration rejected"
        )


class DuplicateStatementError(StatementError):
    """Another writer inserted a statement for the same entity and period."""

    code: str = "DUPLICATE_STATEMENT"

    def __init__(self, entity_key: str, period_start: str, period_end: str):
        self.entity_key = entity_key
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Statement for {entity_key} {period_start}..{period_end} "
            "was created concurrently"
        )


# Workflow errors


class WorkflowTransitionError(PayoutKernelError):
    """Base exception for an action that is illegal in the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        workflow: str,
        from_state: str,
        action: str,
        allowed_actions: list[str] | None = None,
    ):
        self.workflow = workflow
        self.from_state = from_state
        self.action = action
        self.allowed_actions = allowed_actions or []
        super().__init__(
            f"{workflow}: action '{action}' not allowed from '{from_state}'. "
            f"Allowed: {self.allowed_actions}"
        )


class InvalidStatementTransitionError(WorkflowTransitionError):
    """Statement lifecycle transition is not allowed."""

    code: str = "INVALID_STATEMENT_TRANSITION"


class InvalidPayoutTransitionError(WorkflowTransitionError):
    """Payout status transition is not allowed."""

    code: str = "INVALID_PAYOUT_TRANSITION"


# Payout errors


class PayoutError(PayoutKernelError):
    """Base exception for payout errors."""

    code: str = "PAYOUT_ERROR"


class PayoutNotAllowedError(PayoutError):
    """The statement is not eligible for a transfer."""

    code: str = "PAYOUT_NOT_ALLOWED"

    def __init__(self, statement_id: str, reason: str):
        self.statement_id = statement_id
        self.reason = reason
        super().__init__(f"Payout not allowed for statement {statement_id}: {reason}")


class TransferGatewayError(PayoutError):
    """The transfer gateway raised instead of returning a result."""

    code: str = "TRANSFER_GATEWAY_ERROR"

    def __init__(self, statement_id: str, detail: str):
        self.statement_id = statement_id
        self.detail = detail
        super().__init__(f"Transfer gateway error for statement {statement_id}: {detail}")


# Webhook errors


class WebhookError(PayoutKernelError):
    """Base exception for inbound webhook errors."""

    code: str = "WEBHOOK_ERROR"


class WebhookVerificationError(WebhookError):
    """Webhook signature could not be verified."""

    code: str = "WEBHOOK_VERIFICATION_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Webhook verification failed: {reason}")


class UnsupportedWebhookEventError(WebhookError):
    """Webhook event type has no handler."""

    code: str = "UNSUPPORTED_WEBHOOK_EVENT"

    def __init__(self, event_type: str, event_id: str | None = None):
        self.event_type = event_type
        self.event_id = event_id
        super().__init__(f"Unsupported webhook event type: {event_type}")


# Schedule errors


class ScheduleError(PayoutKernelError):
    """Base exception for schedule errors."""

    code: str = "SCHEDULE_ERROR"


class ScheduleNotFoundError(ScheduleError):
    """No tag schedule with the given name."""

    code: str = "SCHEDULE_NOT_FOUND"

    def __init__(self, tag_name: str):
        self.tag_name = tag_name
        super().__init__(f"Tag schedule not found: {tag_name}")


class GenerationJobNotFoundError(ScheduleError):
    """No manual generation job with the given id."""

    code: str = "GENERATION_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Generation job not found: {job_id}")


# Concurrency errors


class ConcurrencyError(PayoutKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ScheduleAlreadyRunningError(ConcurrencyError):
    """A generation for this tag is already in flight."""

    code: str = "SCHEDULE_ALREADY_RUNNING"

    def __init__(self, tag_name: str):
        self.tag_name = tag_name
        super().__init__(f"Generation already running for tag '{tag_name}'")
