"""
payout_scheduler -- Tag-driven statement generation schedules.

Decides, per tag, when the next round of statements is due and invokes
the statement aggregator for every property and group carrying the tag.

Architecture:
    payout_scheduler/ sits above payout_kernel and payout_services.
    Nothing in kernel/, engines/ or services/ imports from it.

Invariants:
    - Schedule evaluation is pure (domain/schedule.py).
    - All timestamps come from an injected Clock.
    - One run per (tag, occurrence), enforced by a UNIQUE key.
    - Ticks never overlap.
    - SAVEPOINT isolation per generated entity.
"""
