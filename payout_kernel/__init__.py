"""
Payout Kernel

Shared foundation for the owner payout system:
- Injectable clock for deterministic scheduling and payout timestamps
- Structured JSON logging
- Typed exception hierarchy with machine-readable codes
- SQLAlchemy base classes, money types and session management
- Workflow value objects for statement and payout state machines
"""

__version__ = "0.1.0"
