"""
Payroll Kernel - configuration history engine

Temporal compensation configuration for trucking payroll with:
- Non-overlapping, versioned configuration history per employee
- Atomic close-current/open-new transitions
- Point-in-time resolution with base configuration fallback
- Append-only, session-grouped field-level audit trail
"""

__version__ = "0.1.0"
