"""
HR Kernel

Shared foundation for the attendance, overtime and payroll settlement engine:
- Typed, coded exceptions
- Structured JSON logging
- Injectable clock and workflow value objects
- Declarative ORM base, engine setup and immutability listeners
- Tenant, employee, schedule and holiday persistence
- Advisory locks and the administrator review queue
"""

__version__ = "0.1.0"
