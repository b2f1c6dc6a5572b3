"""
HR Engines

Pure calculators: no database, no clock reads, no configuration loading.
Every input arrives as an argument.

- time_arithmetic: minute-of-day diff and OT rounding
- shift_reconciler: slot patterns, lateness and wrong-shift detection
- day_calculator: work, break and OT minutes and attendance status
- auto_closure: closing IN_PROGRESS records past their date
- approval: approver hierarchy and transition resolution
- leave_entitlement: accrued entitlement, advance and encashable days
- working_days: working-day calendar and pro-ration
- earnings: gross line composition
- statutory: EPF, SOCSO, EIS and PCB
- settlement: full-and-final settlement
"""
