"""
Module ORM registry (``hr_modules._orm_registry``).

Imports every ORM module so ``Base.metadata`` holds the full schema before
``create_tables()`` runs.  Idempotent.
"""


def import_all_orm_models() -> None:
    import hr_kernel.models  # noqa: F401
    import hr_modules.attendance.orm  # noqa: F401
    import hr_modules.leave.orm  # noqa: F401
    import hr_modules.payroll.orm  # noqa: F401
    import hr_modules.settlement.orm  # noqa: F401
