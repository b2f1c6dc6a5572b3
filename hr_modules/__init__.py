"""
HR Modules

Persistence and command/query services over the pure engines:

- attendance: day records, clock events, approvals, auto-closure
- leave: leave types, balances, requests and entitlement
- payroll: pay components, runs, items, finalisation and exports
- settlement: full-and-final settlement on exit
"""
