"""Payroll: pay components, runs, items, finalisation and export files."""
