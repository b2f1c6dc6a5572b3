"""Attendance: day records, clock events, approvals and auto-closure."""
