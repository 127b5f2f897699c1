"""Operator scripts for the payroll configuration kernel."""
