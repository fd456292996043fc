"""Qualifications, unit standards, assessment results and gradebooks."""
