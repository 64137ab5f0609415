"""
Dosetrack - once-daily adherence tracking.
"""
