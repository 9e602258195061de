"""
Slot booker webhook.

A Flask API deployed on Google Cloud Run that tries to register for a
time-sensitive slot by driving a remote headless-browser service, within
a hard wall-clock budget.
"""

__version__ = "1.0.0"
