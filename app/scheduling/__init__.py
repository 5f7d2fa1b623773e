"""Availability and slot-allocation rules.

Pure functions only: callers load schedules and appointments and pass them in.
"""
