"""
HTTP routes for message triage.
"""
