"""
Message triage feature: rule-based classification and priority scoring.
"""
