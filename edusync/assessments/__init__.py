"""
Assessment submission, scoring and attempt tracking.
"""
