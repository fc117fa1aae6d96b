"""
Common utilities shared across the EduSync assessment service.
"""
