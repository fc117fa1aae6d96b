"""
EduSync Assessment Service

This package implements the assessment submission and scoring subsystem of the
EduSync education platform, together with its quiz-event telemetry stream.

The service provides:
1. Parsing and validation of question sets and submitted answers
2. Automatic scoring of single-choice and multi-choice questions
3. Immutable result records and summary statistics across attempts
4. An ordered start/answer/submit event stream for live quiz monitoring
"""

__version__ = "0.1.0"
