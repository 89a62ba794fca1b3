"""
Assessflow Assessment Platform Backend

This package hosts the assessment pipeline of the learning platform:

1. Authoring and faculty review of pre-assessments and post-tests
2. Promotion of approved assessments into the live catalog
3. Timed test-taking sessions with automatic submission at the deadline
4. Deterministic grading and an append-only result history
"""

__version__ = "0.1.0"
