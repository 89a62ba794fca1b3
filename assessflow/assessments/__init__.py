"""
Assessment pipeline: authoring and review, the live catalog, timed attempts,
grading and results.
"""
