"""
Guided Tutor engine

Orchestrates single-learner tutoring sessions: a lifecycle state machine,
layered prompt assembly, pluggable generation backends and a response
validator that keeps every released reply in character and on task.
"""

__version__ = "0.1.0"
