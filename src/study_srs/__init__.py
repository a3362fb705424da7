"""
Study SRS: spaced repetition scheduling engine for the study platform.

Decides when each piece of learnable content (flashcards, missed questions, error-notebook
entries) should be shown again, using an SM-2 variant, and in what order due items should
be presented, using weak-topic prioritization.
"""

__version__ = "0.1.0"
