"""Pydantic models for review records, flashcards and error-notebook entries."""
