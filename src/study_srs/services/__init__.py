"""
# Services Package

Scheduling services of the Study SRS engine:

- **`repetition`**: Pure SM-2 transition function and the two named policies.
- **`review_record_service`**: Generic review records keyed by (user, content).
- **`flashcard_service`**: Flashcards that embed their own SRS state.
- **`error_notebook_service`**: Links error-notebook entries to review records.
- **`due_queue_service`**: Prioritized, paginated due queue.
- **`performance_service`**: Weak-topic ranking and question lookup collaborators.
- **`exceptions`**: Error taxonomy.
"""
