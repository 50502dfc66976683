"""Video-to-flashcards job service."""
