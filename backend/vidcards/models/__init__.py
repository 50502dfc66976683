from vidcards.models.job import Job, JobEvent
from vidcards.models.study import Flashcard, StudySession

__all__ = ["Job", "JobEvent", "Flashcard", "StudySession"]
