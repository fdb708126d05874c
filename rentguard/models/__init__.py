from rentguard.models.activity_log import ActivityLog
from rentguard.models.actor import Actor, ActorSection
from rentguard.models.document import Document
from rentguard.models.policy import Policy
from rentguard.models.review import DocumentValidation, ReviewNote, SectionValidation

__all__ = [
    "ActivityLog",
    "Actor",
    "ActorSection",
    "Document",
    "DocumentValidation",
    "Policy",
    "ReviewNote",
    "SectionValidation",
]
