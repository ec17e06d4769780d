from maturamate.repositories.pending_change_repository import PendingChangeRepository
from maturamate.repositories.subject_repository import SubjectRepository
from maturamate.repositories.subscription_repository import SubscriptionRepository
from maturamate.repositories.user_repository import UserRepository
from maturamate.repositories.user_subject_repository import UserSubjectRepository

__all__ = [
    "PendingChangeRepository",
    "SubjectRepository",
    "SubscriptionRepository",
    "UserRepository",
    "UserSubjectRepository",
]
