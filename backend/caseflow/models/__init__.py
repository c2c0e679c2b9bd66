from caseflow.models.base import Base
from caseflow.models.case import Case, CaseHistory
from caseflow.models.comment import CaseComment
from caseflow.models.lookup import CaseCategory, CaseChannel, CasePriority, CaseStatus
from caseflow.models.notification import Notification
from caseflow.models.user import User

__all__ = [
    "Base",
    "Case",
    "CaseCategory",
    "CaseChannel",
    "CaseComment",
    "CaseHistory",
    "CasePriority",
    "CaseStatus",
    "Notification",
    "User",
]
