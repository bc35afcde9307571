from .candidate import CandidateStatus, ScheduleCandidate
from .participant import Participant, ParticipantStatus
from .project import ProjectMeta, VersionState
from .response import Mark, ParticipantResponse
from .share_token import SHARE_TOKEN_TYPES, ShareTokenEntry, ShareTokens, ShareTokenType

__all__ = [
    "CandidateStatus",
    "Mark",
    "Participant",
    "ParticipantResponse",
    "ParticipantStatus",
    "ProjectMeta",
    "ScheduleCandidate",
    "SHARE_TOKEN_TYPES",
    "ShareTokenEntry",
    "ShareTokens",
    "ShareTokenType",
    "VersionState",
]
