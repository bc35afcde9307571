from .candidate import (
    CandidateCreate,
    CandidateInput,
    CandidateListResult,
    CandidateResult,
    CandidateUpdate,
)
from .common import DeleteResult, ExpectedVersion, ListOrderUpdate, VersionedRequest
from .ics import (
    IcsImportCommit,
    IcsImportRequest,
    ImportDecision,
    ImportedCandidate,
    ImportPreview,
    ImportResult,
)
from .participant import (
    ParticipantCreate,
    ParticipantListResult,
    ParticipantPatch,
    ParticipantResponseItem,
    ParticipantResponsesResult,
    ParticipantResult,
    ParticipantUpdate,
)
from .project import (
    MetaResult,
    ProjectCreate,
    ProjectMetaInput,
    ProjectMetaUpdate,
    ProjectSnapshot,
    ProjectSummaryRead,
    SnapshotImport,
)
from .response import ResponseDelete, ResponseResult, ResponseUpsert
from .share import (
    ShareGenerateRequest,
    ShareRotateRequest,
    ShareTokenLookup,
    ShareTokensResult,
)
from .tally import CandidateTally, ParticipantTally, ResponsesSummary, Tally

__all__ = [
    "CandidateCreate",
    "CandidateInput",
    "CandidateListResult",
    "CandidateResult",
    "CandidateTally",
    "CandidateUpdate",
    "DeleteResult",
    "ExpectedVersion",
    "IcsImportCommit",
    "IcsImportRequest",
    "ImportDecision",
    "ImportedCandidate",
    "ImportPreview",
    "ImportResult",
    "ListOrderUpdate",
    "MetaResult",
    "ParticipantCreate",
    "ParticipantListResult",
    "ParticipantPatch",
    "ParticipantResponseItem",
    "ParticipantResponsesResult",
    "ParticipantResult",
    "ParticipantTally",
    "ParticipantUpdate",
    "ProjectCreate",
    "ProjectMetaInput",
    "ProjectMetaUpdate",
    "ProjectSnapshot",
    "ProjectSummaryRead",
    "ResponseDelete",
    "ResponseResult",
    "ResponsesSummary",
    "ResponseUpsert",
    "ShareGenerateRequest",
    "ShareRotateRequest",
    "ShareTokenLookup",
    "ShareTokensResult",
    "SnapshotImport",
    "Tally",
    "VersionedRequest",
]
