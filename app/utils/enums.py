import enum


class AssessmentStatus(str, enum.Enum):
    processing_ques = "Processing Ques"
    ques_pending_approval = "Ques Pending Approval"
    ready_for_grading = "Ready for Grading"
    processing_ans = "Processing Ans"
    ans_pending_approval = "Ans Pending Approval"
    completed = "Completed"
    extraction_failed = "Extraction Failed"
    upload_failed = "Upload Failed"


class SubmissionStatus(str, enum.Enum):
    pending = "Pending"
    extracting = "Extracting"
    processing = "Processing"
    ready_for_verification = "Ready for Verification"
    verifying = "Verifying"
    approved = "Approved"
    rejected = "Rejected"
    failed = "Failed"


class ProviderFailureKind(str, enum.Enum):
    critical = "critical"      # auth failure, exhausted quota
    transient = "transient"    # timeout, malformed response


class IdentityAction(str, enum.Enum):
    select = "select"
    review = "review"
    create = "create"


class Role(str, enum.Enum):
    teacher = "teacher"
    admin = "admin"


def enum_values(enum_cls) -> list[str]:
    """Persist enum *values* (the wire strings) rather than member names."""
    return [member.value for member in enum_cls]
