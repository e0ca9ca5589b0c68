from app.models.user import User, UserRole, UserStatus
from app.models.verification_code import VerificationCode, CodePurpose
from app.models.email import EmailTemplate, EmailLog
from app.models.operation_log import OperationLog, OperationAction

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "VerificationCode",
    "CodePurpose",
    "EmailTemplate",
    "EmailLog",
    "OperationLog",
    "OperationAction",
]
