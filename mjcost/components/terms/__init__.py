from ._base import JaxTerm, Term
from ._taskspace_pose_term import JaxTaskspacePoseTerm, TaskspacePoseTerm, frobenius_norm

__all__ = [
    "JaxTerm",
    "Term",
    "JaxTaskspacePoseTerm",
    "TaskspacePoseTerm",
    "frobenius_norm",
]
