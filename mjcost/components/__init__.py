from .terms import JaxTaskspacePoseTerm, JaxTerm, TaskspacePoseTerm, Term

__all__ = [
    "JaxTerm",
    "Term",
    "JaxTaskspacePoseTerm",
    "TaskspacePoseTerm",
]
