"""Validation issues."""

from enum import Enum
from typing import List, Optional, Iterable
from pydantic import BaseModel, Field


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Issue(BaseModel):
    """A single validation finding."""
    code: str = Field(..., description="Stable issue code, e.g. 'circular' or 'reference-missing'")
    severity: Severity
    resource: Optional[str] = Field(default=None, description="'Kind:name' of the offending resource")
    field: Optional[str] = Field(default=None, description="Dotted path inside the spec")
    message: str
    suggestion: Optional[str] = None
    path: List[str] = Field(default_factory=list, description="Cycle path for 'circular' issues")

    class Config:
        """Pydantic config."""
        use_enum_values = True

    def __str__(self) -> str:
        where = f"{self.resource}" if self.resource else "document"
        if self.field:
            where = f"{where} ({self.field})"
        return f"[{self.severity}] {where}: {self.message}"


class IssueSet(BaseModel):
    """Errors, warnings and infos produced by a validation run."""
    errors: List[Issue] = Field(default_factory=list)
    warnings: List[Issue] = Field(default_factory=list)
    infos: List[Issue] = Field(default_factory=list)

    def add(self, issue: Issue) -> None:
        severity = issue.severity
        if severity == Severity.ERROR.value:
            self.errors.append(issue)
        elif severity == Severity.WARNING.value:
            self.warnings.append(issue)
        else:
            self.infos.append(issue)

    def error(self, code: str, message: str, **kwargs) -> None:
        self.add(Issue(code=code, severity=Severity.ERROR, message=message, **kwargs))

    def warning(self, code: str, message: str, **kwargs) -> None:
        self.add(Issue(code=code, severity=Severity.WARNING, message=message, **kwargs))

    def info(self, code: str, message: str, **kwargs) -> None:
        self.add(Issue(code=code, severity=Severity.INFO, message=message, **kwargs))

    def extend(self, other: "IssueSet") -> None:
        for issue in other.all():
            self.add(issue)

    def promote(self, codes: Iterable[str]) -> None:
        """Turn warnings with the given codes into errors."""
        codes = set(codes)
        kept = []
        for issue in self.warnings:
            if issue.code in codes:
                self.errors.append(issue.model_copy(update={"severity": Severity.ERROR.value}))
            else:
                kept.append(issue)
        self.warnings = kept

    def all(self) -> List[Issue]:
        return self.errors + self.warnings + self.infos

    def codes(self) -> List[str]:
        return [issue.code for issue in self.all()]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors
