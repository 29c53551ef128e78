"""Shared data schemas for Agent components"""
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _lower(value):
    return value.strip().lower() if isinstance(value, str) else value


class SensitivityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ControlCategory(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    INPUT_VALIDATION = "input_validation"
    OUTPUT_ENCODING = "output_encoding"
    CRYPTOGRAPHY = "cryptography"
    SESSION_MANAGEMENT = "session_management"
    ERROR_HANDLING = "error_handling"
    LOGGING_MONITORING = "logging_monitoring"
    RATE_LIMITING = "rate_limiting"
    DATA_PROTECTION = "data_protection"
    INJECTION_PREVENTION = "injection_prevention"
    ACCESS_CONTROL = "access_control"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ordering used when rolling findings up into a single severity
SEVERITY_RANK = {"none": 0, "low": 1, "medium": 2, "high": 3, "critical": 4}


# --- Input artifacts ---------------------------------------------------------

class FileEntry(BaseModel):
    """One file of the uploaded codebase. Never mutated by the agents."""
    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    size: int = 0


class FrameworkDetectionResult(BaseModel):
    framework: str = "unknown"
    confidence: Confidence = Confidence.LOW
    indicators: List[str] = Field(default_factory=list)

    normalize_case = field_validator("confidence", mode="before")(_lower)


# --- Discovery ---------------------------------------------------------------

class FlowProfile(BaseModel):
    """Endpoint summary handed to the checklist stage (no raw code)."""
    flow_name: str = Field(min_length=1)
    purpose: str
    entry_point: str = Field(min_length=1)
    input_types: List[str] = Field(default_factory=list)
    output_types: List[str] = Field(default_factory=list)
    sensitivity_level: SensitivityLevel

    normalize_case = field_validator("sensitivity_level", mode="before")(_lower)


class EndpointProfile(FlowProfile):
    mark_down: str

    def to_flow_profile(self) -> FlowProfile:
        return FlowProfile(**self.model_dump(exclude={"mark_down"}))


class PickEndpointResponse(BaseModel):
    status: Literal["pick_endpoint"]
    file_to_read_next: str = Field(min_length=1)


class TracingEndpointResponse(BaseModel):
    status: Literal["tracing_endpoint"]
    endpoint_being_traced: str = Field(min_length=1)
    file_to_read_next: str = Field(min_length=1)
    files_to_read_later: List[str] = Field(default_factory=list)

    @field_validator("files_to_read_later", mode="before")
    @classmethod
    def none_is_empty(cls, v):
        return [] if v is None else v


class DiscoveryCompletedResponse(BaseModel):
    status: Literal["completed"]
    result: EndpointProfile


class NotFoundResponse(BaseModel):
    status: Literal["not_found"]


DiscoveryResponse = Annotated[
    Union[PickEndpointResponse, TracingEndpointResponse, DiscoveryCompletedResponse, NotFoundResponse],
    Field(discriminator="status"),
]


# --- Checklist ---------------------------------------------------------------

class SecurityControl(BaseModel):
    control_id: str = Field(min_length=1)
    name: str
    description: str
    category: ControlCategory
    importance: Priority
    owasp_mapping: List[str] = Field(default_factory=list)

    normalize_case = field_validator("category", "importance", mode="before")(_lower)


class SecurityReference(BaseModel):
    title: str
    url: str


class SecurityChecklist(BaseModel):
    flow_name: str = Field(min_length=1)
    required_controls: List[SecurityControl]
    recommended_controls: List[SecurityControl]
    references: List[SecurityReference]

    def all_controls(self) -> List[SecurityControl]:
        return [*self.required_controls, *self.recommended_controls]

    def control_ids(self) -> set[str]:
        return {c.control_id for c in self.all_controls()}


class ChecklistCompletedResponse(BaseModel):
    status: Literal["completed"]
    result: SecurityChecklist


class AgentErrorResponse(BaseModel):
    """The model reporting that it could not do the task."""
    status: Literal["error"]
    message: str = ""


ChecklistResponse = Annotated[
    Union[ChecklistCompletedResponse, AgentErrorResponse],
    Field(discriminator="status"),
]


# --- Inspection --------------------------------------------------------------

class CodeLocation(BaseModel):
    file: str
    code_snippet: str = ""


class ImplementedControl(BaseModel):
    control_id: str
    control_name: str
    evidence: str
    location: CodeLocation


class MissingControl(BaseModel):
    control_id: str
    control_name: str
    reason: str
    severity: Priority
    recommendation: str

    normalize_case = field_validator("severity", mode="before")(_lower)


class AutoHandledControl(BaseModel):
    control_id: str
    control_name: str
    handled_by: str
    explanation: str


class Vulnerability(BaseModel):
    title: str
    description: str
    severity: Priority
    cwe: Optional[str] = None
    location: Optional[CodeLocation] = None
    recommendation: str = ""

    normalize_case = field_validator("severity", mode="before")(_lower)


class SecurityReportSummary(BaseModel):
    total_controls: int = 0
    implemented_count: int = 0
    missing_count: int = 0
    auto_handled_count: int = 0
    vulnerabilities_count: int = 0
    overall_severity: Optional[Literal["critical", "high", "medium", "low", "none"]] = None

    normalize_case = field_validator("overall_severity", mode="before")(_lower)


class SecurityReport(BaseModel):
    flow_name: str = Field(min_length=1)
    implemented: List[ImplementedControl]
    missing: List[MissingControl]
    auto_handled: List[AutoHandledControl]
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    summary: SecurityReportSummary

    def referenced_control_ids(self) -> List[str]:
        return [c.control_id for c in (*self.implemented, *self.missing, *self.auto_handled)]


class InspectionCompletedResponse(BaseModel):
    status: Literal["completed"]
    result: SecurityReport


InspectionResponse = Annotated[
    Union[InspectionCompletedResponse, AgentErrorResponse],
    Field(discriminator="status"),
]


class InspectionInput(BaseModel):
    endpoint: EndpointProfile
    checklist: SecurityChecklist
