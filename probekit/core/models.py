# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Data Models

Request/response shapes shared by every operation kind. All models are
frozen pydantic models that read camelCase or snake_case and always write
camelCase JSON.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_WMI_NAMESPACE = "root\\cimv2"


class OperationKind(str, Enum):
    """Closed set of operation tags accepted by the facade"""

    POWERSHELL = "powershell"
    BATCH = "batch"
    PYTHON = "python"
    SHELL = "shell"
    WMI = "wmi"
    REGISTRY = "registry"
    FILESYSTEM = "filesystem"

    @property
    def is_process(self) -> bool:
        return self in _PROCESS_KINDS


_PROCESS_KINDS = frozenset(
    {
        OperationKind.POWERSHELL,
        OperationKind.BATCH,
        OperationKind.PYTHON,
        OperationKind.SHELL,
    }
)


class ErrorKind(str, Enum):
    """Error taxonomy carried in ErrorInfo.type"""

    TIMEOUT = "Timeout"
    CANCELLED = "Cancelled"
    ACCESS_DENIED = "AccessDenied"
    PATH_NOT_FOUND = "PathNotFound"
    UNSUPPORTED_PLATFORM = "UnsupportedPlatform"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    INVALID_REQUEST = "InvalidRequest"
    QUERY_ERROR = "QueryError"
    PROCESS_SPAWN_ERROR = "ProcessSpawnError"
    UNKNOWN = "Unknown"


class ProbeModel(BaseModel):
    """Base for all wire models"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# ============================================================================
# Errors
# ============================================================================


class ErrorInfo(ProbeModel):
    type: ErrorKind
    message: str
    stack_trace: Optional[str] = None


class ErrorEnvelope(ProbeModel):
    """Returned by the facade when a query service fails"""

    error: ErrorInfo


# ============================================================================
# Process execution
# ============================================================================


class ExecRequest(ProbeModel):
    """A command for one of the process-backed executors"""

    command: str
    working_directory: Optional[str] = None
    environment: Optional[Dict[str, str]] = None
    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds")
    capture_stderr: bool = Field(default=True, alias="captureStdErr")
    use_login_shell: bool = False
    interpreter_path: Optional[str] = None


class ExecResult(ProbeModel):
    exit_code: int
    stdout: str = Field(default="", alias="stdOut")
    stderr: str = Field(default="", alias="stdErr")
    timed_out: bool = False
    error: Optional[ErrorInfo] = None
    started_at: datetime
    ended_at: datetime
    process_id: Optional[int] = None

    @model_validator(mode="after")
    def check_ordering(self):
        if self.ended_at < self.started_at:
            raise ValueError("endedAt must not precede startedAt")
        return self

    @computed_field
    @property
    def duration(self) -> float:
        """Elapsed seconds between start and end"""
        return (self.ended_at - self.started_at).total_seconds()

    @computed_field
    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.error is None and not self.timed_out


# ============================================================================
# Instrumentation query
# ============================================================================


class WmiQueryRequest(ProbeModel):
    query: str = Field(min_length=1)
    namespace: Optional[str] = DEFAULT_WMI_NAMESPACE
    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds")


# ============================================================================
# Key-store query
# ============================================================================


class RegistryQueryOptions(ProbeModel):
    root_key_path: str = Field(min_length=1)
    max_depth: int = Field(default=2, ge=0)
    include_values: bool = True


class RegistryNode(ProbeModel):
    """
    One key of a registry-like tree.

    A node at max depth has no sub keys even when the real key has some.
    """

    key_path: str
    values: Dict[str, Any] = Field(default_factory=dict)
    sub_keys: List["RegistryNode"] = Field(default_factory=list)

    def depth(self) -> int:
        """Height of the subtree rooted here (0 for a leaf)"""
        if not self.sub_keys:
            return 0
        return 1 + max(child.depth() for child in self.sub_keys)


# ============================================================================
# Filesystem scan
# ============================================================================


class FileScanOptions(ProbeModel):
    root_path: str = Field(min_length=1)
    max_depth: int = Field(default=3, ge=0)
    include_extensions: Optional[Tuple[str, ...]] = None
    follow_symlinks: bool = False
    include_hidden: bool = False

    @field_validator("include_extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, value):
        """Lower-case and dot-prefix every extension"""
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        normalized = []
        for ext in value:
            ext = str(ext).strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = "." + ext
            if ext not in normalized:
                normalized.append(ext)
        return tuple(normalized)

    def accepts_extension(self, name: str) -> bool:
        if not self.include_extensions:
            return True
        dot = name.rfind(".")
        if dot <= 0:
            return False
        return name[dot:].lower() in self.include_extensions


class FileEntry(ProbeModel):
    path: str
    size_bytes: int
    last_modified_utc: datetime
    is_directory: bool


# ============================================================================
# Tagged requests
# ============================================================================


class ExecOperation(ProbeModel):
    kind: Literal["powershell", "batch", "python", "shell"]
    request: ExecRequest


class WmiOperation(ProbeModel):
    kind: Literal["wmi"]
    request: WmiQueryRequest


class RegistryOperation(ProbeModel):
    kind: Literal["registry"]
    request: RegistryQueryOptions


class FileSystemOperation(ProbeModel):
    kind: Literal["filesystem"]
    request: FileScanOptions


ProbeRequest = Annotated[
    Union[ExecOperation, WmiOperation, RegistryOperation, FileSystemOperation],
    Field(discriminator="kind"),
]

probe_request_adapter: TypeAdapter = TypeAdapter(ProbeRequest)

RegistryNode.model_rebuild()

file_entries_adapter: TypeAdapter = TypeAdapter(List[FileEntry])


def dump_entries(entries: List[FileEntry]) -> str:
    return file_entries_adapter.dump_json(entries, by_alias=True).decode("utf-8")
