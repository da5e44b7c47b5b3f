from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ProbeKind(str, Enum):
    DATABASE_QUERY = "database-query"
    HTTP_CALL = "http-call"
    EMAIL_SEND = "email-send"


class ProbeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    token: Optional[str] = Field(default=None, repr=False)


class CollectionQuery(BaseModel):
    """One read query against a named collection (table)."""
    model_config = ConfigDict(frozen=True)

    collection: str
    filters: Dict[str, Any] = Field(default_factory=dict, description="field -> value (a list means any of, a dict holds comparisons)")
    label: Optional[str] = None
    template: Optional[str] = Field(default=None, description="str.format template over the record's report fields")
    count_only: bool = False
    populate: Dict[str, str] = Field(default_factory=dict, description="reference field -> referenced collection")
    exclude: List[str] = Field(default_factory=list, description="fields dropped from every record")
    duplicates: List[str] = Field(default_factory=list, description="fields whose repeated values are reported")

    @property
    def display_label(self) -> str:
        return self.label or self.collection


class ProbeRequest(BaseModel):
    """A single one-shot check against an external system."""
    model_config = ConfigDict(frozen=True)

    kind: ProbeKind
    targets: List[str] = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    credentials: Optional[Credentials] = None
    name: str = "probe"

    # http-call
    method: str = "POST"
    path: str = ""

    # database-query
    queries: List[CollectionQuery] = Field(default_factory=list)

    @field_validator("targets", mode="before")
    @classmethod
    def _single_target(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _check_shape(self):
        if self.kind in (ProbeKind.HTTP_CALL, ProbeKind.EMAIL_SEND) and len(self.targets) != 1:
            raise ValueError(f"{self.kind.value} probes take exactly one target")
        if self.kind == ProbeKind.DATABASE_QUERY and not self.queries:
            raise ValueError("database-query probes need at least one query")
        return self

    @property
    def target(self) -> str:
        return self.targets[0]


class ProbeErrorDetail(BaseModel):
    kind: str
    message: str
    code: Optional[int] = None
    body: Optional[Any] = None


class ProbeResult(BaseModel):
    status: ProbeStatus
    lines: List[str] = Field(default_factory=list)
    raw: Optional[Any] = None
    error: Optional[ProbeErrorDetail] = None
    counts: Dict[str, int] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == ProbeStatus.SUCCESS
