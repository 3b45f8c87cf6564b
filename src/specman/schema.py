from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ViolationDTO(BaseModel):
    field: str
    code: str
    message: str


class UnresolvedReferenceDTO(BaseModel):
    source: str
    reference: str
    kind: str
    origin: str
    optional: bool
    code: str
    message: str


class UnresolvedGroupDTO(BaseModel):
    required: List[UnresolvedReferenceDTO] = []
    optional: List[UnresolvedReferenceDTO] = []


class ComplianceEntryDTO(BaseModel):
    identifier: Optional[str] = None
    modality: str
    status: str
    text: str = ""
    evidence: List[str] = []
    broken_evidence: List[UnresolvedReferenceDTO] = []


class StatusSummaryDTO(BaseModel):
    documents: int = 0
    violations: int = 0
    unresolved_required: int = 0
    unresolved_optional: int = 0
    cycles: int = 0
    constraints: int = 0
    satisfied: int = 0
    linked: int = 0
    unverified: int = 0
    broken: int = 0


class StatusResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
    timeout: Optional[Dict[str, Any]] = None
    data_model_version: str
    violations: Dict[str, List[ViolationDTO]] = {}
    unresolved_references: Dict[str, UnresolvedGroupDTO] = {}
    cycles: List[List[str]] = []
    compliance: Dict[str, Dict[str, List[ComplianceEntryDTO]]] = {}
    summary: StatusSummaryDTO
