from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel


class SourceLocationDTO(BaseModel):
    path: str
    line: int


class SymbolIdentityDTO(BaseModel):
    qualified_name: str
    kind: str
    parameters: List[str] = []
    qualifiers: List[str] = []
    display: str


class TagSetDTO(BaseModel):
    implements: List[str] = []
    cross_refs: List[str] = []


class OccurrenceDTO(BaseModel):
    location: SourceLocationDTO
    occurrence: str
    eligible: bool
    ineligible_reason: Optional[str] = None
    tags: TagSetDTO


class SymbolDTO(BaseModel):
    identity: SymbolIdentityDTO
    eligible: bool
    tags: TagSetDTO
    occurrences: List[OccurrenceDTO]


class TagVariantDTO(BaseModel):
    implements: List[str]
    locations: List[SourceLocationDTO]


class FindingDTO(BaseModel):
    kind: str
    severity: str
    message: str
    identity: Optional[SymbolIdentityDTO] = None
    locations: List[SourceLocationDTO] = []
    variants: List[TagVariantDTO] = []


class ScanScopeDTO(BaseModel):
    root: str
    frontend: str
    dedupe: str
    units: List[str] = []


class ScanResponseDTO(BaseModel):
    schema_version: int = 1
    scope: ScanScopeDTO
    symbols: List[SymbolDTO] = []
    findings: List[FindingDTO] = []
    summary: Dict[str, int] = {}
