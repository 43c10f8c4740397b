"""
Request and response models for the fraud check HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..core.schema import RISK_TAGS, UPLOAD_STATUSES


class FraudCheckRequest(BaseModel):
    routing_number: str
    account_number_last4: str

    @field_validator('routing_number')
    @classmethod
    def routing_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('routing_number cannot be empty')
        return v.strip()

    @field_validator('account_number_last4')
    @classmethod
    def last4_must_be_four_characters(cls, v):
        v = v.strip()
        if len(v) != 4:
            raise ValueError('account_number_last4 must be exactly 4 characters')
        return v


class NameSearchRequest(BaseModel):
    account_holder_name: str

    @field_validator('account_holder_name')
    @classmethod
    def name_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('account_holder_name cannot be empty')
        return v.strip()


class AssociatedAccountRequest(BaseModel):
    account_number_last4: str
    account_holder_name: str = ""
    routing_number: Optional[str] = None
    bank_name: Optional[str] = None


class SubmitFraudRequest(BaseModel):
    account_number_last4: str
    account_holder_name: str = ""
    routing_number: Optional[str] = None
    bank_name: Optional[str] = None
    tags: List[str]
    notes: Optional[str] = None
    default_balance: Optional[str] = None
    associated_accounts: List[AssociatedAccountRequest] = []
    reporter_email: str = "user@company.com"
    company_name: str = "Your Company"

    @field_validator('tags')
    @classmethod
    def tags_must_be_known(cls, v):
        if not v:
            raise ValueError('at least one fraud tag is required')
        unknown = [t for t in v if t not in RISK_TAGS]
        if unknown:
            raise ValueError(f'tags must be among: {RISK_TAGS}')
        return v


class UploadCreateRequest(BaseModel):
    company_name: str
    csv_text: str
    file_name: Optional[str] = None
    mapping: Optional[Dict[str, str]] = None

    @field_validator('company_name')
    @classmethod
    def company_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('company_name cannot be empty')
        return v.strip()


class UploadDecisionRequest(BaseModel):
    reviewer: str = "admin@mybankcheck.com"
    reason: str = ""

    @field_validator('reviewer')
    @classmethod
    def reviewer_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('reviewer cannot be empty')
        return v


class UploadStatus(BaseModel):
    id: str
    upload_date: datetime
    company_name: str
    file_name: str
    record_count: int
    status: str  # pending, approved, rejected

    @field_validator('status')
    @classmethod
    def status_must_be_valid(cls, v):
        if v not in UPLOAD_STATUSES:
            raise ValueError(f'status must be one of: {UPLOAD_STATUSES}')
        return v


class UploadDetail(UploadStatus):
    data: List[Dict[str, Any]]


class UploadListResponse(BaseModel):
    uploads: List[UploadStatus]


class ImportSummaryResponse(BaseModel):
    imported: int
    updated: int
    default_count: int
    associated_count: int
    report_count: int
    skipped_rows: int
    total_accounts: int
    processed: int


class UploadDecisionResponse(BaseModel):
    success: bool
    upload_id: str
    status: str
    message: str
    summary: Optional[ImportSummaryResponse] = None


class BankInfo(BaseModel):
    name: str
    routing_numbers: List[str]
    aliases: List[str] = []


class BankListResponse(BaseModel):
    banks: List[BankInfo]


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    account_count: int


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ErrorEnvelope(BaseModel):
    status: str = "error"
    error: ErrorBody
