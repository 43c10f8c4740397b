"""
Structured logging for checks, submissions, imports and upload review.
"""

import logging
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for fraud database operations."""

    def __init__(self, name: str = "fraudcheck"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.info(message)

    def log_store_operation(self, operation: str, key: str, status: str = "success", details: Dict[str, Any] = None):
        """Log an account store read or write."""
        log_details = {"key": key}
        if details:
            log_details.update(details)

        self.log_operation(f"store.{operation}", status, log_details)

    def log_check(self, key: str, fraud_status: str, times_checked: int):
        """Log a fraud status lookup."""
        log_details = {
            "key": key,
            "fraud_status": fraud_status,
            "times_checked": times_checked
        }
        self.log_operation("check.account", "completed", log_details)

    def log_name_search(self, query_length: int, matches: int):
        """Log a name search without the searched name itself."""
        self.log_operation("check.name", "completed", {
            "query_length": query_length,
            "matches": matches
        })

    def log_submission(self, key: str, tags: List[str], associated_count: int = 0, source: str = "interactive"):
        """Log a fraud report submission."""
        log_details = {
            "key": key,
            "tags": list(tags),
            "associated_accounts": associated_count,
            "source": source
        }
        self.log_operation("submission.created", "success", log_details)

    def log_import_summary(self, company_name: str, summary: Dict[str, Any]):
        """Log the outcome of an account import."""
        log_details = {"company_name": company_name}
        log_details.update(summary)
        self.log_operation("import.completed", "success", log_details)

    # Upload review audit logging
    def log_upload_request(self, upload_id: str, company_name: str, record_count: int):
        """Log a CSV batch entering the review queue."""
        log_details = {
            "upload_id": upload_id,
            "company_name": company_name,
            "record_count": record_count
        }
        self.log_operation("upload.request_created", "pending", log_details)

    def log_upload_decision(self, upload_id: str, decision: str, reviewer: str = "admin", details: Dict[str, Any] = None):
        """Log an approve or reject decision."""
        log_details = {
            "upload_id": upload_id,
            "decision": decision,
            "reviewer": reviewer
        }
        if details:
            log_details.update(details)
        status = "approved" if decision == "approved" else "rejected"
        self.log_operation("upload.decision", status, log_details)

    def log_validation_error(self, operation: str, errors: List[Any]):
        """Log validation errors with truncated messages."""
        sanitized_errors = [str(error)[:100] for error in errors]
        log_details = {
            "operation": operation,
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        }
        self.log_operation("validation.error", "rejected", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = ['accountHolderName', 'bankAccountName', 'ownerName', 'reporterEmail', 'submittedBy']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
