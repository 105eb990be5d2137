from __future__ import annotations


class LedgerError(ValueError):
    """Base for rejections surfaced to the caller.

    `code` is a short stable string ("not_found", "batch_already_paid", ...)
    that outer layers map to their own responses.
    """

    code = "ledger_error"

    def __init__(self, code: str | None = None, message: str | None = None) -> None:
        if code:
            self.code = code
        self.message = message or self.code
        super().__init__(self.message)


class NotFound(LedgerError):
    code = "not_found"


class BusinessRuleViolation(LedgerError):
    code = "business_rule_violation"


__all__ = ["LedgerError", "NotFound", "BusinessRuleViolation"]
