"""PII redaction service."""
import re


class RedactionService:
    """Service for redacting PII from text."""

    # Common email pattern
    EMAIL_PATTERN = re.compile(
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b'
    )

    # Phone numbers such as +1 415-555-0100 or (020) 7946 0018
    PHONE_PATTERN = re.compile(
        r"(?:\+\d{1,3}[\s-]?)?\(?\d{3}\)?[\s.-]?\d{3,4}[\s.-]?\d{4}\b"
    )

    # user:password@ section of connection URLs
    URL_CREDENTIALS_PATTERN = re.compile(r':[^:@/\s]+@')

    def redact_email(self, text: str) -> str:
        """Redact email addresses."""
        return self.EMAIL_PATTERN.sub('[EMAIL_REDACTED]', text)

    def redact_phone(self, text: str) -> str:
        """Redact phone numbers."""
        return self.PHONE_PATTERN.sub('[PHONE_REDACTED]', text)

    def mask_url_credentials(self, text: str) -> str:
        """Mask the password part of a connection URL."""
        return self.URL_CREDENTIALS_PATTERN.sub(':****@', text)

    def redact_text(self, text: str) -> str:
        """Redact all PII from text."""
        if not isinstance(text, str):
            return text

        result = self.mask_url_credentials(text)
        result = self.redact_email(result)
        result = self.redact_phone(result)
        return result
