"""
PII Redaction for request logging.

Profiles carry identity fields (names, email, phone) that are never needed in logs.
They are replaced outright; other free text is scanned for:
- Email addresses
- Phone numbers
- Street addresses
"""

import re
import logging
from typing import Dict, Any, Optional, List, Union
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

IDENTITY_KEYS = ("firstname", "lastname", "preferredname", "email", "phone", "first_name", "last_name", "preferred_name")


@dataclass
class PIIRedactionConfig:
    """Configuration for PII redaction settings."""
    identity_keys: List[str] = field(default_factory=lambda: list(IDENTITY_KEYS))
    replacement_text: str = "[REDACTED]"


class PIIRedactor:
    """PII redaction utility using regex patterns."""

    def __init__(self, config: Optional[PIIRedactionConfig] = None):
        self.config = config or PIIRedactionConfig()
        self._compile_patterns()

    def _compile_patterns(self):
        """Compile regex patterns for PII detection."""
        phone_patterns = [
            r'\+\d{1,3}[-.\s]?\d{2,4}[-.\s]?\d{3,4}[-.\s]?\d{3,4}\b',  # International: +44 20 7946 0958
            r'\(\d{3}\)\s*\d{3}[-.]?\d{4}\b',  # (123) 456-7890
            r'\b\d{3}[-.]\d{3}[-.]\d{4}\b',  # 123-456-7890
        ]
        self.patterns = {
            'email': re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', re.IGNORECASE),
            'phone': re.compile('|'.join(phone_patterns)),
            'address': re.compile(
                r'\b\d+\s+[A-Za-z\s]+(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd)\b',
                re.IGNORECASE
            ),
        }

    def redact_text(self, text: str) -> str:
        """Redact PII from a text string."""
        if not text or not isinstance(text, str):
            return text

        redacted_text = text
        for pattern in self.patterns.values():
            redacted_text = pattern.sub(self.config.replacement_text, redacted_text)
        return redacted_text

    def redact_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively redact PII from a dictionary."""
        if not isinstance(data, dict):
            return data

        identity_keys = {k.lower() for k in self.config.identity_keys}
        redacted_data = {}
        for key, value in data.items():
            if str(key).lower() in identity_keys and value:
                redacted_data[key] = self.config.replacement_text
            elif isinstance(value, str):
                redacted_data[key] = self.redact_text(value)
            elif isinstance(value, dict):
                redacted_data[key] = self.redact_dict(value)
            elif isinstance(value, list):
                redacted_data[key] = self.redact_list(value)
            else:
                redacted_data[key] = value
        return redacted_data

    def redact_list(self, data: List[Any]) -> List[Any]:
        """Recursively redact PII from a list."""
        if not isinstance(data, list):
            return data

        redacted_list = []
        for item in data:
            if isinstance(item, str):
                redacted_list.append(self.redact_text(item))
            elif isinstance(item, dict):
                redacted_list.append(self.redact_dict(item))
            elif isinstance(item, list):
                redacted_list.append(self.redact_list(item))
            else:
                redacted_list.append(item)
        return redacted_list


# Global redactor instance with default configuration
default_redactor = PIIRedactor()


def redact_pii(text: str, config: Optional[PIIRedactionConfig] = None) -> str:
    """Convenience function to redact PII from text."""
    redactor = PIIRedactor(config) if config else default_redactor
    return redactor.redact_text(text)


def redact_user_data(data: Union[Dict[str, Any], List[Any]], config: Optional[PIIRedactionConfig] = None) -> Union[Dict[str, Any], List[Any]]:
    """Convenience function to redact PII from user data structures."""
    redactor = PIIRedactor(config) if config else default_redactor

    if isinstance(data, dict):
        return redactor.redact_dict(data)
    elif isinstance(data, list):
        return redactor.redact_list(data)
    return data
