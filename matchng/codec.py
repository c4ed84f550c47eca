"""
Reversible obfuscation of sensitive string fields.

This is base64 over UTF-8 text so names and emails are not stored as plain
text. It is NOT encryption and gives no confidentiality: anyone with the
database file can decode it.
"""

import base64
import binascii
from typing import Any, Collection

from .constants import SENSITIVE_FIELDS


class ObfuscationError(ValueError):
    """Raised when a sensitive field cannot be decoded."""
    pass


def encode_text(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_text(text: str) -> str:
    try:
        return base64.b64decode(text.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError) as e:
        raise ObfuscationError(f"Invalid obfuscated value: {e}") from e


def obfuscate(value: Any, fields: Collection[str] = SENSITIVE_FIELDS) -> Any:
    """Return a copy of value with sensitive string fields encoded, at any depth."""
    if isinstance(value, dict):
        return {
            k: encode_text(v) if k in fields and isinstance(v, str) else obfuscate(v, fields)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [obfuscate(v, fields) for v in value]
    return value


def deobfuscate(value: Any, fields: Collection[str] = SENSITIVE_FIELDS) -> Any:
    """Inverse of obfuscate. Raises ObfuscationError on undecodable fields."""
    if isinstance(value, dict):
        return {
            k: decode_text(v) if k in fields and isinstance(v, str) else deobfuscate(v, fields)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [deobfuscate(v, fields) for v in value]
    return value
