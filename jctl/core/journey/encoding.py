"""
Text encoding helpers for export/import documents
Scripts travel as base64 on the wire and as line arrays or JSON text in export files
"""

import base64
import re
from typing import List

_BASE64_PATTERN = re.compile(r'^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$')


def encode(text: str) -> str:
    """UTF-8 text to base64"""
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def decode(data: str) -> str:
    """base64 to UTF-8 text"""
    return base64.b64decode(data).decode('utf-8')


def encode_base64url(text: str) -> str:
    """UTF-8 text to unpadded base64url"""
    return base64.urlsafe_b64encode(text.encode('utf-8')).decode('ascii').rstrip('=')


def is_base64_encoded(value: str) -> bool:
    return bool(_BASE64_PATTERN.match(value))


def convert_base64_text_to_array(data: str) -> List[str]:
    """Decode base64 text and split it into lines"""
    return decode(data).split('\n')


def convert_text_array_to_base64(lines: List[str]) -> str:
    return encode('\n'.join(lines))


def convert_text_array_to_base64url(lines: List[str]) -> str:
    return encode_base64url('\n'.join(lines))


def replace_all(text: str, old: str, new: str) -> str:
    """Replace every occurrence of old in text; empty old leaves text unchanged"""
    if not old:
        return text
    return text.replace(old, new)
