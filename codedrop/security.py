"""
Security utilities for codedrop.
Provides filename sanitization, upload type validation and security event logging.
"""
import re
import logging
from pathlib import Path
from typing import Iterable, List, Set

import magic

security_logger = logging.getLogger('security')

# Allowed file extensions (safe types only - no executable or XSS vectors)
ALLOWED_EXTENSIONS: Set[str] = {
    # Documents
    '.pdf', '.doc', '.docx', '.txt', '.rtf', '.odt',
    # Images (NO SVG - can contain JavaScript)
    '.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.ico',
    # Data
    '.csv', '.json', '.xml', '.xlsx', '.xls',
    # Archives
    '.zip', '.tar', '.gz', '.7z', '.rar',
    # Media
    '.mp3', '.mp4', '.wav', '.avi', '.mov', '.mkv', '.webm', '.ogg',
    # Safe text formats (NO HTML/JS - XSS risk)
    '.md', '.yml', '.yaml', '.ini', '.cfg', '.log'
}

DANGEROUS_CONTENT_TYPES: Set[str] = {
    'application/x-executable',
    'application/x-msdownload',
    'application/x-msdos-program',
    'application/x-sh',
    'application/x-shellscript',
    'application/x-bat',
    'application/x-msi',
}

# MIME types libmagic reports for native binaries and scripts
EXECUTABLE_CONTENT_TYPES: Set[str] = DANGEROUS_CONTENT_TYPES | {
    'application/x-dosexec',
    'application/vnd.microsoft.portable-executable',
    'application/x-elf',
    'application/x-pie-executable',
    'application/x-sharedlib',
    'application/x-mach-binary',
    'text/x-shellscript',
}

# Magic numbers: PE/DOS, ELF, Mach-O (32/64 bit, both byte orders)
EXECUTABLE_SIGNATURES = (
    b'MZ',
    b'\x7fELF',
    b'\xfe\xed\xfa\xce', b'\xfe\xed\xfa\xcf',
    b'\xce\xfa\xed\xfe', b'\xcf\xfa\xed\xfe',
)

SNIFF_BYTES = 2048

# Dangerous patterns in filenames
DANGEROUS_PATTERNS = [
    r'\.\.', r'/', r'\\', r'\x00',  # Path traversal
    r'<', r'>', r':', r'"', r'\|', r'\?', r'\*'  # Windows special chars
]

DEFAULT_FILENAME = "unnamed_file"


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename to prevent path traversal and injection.

    The result is safe to use as an archive entry name.

    Args:
        filename: Original filename

    Returns:
        Safe filename
    """
    if not filename:
        return DEFAULT_FILENAME

    # Remove dangerous patterns
    for pattern in DANGEROUS_PATTERNS:
        filename = re.sub(pattern, '', filename)

    # Remove control characters
    filename = ''.join(c for c in filename if c.isprintable())

    # Remove leading/trailing whitespace and dots
    filename = filename.strip('. \t\n\r')

    # Limit length
    if len(filename) > 255:
        suffix = Path(filename).suffix[:50]
        filename = filename[:255 - len(suffix)] + suffix

    return filename or DEFAULT_FILENAME


def deduplicate_filenames(names: Iterable[str]) -> List[str]:
    """
    Make names unique while keeping their order.

    "a.txt", "a.txt" becomes "a.txt", "a (1).txt".
    """
    seen: Set[str] = set()
    result = []
    for name in names:
        candidate = name
        stem, suffix = Path(name).stem, Path(name).suffix
        counter = 1
        while candidate.lower() in seen:
            candidate = f"{stem} ({counter}){suffix}"
            counter += 1
        seen.add(candidate.lower())
        result.append(candidate)
    return result


def validate_file_extension(filename: str) -> bool:
    """
    Check if file extension is allowed.

    Args:
        filename: The filename to check

    Returns:
        True if extension is allowed
    """
    ext = Path(filename).suffix.lower()
    return ext in ALLOWED_EXTENSIONS or ext == ''


def validate_content_type(content_type: str) -> bool:
    """
    Validate content type is not executable/dangerous.

    Args:
        content_type: MIME type to check

    Returns:
        True if content type is safe
    """
    return content_type.split(';')[0].strip().lower() not in DANGEROUS_CONTENT_TYPES


def detect_content_type(data: bytes) -> str:
    """Sniff the MIME type of `data` from its leading bytes."""
    if not data:
        return 'application/x-empty'
    return magic.from_buffer(bytes(data[:SNIFF_BYTES]), mime=True)


def is_executable(data: bytes) -> bool:
    """
    Check whether file content is an executable, whatever its name says.

    Args:
        data: File content

    Returns:
        True if the content looks like a program
    """
    if bytes(data[:4]).startswith(EXECUTABLE_SIGNATURES):
        return True
    return detect_content_type(data) in EXECUTABLE_CONTENT_TYPES


def mask_code(code: str) -> str:
    return code[:3] + "***"


def log_security_event(event_type: str, details: dict):
    """Log a security-relevant event."""
    security_logger.warning(f"SECURITY_EVENT: {event_type} - {details}")
