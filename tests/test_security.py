"""Tests for filename sanitization and upload type checks."""

import logging

import pytest

from codedrop.security import (
    deduplicate_filenames,
    detect_content_type,
    is_executable,
    log_security_event,
    mask_code,
    sanitize_filename,
    validate_content_type,
    validate_file_extension,
)


@pytest.mark.parametrize("raw, expected", [
    ("report.pdf", "report.pdf"),
    ("../../secret.txt", "secret.txt"),
    ("..\\..\\win.ini", "win.ini"),
    ("a/b/c.txt", "abc.txt"),
    ("bad\x00name.txt", "badname.txt"),
    ('we<i>rd:"na|me?*.txt', "weirdname.txt"),
    ("...", "unnamed_file"),
    ("", "unnamed_file"),
])
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_sanitize_filename_limits_length():
    name = sanitize_filename("a" * 400 + ".txt")
    assert len(name) == 255
    assert name.endswith(".txt")


def test_deduplicate_filenames():
    assert deduplicate_filenames(["a.txt", "b.txt", "a.txt", "A.txt", "c"]) == [
        "a.txt", "b.txt", "a (1).txt", "A (2).txt", "c",
    ]


def test_validate_file_extension():
    assert validate_file_extension("notes.TXT")
    assert validate_file_extension("README")
    assert not validate_file_extension("payload.exe")
    assert not validate_file_extension("page.html")


def test_validate_content_type():
    assert validate_content_type("text/plain; charset=utf-8")
    assert not validate_content_type("application/x-msdownload")
    assert not validate_content_type("Application/X-SH")


def test_mask_code():
    assert mask_code("123456") == "123***"


def test_log_security_event(caplog):
    with caplog.at_level(logging.WARNING, logger="security"):
        log_security_event("invalid_access_code", {"code": "123***"})
    assert "SECURITY_EVENT: invalid_access_code" in caplog.text


PE_HEADER = b"MZ\x90\x00\x03\x00\x00\x00" + b"\x00" * 56 + b"PE\x00\x00"
ELF_HEADER = b"\x7fELF\x02\x01\x01\x00" + b"\x00" * 56


@pytest.mark.parametrize("data", [PE_HEADER, ELF_HEADER, b"\xcf\xfa\xed\xfe" + b"\x00" * 28])
def test_is_executable_detects_binaries(data):
    assert is_executable(data)


@pytest.mark.parametrize("data", [b"", b"plain notes\n", b"%PDF-1.4 fake", b'{"a": 1}'])
def test_is_executable_allows_documents(data):
    assert not is_executable(data)


def test_detect_content_type():
    assert detect_content_type(b"") == "application/x-empty"
    assert detect_content_type(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n") == "application/pdf"
