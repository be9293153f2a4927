import pytest

from docintel.shared.errors import DocumentValidationError
from docintel.documents.services.filenames import sanitize_filename, validate_filename


@pytest.mark.parametrize(
    "name",
    ["report.pdf", "Quarterly Report (final).pdf", "../../etc/passwd.pdf", "a" * 150 + ".pdf", "naïve résumé.pdf"],
)
def test_sanitize_is_idempotent(name):
    once = sanitize_filename(name)
    assert sanitize_filename(once) == once


def test_traversal_name_becomes_safe_and_is_accepted():
    result = validate_filename("../../etc/passwd.pdf", (".pdf",))

    assert "/" not in result
    assert "\\" not in result
    assert ".." not in result
    assert result.endswith(".pdf")
    assert result == "etc_passwd.pdf"


def test_nested_traversal_sequences_are_fully_removed():
    assert sanitize_filename("....//secret.pdf") == "secret.pdf"
    assert sanitize_filename("..\\..\\windows.pdf") == "windows.pdf"


def test_unsafe_characters_become_underscores():
    assert sanitize_filename("my file?.pdf") == "my_file_.pdf"


def test_long_names_are_truncated_keeping_extension():
    result = sanitize_filename("x" * 300 + ".pdf", max_length=100)

    assert len(result) == 100
    assert result.endswith(".pdf")


def test_wrong_extension_is_rejected():
    with pytest.raises(DocumentValidationError) as excinfo:
        validate_filename("notes.docx", (".pdf",))
    assert excinfo.value.error == "INVALID_FILE_TYPE"


def test_extension_check_is_case_insensitive():
    assert validate_filename("SCAN.PDF", (".pdf",)) == "SCAN.PDF"


@pytest.mark.parametrize("name", ["../", ".pdf", "___.pdf"])
def test_names_without_a_usable_stem_are_rejected(name):
    with pytest.raises(DocumentValidationError) as excinfo:
        validate_filename(name, (".pdf",))
    assert excinfo.value.error == "INVALID_FILENAME"
