import re
from collections.abc import Collection

from contract_sandbox.errors import ValidationError
from contract_sandbox.models import ExecutionRequest

# Letters, digits, '_' and '-'; no separators, dots or shell metacharacters.
ENTRY_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")

_WIRE_NAMES = {
    "contract_code": "contractCode",
    "test_code": "testCode",
    "entry_name": "entryName",
}


def sanitize_entry_name(entry_name: str) -> str:
    """Map an entry name onto the identifier used for filenames and mounts."""
    return entry_name.replace("-", "_")


def validate_request(
    request: ExecutionRequest,
    max_artifact_bytes: int | None = None,
    reserved_filenames: Collection[str] = (),
    artifact_extension: str = ".py",
) -> str:
    """Check a request before any side effect happens.

    Args:
        request: The inbound request.
        max_artifact_bytes: Optional ceiling on each artifact's UTF-8 size.
        reserved_filenames: File names the contract must not take, such as
            the test file's.
        artifact_extension: Extension appended to the entry for the contract file.

    Returns:
        str: The sanitized entry identifier.

    Raises:
        ValidationError: If a field is missing or empty, an artifact is not
            encodable as UTF-8, the entry name is unsafe or reserved, or an
            artifact exceeds the size ceiling.
    """
    missing = [wire for field, wire in _WIRE_NAMES.items() if not getattr(request, field)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    sizes: dict[str, int] = {}
    for field in ("contract_code", "test_code"):
        try:
            sizes[field] = len((getattr(request, field) or "").encode("utf-8"))
        except UnicodeEncodeError as e:
            raise ValidationError(f"{_WIRE_NAMES[field]} is not valid UTF-8 text") from e

    entry_name = request.entry_name or ""
    if not ENTRY_NAME_PATTERN.fullmatch(entry_name):
        raise ValidationError(
            "Invalid entryName: use 1-64 letters, digits, '_' or '-', starting with a letter or digit"
        )

    entry_identifier = sanitize_entry_name(entry_name)
    if f"{entry_identifier}{artifact_extension}" in reserved_filenames:
        raise ValidationError(f"Invalid entryName: '{entry_name}' is reserved for the test file")

    if max_artifact_bytes is not None:
        for field, size in sizes.items():
            if size > max_artifact_bytes:
                raise ValidationError(
                    f"{_WIRE_NAMES[field]} exceeds the maximum size of {max_artifact_bytes} bytes"
                )

    return entry_identifier
