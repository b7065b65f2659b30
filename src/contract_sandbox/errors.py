# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Error taxonomy for the contract sandbox.

Only ``ValidationError``, ``StagingError`` and ``SandboxOperationalError``
ever shape a response. ``LoggingError`` and ``CleanupError`` are raised
internally and reported through the application logger.
"""


class ContractSandboxError(Exception):
    """Base class for all contract sandbox errors."""


class ValidationError(ContractSandboxError):
    """The request is missing fields or carries an unsafe value."""


class StagingError(ContractSandboxError):
    """A workspace directory or artifact could not be written."""


class SandboxOperationalError(ContractSandboxError):
    """The sandbox itself could not be run to completion."""


class SandboxTimeoutError(SandboxOperationalError):
    """The sandbox exceeded its execution deadline and was killed."""

    def __init__(self, message: str = "execution timed out"):
        super().__init__(message)


class LoggingError(ContractSandboxError):
    """An execution log record could not be appended."""


class CleanupError(ContractSandboxError):
    """A workspace could not be removed."""
