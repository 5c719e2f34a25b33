#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
class ValidationError(ValueError):
    """Raised when a rule, appointment or transport argument is malformed.
    Not retried: the caller must correct the input."""


class NotFoundError(LookupError):
    """Raised by the storage collaborator when a patient, rule or appointment
    id does not resolve."""
