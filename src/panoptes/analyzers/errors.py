"""Analyzer errors."""


class ExtractionError(Exception):
    """Raised when an analyzer cannot read or parse a file.

    The pipeline recovers by naming the file from its stem with a low
    confidence, so the error never stops processing of other files.
    """
