"""Exceptions raised across the review pipeline.

Most failures inside the pipeline are converted into records (failed reviewer
outputs, basic synthesis, discarded resolution results). Only the classes below
cross module boundaries.
"""

from __future__ import annotations


class PRPanelError(Exception):
    """Base class for prpanel errors."""


class FetchError(PRPanelError):
    """The pull request or its diff could not be fetched. Fatal to the run."""


class EmptyResponseError(PRPanelError):
    """The model answered with no text. Transient, safe to retry."""


class ReviewerTimeoutError(PRPanelError, TimeoutError):
    """A reviewer or verifier call ran past its timeout."""
