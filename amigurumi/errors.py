from __future__ import annotations


class AmigurumiError(Exception):
    """Base class for failures surfaced to the UI."""


class GenerationFailure(AmigurumiError):
    """The batch concept request failed or returned an unusable payload."""


class ImageGenerationFailure(AmigurumiError):
    """A single concept image request returned no image."""


class ExportFailure(AmigurumiError):
    """The concept archive could not be assembled or written."""
