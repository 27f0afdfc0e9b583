"""
Error taxonomy for mind map generation and document intake.

Generation-side errors are raised internally and recovered by the
normalizer's fallback path; only ``UnsupportedInput`` reaches the API layer.
"""


class GenerationUnavailable(RuntimeError):
    """The generation function failed or returned no usable text."""


class MalformedResponse(ValueError):
    """Generation succeeded but the embedded structure could not be parsed."""


class DuplicateNodeIdError(ValueError):
    """A concept tree reuses the same node id in more than one place."""

    def __init__(self, node_id: str):
        super().__init__(f"Duplicate node id in concept tree: '{node_id}'")
        self.node_id = node_id


class UnsupportedInput(ValueError):
    """Uploaded file type or content cannot be processed."""
