"""
Errors
=======
Failures raised at the stage boundary. The block runtime itself never
raises for bad parameters, unknown block types or missing ids.
"""


class ScratchMiniError(Exception):
    """Base error for the package."""


class StageError(ScratchMiniError):
    """A stage operation's precondition was not met."""


class RunInProgressError(StageError):
    """A run was requested while another run is still active."""
