"""Errors surfaced by the allocation and rendering services."""


class NotFoundError(LookupError):
    """A referenced A-roll, B-roll or timeline does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class EncodeError(RuntimeError):
    """The ffmpeg process failed for a single render."""

    def __init__(self, message: str, returncode: int | None = None, output: str = ""):
        self.returncode = returncode
        self.output = output
        if output:
            message = f"{message}: {output[-500:]}"
        super().__init__(message)
