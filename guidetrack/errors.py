class UpstreamFetchError(RuntimeError):
    """A collaborator (transport API, Firestore) failed to return records."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message

class ReportRenderError(RuntimeError):
    pass
