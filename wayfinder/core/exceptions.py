class WayfinderException(Exception):
    """Base class for domain errors carrying a client-facing message."""
    def __init__(self, message="Unexpected error."):
        self.message = message
        super().__init__(self.message)

class NodeNotFoundException(WayfinderException):
    """Raised when a node is not found for a given ID."""
    def __init__(self, message="Node not found"):
        super().__init__(message)

class LinkNotFoundException(WayfinderException):
    """Raised when a lateral link is not found for a given ID."""
    def __init__(self, message="Lateral link not found"):
        super().__init__(message)

class NarrativeNotFoundException(WayfinderException):
    def __init__(self, message="No narrative found. Generate one first."):
        super().__init__(message)

class OwnershipException(WayfinderException):
    """Raised when a resource exists but belongs to another user."""
    def __init__(self, message="Unauthorized"):
        super().__init__(message)

class DuplicateLinkException(WayfinderException):
    def __init__(self, message="Connection already exists between these nodes"):
        super().__init__(message)

class InvalidLinkException(WayfinderException):
    """Raised for structurally invalid links such as self-loops."""
    def __init__(self, message="Cannot create a connection from a node to itself"):
        super().__init__(message)

class AIGenerationException(WayfinderException):
    """Raised when the language model call fails or returns an unusable payload."""
    def __init__(self, message="AI generation failed."):
        super().__init__(message)
