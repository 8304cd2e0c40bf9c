"""Configuration models and error types for the Urbit client."""

from pydantic import BaseModel, Field, SecretStr, field_validator


class APIConfiguration(BaseModel):
    """Connection settings for a single ship."""

    ship_url: str = Field(default="http://0.0.0.0:8080", description="Base URL of the ship")
    ship_code: SecretStr = Field(..., description="The ship's +code, used to log in")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    poll_interval: float = Field(
        default=0.5, gt=0, description="Seconds between event drains in background watchers"
    )

    @field_validator("ship_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class UrbitAPIError(Exception):
    """Base class for every error raised by the client."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationError(UrbitAPIError):
    """Raised when logging in to the ship fails."""

    def __init__(self, message: str = "Failed logging in to the ship with the provided url and code"):
        super().__init__(message)


class NetworkError(UrbitAPIError):
    """Raised when the transport fails or the ship answers with an unexpected status."""


class ChannelOpenError(UrbitAPIError):
    """Raised when the ship does not acknowledge the open-channel poke."""

    def __init__(self, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(f"Failed to create a new channel (status {status_code})")


class SubscribeError(UrbitAPIError):
    """Raised when the ship rejects a subscribe action."""

    def __init__(self, app: str, path: str, status_code: int | None = None):
        self.app = app
        self.path = path
        self.status_code = status_code
        super().__init__(f"Failed to subscribe to {app}{path} (status {status_code})")


class ActionFailedError(UrbitAPIError):
    """Raised when a channel action or graph-store poke is not acknowledged."""

    def __init__(self, action: str, status_code: int | None = None, detail: str | None = None):
        self.action = action
        self.status_code = status_code
        message = f"Action '{action}' failed (status {status_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class AckError(ActionFailedError):
    """A failed acknowledgement of an inbound event.

    Never raised out of ``Channel.drain_events``; collected on
    ``Channel.ack_errors`` instead.
    """

    def __init__(self, event_id: int, status_code: int | None = None, detail: str | None = None):
        self.event_id = event_id
        super().__init__("ack", status_code=status_code, detail=detail or f"event {event_id}")


class ChannelClosedError(UrbitAPIError):
    """Raised when an action is attempted on a deleted channel."""

    def __init__(self, uid: str):
        self.uid = uid
        super().__init__(f"Channel {uid} has been deleted; no further messages may be sent")


class MalformedNodeError(UrbitAPIError):
    """Raised when graph-store JSON cannot be turned into a Node."""


class EmptyGraphError(UrbitAPIError):
    """Raised when a graph payload contains no node fragments."""

    def __init__(self, message: str = "Graph payload contained no nodes"):
        super().__init__(message)


class NodeNotFoundError(UrbitAPIError):
    """Raised when a scried resource or node does not exist."""

    def __init__(self, resource: str, message: str | None = None):
        self.resource = resource
        super().__init__(message or f"Not found: {resource}")


class InvalidIndexError(UrbitAPIError, ValueError):
    """Raised for an index string or notebook index that cannot be used."""


class ConfigError(UrbitAPIError):
    """Raised when a local ship config is missing or incomplete."""


class FeedClosedError(UrbitAPIError):
    """Raised when receiving from a message feed whose watcher has stopped."""

    def __init__(self, message: str = "Message feed has stopped"):
        super().__init__(message)
