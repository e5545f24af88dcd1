class PingError(Exception):
    """Base class for errors raised by the ping services."""


class UnsupportedEditionError(PingError):
    """A roster entry names a protocol family no probe handles.

    This is a configuration error: it is raised before a cycle starts and
    is never turned into a per-server failure.
    """

    def __init__(self, server_id, edition):
        super().__init__(f"Unsupported type: {edition!r} (server {server_id})")
        self.server_id = server_id
        self.edition = edition


class DuplicateOutcomeError(PingError):
    """A second outcome arrived for a server within the same generation."""

    def __init__(self, generation, server_id):
        super().__init__(f"server {server_id} already reported in generation {generation}")
        self.generation = generation
        self.server_id = server_id


class ProbeFailure(PingError):
    """A probe reached the server (or its API) but got no usable status."""
