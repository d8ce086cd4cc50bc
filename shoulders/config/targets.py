"""Well-known in-cluster services the CLI opens tunnels to."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TunnelTarget:
    """A service port exposed locally by a CLI command."""

    namespace: str
    service: str
    local_port: int
    port: int
    path: str = ""
