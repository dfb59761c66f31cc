"""Docker engine client."""

from gamedock.drivers.docker.docker import DockerEngineClient

__all__ = ["DockerEngineClient"]
