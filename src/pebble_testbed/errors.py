"""pebble-testbed errors."""
from typing import Iterable


class Error(Exception):
    """Generic pebble-testbed error."""


class ComposeError(Error):
    """Compose file cannot be read or lacks a usable service."""


class PebbleConfigError(Error):
    """Pebble JSON configuration is invalid."""


class ArtifactError(Error):
    """Pebble release binary cannot be fetched for this platform."""


# Preflight Errors
class PreflightError(Error):
    """A check run before launching the test server failed."""


class MissingMountError(PreflightError):
    """Bind mount sources are missing.

    :ivar list missing: absolute paths of the missing files

    """
    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        assert self.missing
        super().__init__()

    def __str__(self) -> str:
        return 'Missing files for bind mounts: {0}'.format(', '.join(self.missing))


class PortInUseError(PreflightError):
    """Published host ports are already bound.

    :ivar list ports: ports found busy

    """
    def __init__(self, ports: Iterable[int]) -> None:
        self.ports = sorted(ports)
        assert self.ports
        super().__init__()

    def __str__(self) -> str:
        return 'Ports already in use on the host: {0}'.format(
            ', '.join(str(port) for port in self.ports))


class ConfigMismatchError(PreflightError):
    """Pebble configuration disagrees with the Compose descriptor."""


class RuntimeCommandError(Error):
    """The container runtime exited with an error.

    :ivar list command: the command that was run
    :ivar int returncode: its exit status
    :ivar str output: combined stdout and stderr

    """
    def __init__(self, command: list[str], returncode: int, output: str = '') -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__()

    def __str__(self) -> str:
        msg = 'Command "{0}" exited with status {1}'.format(' '.join(self.command),
                                                            self.returncode)
        if self.output:
            msg += ':\n' + self.output.strip()
        return msg


class ReadinessError(Error):
    """ACME directory did not answer or answered with a bad document."""


class ManagementError(Error):
    """Pebble management API request failed."""


# Issuance Errors
class IssuanceError(Error):
    """Certificate issuance against an ACME server failed."""


class NoHttpChallengeError(IssuanceError):
    """The server did not offer an http-01 challenge."""

    def __str__(self) -> str:
        return 'Only http-01 challenges are supported, and the server offered none'


class NoWebServerError(IssuanceError):
    """No web server is listening to answer the http-01 challenge."""


class WebServerPresentError(IssuanceError):
    """A web server already listens where the standalone server would bind."""
