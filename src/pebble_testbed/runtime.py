"""Start and stop the Pebble service.

Lifecycle is delegated to external tools: `ComposeStack` drives the
container runtime's Compose command, `NativePebble` runs a Pebble release
binary directly with the same configuration, for hosts without containers.
Both are context managers that block on entry until the ACME directory
answers.

"""
import errno
import logging
import os
import shutil
import subprocess
import sys
import tempfile
from types import TracebackType
from typing import Any
from typing import IO
from typing import Optional

from acme import messages

from pebble_testbed import artifacts
from pebble_testbed import compose
from pebble_testbed import constants
from pebble_testbed import errors
from pebble_testbed import pebble_config
from pebble_testbed import preflight
from pebble_testbed import readiness

logger = logging.getLogger(__name__)


class PebbleStack:
    """Common start/stop logic.

    :ivar ServiceDescriptor service: the Pebble service
    :ivar str base_dir: directory relative bind sources resolve against
    :ivar messages.Directory directory: directory fetched once ready

    """
    def __init__(self, service: compose.ServiceDescriptor, base_dir: str,
                 directory_url: str = constants.PEBBLE_DIRECTORY_URL,
                 readiness_attempts: int = constants.READINESS_ATTEMPTS,
                 run_preflight: bool = True) -> None:
        self.service = service
        self.base_dir = base_dir
        self.directory_url = directory_url
        self.readiness_attempts = readiness_attempts
        self.run_preflight = run_preflight
        self.directory: Optional[messages.Directory] = None

    def start(self) -> messages.Directory:
        """Launch the service and wait until its directory answers.

        Anything already started is stopped again if launch fails.

        :raises .errors.PreflightError: if a preflight check fails

        """
        if self.run_preflight:
            preflight.run_all(self.service, self.base_dir, strict=True)
        try:
            self._launch()
            self.directory = readiness.wait_for_directory(
                self.directory_url, self.readiness_attempts)
        except BaseException:
            try:
                self.stop()
            except errors.Error as stop_error:
                logger.warning('Unable to clean up after failed start: %s', stop_error)
            raise
        logger.info('Pebble is ready, directory URL is %s', self.directory_url)
        return self.directory

    def stop(self) -> None:
        raise NotImplementedError()

    def _launch(self) -> None:
        raise NotImplementedError()

    def __enter__(self) -> messages.Directory:
        return self.start()

    def __exit__(self, exc_type: Optional[type[BaseException]], exc: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        self.stop()


class ComposeStack(PebbleStack):
    """Pebble run as a Compose service by the container runtime."""

    def __init__(self, compose_path: str, service: compose.ServiceDescriptor,
                 project_name: str = 'pebble-testbed', runtime: str = 'docker',
                 **kwargs: Any) -> None:
        """
        Create a ComposeStack instance.
        :param str compose_path: Compose file declaring the service
        :param ServiceDescriptor service: the service to run
        :param str project_name: Compose project name
        :param str runtime: container runtime executable, like docker or podman
        """
        super().__init__(service, preflight.default_base_dir(compose_path), **kwargs)
        self.compose_path = os.path.abspath(compose_path)
        self.project_name = project_name
        self.runtime = runtime
        self._compose_cmd: Optional[list[str]] = None

    def compose_command(self) -> list[str]:
        """Compose implementation to use, the runtime plugin if available.

        :raises .errors.Error: if no Compose implementation is installed

        """
        if self._compose_cmd is None:
            if shutil.which(self.runtime) and subprocess.run(
                    [self.runtime, 'compose', 'version'], stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL, check=False).returncode == 0:
                self._compose_cmd = [self.runtime, 'compose']
            elif shutil.which('{0}-compose'.format(self.runtime)):
                self._compose_cmd = ['{0}-compose'.format(self.runtime)]
            else:
                raise errors.Error('No Compose implementation found for runtime {0}'.format(
                    self.runtime))
        return self._compose_cmd

    def _run(self, *args: str) -> str:
        command = self.compose_command() + [
            '-f', self.compose_path, '-p', self.project_name] + list(args)
        logger.debug('Running %s', ' '.join(command))
        process = subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                 universal_newlines=True, cwd=self.base_dir, check=False)
        if process.returncode != 0:
            raise errors.RuntimeCommandError(command, process.returncode, process.stdout)
        return process.stdout

    def _launch(self) -> None:
        logger.info('Starting service %s with %s...', self.service.name, self.compose_path)
        self._run('up', '-d', self.service.name)

    def stop(self) -> None:
        """Stop the service and remove its container."""
        logger.info('Stopping service %s...', self.service.name)
        self._run('down')

    def ps(self) -> str:
        """Runtime view of the service containers."""
        return self._run('ps', self.service.name)

    def logs(self) -> str:
        """Output of the service containers."""
        return self._run('logs', '--no-color', self.service.name)


class NativePebble(PebbleStack):
    """Pebble release binary run as a local subprocess.

    The mounted configuration refers to files by their container path;
    it is rewritten in a temporary workspace to point to the host sources.

    """
    def __init__(self, service: compose.ServiceDescriptor, base_dir: str,
                 assets_path: str, stdout: bool = False, **kwargs: Any) -> None:
        """
        :param str assets_path: cache directory for the Pebble binary
        :param bool stdout: if True stream Pebble output to standard stdout
        """
        super().__init__(service, base_dir, **kwargs)
        self.assets_path = assets_path
        self.stdout = stdout
        self._stdout: Optional[IO[Any]] = None
        self._workspace: Optional[str] = None
        self._process: Optional[subprocess.Popen[bytes]] = None

    def host_config(self, workspace: str) -> str:
        """Write the Pebble configuration with host paths into `workspace`.

        :raises .errors.PebbleConfigError: if no configuration is mounted

        """
        config_path = preflight.find_pebble_config(self.service, self.base_dir)
        if config_path is None:
            raise errors.PebbleConfigError(
                'Service {0} does not mount a Pebble configuration'.format(self.service.name))
        config = pebble_config.load(config_path)
        sources = {volume.target: volume.host_path(self.base_dir)
                   for volume in self.service.bind_mounts()}
        for key in ('certificate', 'privateKey'):
            path = config['pebble'][key]
            config['pebble'][key] = sources.get(path, path)
        return pebble_config.write(os.path.join(workspace, 'pebble-config.json'), config)

    def _launch(self) -> None:
        pebble_path = artifacts.fetch(self.assets_path)
        self._workspace = tempfile.mkdtemp()
        config_path = self.host_config(self._workspace)

        command = [pebble_path, '-config', config_path]
        if self.service.dns:
            command.extend(['-dnsserver', self.service.dns[0]])
        environ = os.environ.copy()
        environ.update(self.service.env)

        if self.stdout:
            self._stdout = sys.stdout
        else:
            self._stdout = open(os.devnull, 'w')  # pylint: disable=consider-using-with

        logger.info('Starting native Pebble %s...', pebble_path)
        self._process = subprocess.Popen(  # pylint: disable=consider-using-with
            command, stdout=self._stdout, stderr=subprocess.STDOUT, env=environ)

    def stop(self) -> None:
        """Stop Pebble, and clean its resources"""
        try:
            if self._process is not None:
                try:
                    self._process.terminate()
                except OSError as e:
                    # Process may be not started yet, so no PID and terminate fails.
                    if e.errno != errno.ESRCH:
                        raise
                self._process.wait(constants.MAX_SUBPROCESS_WAIT)
                self._process = None
        finally:
            if self._workspace and os.path.exists(self._workspace):
                shutil.rmtree(self._workspace)
            self._workspace = None
        if self._stdout is not None and self._stdout is not sys.stdout:
            self._stdout.close()
        self._stdout = None
        logger.info('Native Pebble stopped and cleaned up.')
