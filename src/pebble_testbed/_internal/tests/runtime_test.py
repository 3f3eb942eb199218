"""Tests for pebble_testbed.runtime."""
import errno
import json
import os
import subprocess
import sys
import unittest
from unittest import mock

import pytest

from pebble_testbed import compose
from pebble_testbed import errors
from pebble_testbed._internal.tests import test_util


class PebbleStackTest(unittest.TestCase):
    """Tests for pebble_testbed.runtime.PebbleStack."""

    def setUp(self):
        from pebble_testbed.runtime import PebbleStack
        self.stack = PebbleStack(compose.default_service(), '/srv', readiness_attempts=3)
        self.stack._launch = mock.MagicMock()
        self.stack.stop = mock.MagicMock()

    @mock.patch('pebble_testbed.runtime.readiness.wait_for_directory')
    @mock.patch('pebble_testbed.runtime.preflight.run_all')
    def test_context_manager(self, mock_run_all, mock_wait):
        with self.stack as directory:
            assert directory is mock_wait.return_value
            self.stack.stop.assert_not_called()
        mock_run_all.assert_called_once_with(self.stack.service, '/srv', strict=True)
        mock_wait.assert_called_once_with('https://localhost:14000/dir', 3)
        self.stack.stop.assert_called_once_with()

    @mock.patch('pebble_testbed.runtime.readiness.wait_for_directory')
    @mock.patch('pebble_testbed.runtime.preflight.run_all')
    def test_preflight_failure_launches_nothing(self, mock_run_all, mock_wait):
        mock_run_all.side_effect = errors.PortInUseError([14000])
        with pytest.raises(errors.PortInUseError):
            self.stack.start()
        self.stack._launch.assert_not_called()
        self.stack.stop.assert_not_called()
        mock_wait.assert_not_called()

    @mock.patch('pebble_testbed.runtime.readiness.wait_for_directory')
    @mock.patch('pebble_testbed.runtime.preflight.run_all')
    def test_stopped_when_not_ready(self, mock_run_all, mock_wait):
        mock_wait.side_effect = errors.ReadinessError('timeout')
        with pytest.raises(errors.ReadinessError):
            self.stack.start()
        self.stack.stop.assert_called_once_with()

    @mock.patch('pebble_testbed.runtime.readiness.wait_for_directory')
    @mock.patch('pebble_testbed.runtime.preflight.run_all')
    def test_launch_error_kept_when_cleanup_fails(self, _mock_run_all, mock_wait):
        self.stack._launch.side_effect = errors.RuntimeCommandError(
            ['docker', 'compose', 'up'], 1)
        self.stack.stop.side_effect = errors.RuntimeCommandError(
            ['docker', 'compose', 'down'], 2)
        with pytest.raises(errors.RuntimeCommandError) as exc_info:
            self.stack.start()
        assert exc_info.value.returncode == 1
        self.stack.stop.assert_called_once_with()
        mock_wait.assert_not_called()

    @mock.patch('pebble_testbed.runtime.readiness.wait_for_directory')
    @mock.patch('pebble_testbed.runtime.preflight.run_all')
    def test_skip_preflight(self, mock_run_all, _mock_wait):
        self.stack.run_preflight = False
        self.stack.start()
        mock_run_all.assert_not_called()


class ComposeStackTest(unittest.TestCase):
    """Tests for pebble_testbed.runtime.ComposeStack."""

    def setUp(self):
        from pebble_testbed.runtime import ComposeStack
        self.stack = ComposeStack('/srv/pebble/docker-compose.yaml', compose.default_service())
        which_patch = mock.patch('pebble_testbed.runtime.shutil.which')
        self.mock_which = which_patch.start()
        self.addCleanup(which_patch.stop)
        run_patch = mock.patch('pebble_testbed.runtime.subprocess.run')
        self.mock_run = run_patch.start()
        self.addCleanup(run_patch.stop)
        self.mock_run.return_value = mock.MagicMock(returncode=0, stdout='done')

    def test_base_dir(self):
        assert self.stack.base_dir == '/srv/pebble'

    def test_compose_plugin(self):
        self.mock_which.return_value = '/usr/bin/docker'
        assert self.stack.compose_command() == ['docker', 'compose']
        assert self.stack.compose_command() == ['docker', 'compose']
        assert self.mock_run.call_count == 1

    def test_standalone_compose(self):
        self.mock_which.side_effect = [None, '/usr/bin/docker-compose']
        assert self.stack.compose_command() == ['docker-compose']

    def test_no_compose(self):
        self.mock_which.return_value = None
        with pytest.raises(errors.Error, match='No Compose implementation'):
            self.stack.compose_command()

    def test_launch_and_stop(self):
        self.stack._compose_cmd = ['docker', 'compose']
        self.stack._launch()
        self.stack.stop()
        prefix = ['docker', 'compose', '-f', '/srv/pebble/docker-compose.yaml',
                  '-p', 'pebble-testbed']
        commands = [call[0][0] for call in self.mock_run.call_args_list]
        assert commands == [prefix + ['up', '-d', 'pebble'], prefix + ['down']]
        assert self.mock_run.call_args[1]['cwd'] == '/srv/pebble'

    def test_command_failure(self):
        self.stack._compose_cmd = ['docker', 'compose']
        self.mock_run.return_value = mock.MagicMock(returncode=1, stdout='pull access denied')
        with pytest.raises(errors.RuntimeCommandError) as exc_info:
            self.stack.ps()
        assert exc_info.value.returncode == 1
        assert 'pull access denied' in str(exc_info.value)

    def test_logs(self):
        self.stack._compose_cmd = ['docker', 'compose']
        assert self.stack.logs() == 'done'
        assert self.mock_run.call_args[0][0][-3:] == ['logs', '--no-color', 'pebble']


class NativePebbleTest(test_util.TempDirTestCase):
    """Tests for pebble_testbed.runtime.NativePebble."""

    def setUp(self):
        super().setUp()
        from pebble_testbed.runtime import NativePebble
        test_util.populate_stack_dir(self.tempdir)
        self.pebble = NativePebble(compose.default_service(), self.tempdir,
                                   os.path.join(self.tempdir, 'assets'))

    def tearDown(self):
        self.pebble.stop()
        super().tearDown()

    def test_host_config(self):
        workspace = os.path.join(self.tempdir, 'ws')
        os.mkdir(workspace)
        path = self.pebble.host_config(workspace)
        with open(path) as file_h:
            config = json.load(file_h)['pebble']
        assert config['certificate'] == os.path.join(self.tempdir, 'localhost', 'cert.pem')
        assert config['privateKey'] == os.path.join(self.tempdir, 'localhost', 'key.pem')
        assert config['listenAddress'] == '0.0.0.0:14000'

    def test_host_config_missing(self):
        self.pebble.service = self.pebble.service._replace(command='pebble')
        with pytest.raises(errors.PebbleConfigError):
            self.pebble.host_config(self.tempdir)

    @mock.patch('pebble_testbed.runtime.subprocess.Popen')
    @mock.patch('pebble_testbed.runtime.artifacts.fetch')
    def test_launch_and_stop(self, mock_fetch, mock_popen):
        mock_fetch.return_value = '/assets/pebble'
        self.pebble._launch()
        command = mock_popen.call_args[0][0]
        assert command[0] == '/assets/pebble'
        assert command[1] == '-config'
        assert command[3:] == ['-dnsserver', '127.0.0.1:10053']
        assert mock_popen.call_args[1]['env']['PEBBLE_VA_NOSLEEP'] == '1'
        assert mock_popen.call_args[1]['stderr'] == subprocess.STDOUT
        workspace = self.pebble._workspace
        assert os.path.isdir(workspace)

        self.pebble.stop()
        mock_popen.return_value.terminate.assert_called_once_with()
        mock_popen.return_value.wait.assert_called_once_with(120)
        assert not os.path.exists(workspace)

    @mock.patch('pebble_testbed.runtime.subprocess.Popen')
    @mock.patch('pebble_testbed.runtime.artifacts.fetch')
    def test_relaunch_after_stop(self, mock_fetch, mock_popen):
        mock_fetch.return_value = '/assets/pebble'
        self.pebble._launch()
        first_output = mock_popen.call_args[1]['stdout']
        self.pebble.stop()
        assert first_output.closed

        self.pebble._launch()
        second_output = mock_popen.call_args[1]['stdout']
        assert second_output is not first_output
        assert not second_output.closed

    @mock.patch('pebble_testbed.runtime.subprocess.Popen')
    @mock.patch('pebble_testbed.runtime.artifacts.fetch')
    def test_output_streamed_to_stdout(self, mock_fetch, mock_popen):
        mock_fetch.return_value = '/assets/pebble'
        self.pebble.stdout = True
        self.pebble._launch()
        assert mock_popen.call_args[1]['stdout'] is sys.stdout
        self.pebble.stop()
        assert not sys.stdout.closed

    @mock.patch('pebble_testbed.runtime.subprocess.Popen')
    @mock.patch('pebble_testbed.runtime.artifacts.fetch')
    def test_stop_exited_process(self, mock_fetch, mock_popen):
        mock_fetch.return_value = '/assets/pebble'
        mock_popen.return_value.terminate.side_effect = OSError(errno.ESRCH, 'gone')
        self.pebble._launch()
        self.pebble.stop()
        mock_popen.return_value.wait.assert_called_once_with(120)


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
