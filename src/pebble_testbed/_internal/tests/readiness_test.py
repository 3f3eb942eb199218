"""Tests for pebble_testbed.readiness."""
import sys
import unittest
from unittest import mock

from acme import messages
import pytest
import requests

from pebble_testbed import errors
from pebble_testbed._internal.tests import test_util


class CheckUntilTimeoutTest(unittest.TestCase):
    """Tests for pebble_testbed.readiness.check_until_timeout."""

    @mock.patch('pebble_testbed.readiness.requests.get')
    def test_answers_after_errors(self, mock_get):
        from pebble_testbed.readiness import check_until_timeout
        mock_get.side_effect = [
            requests.exceptions.ConnectionError(),
            mock.MagicMock(status_code=503),
            mock.MagicMock(status_code=200),
        ]
        check_until_timeout('https://localhost:14000/dir', attempts=5)
        assert mock_get.call_count == 3
        mock_get.assert_called_with('https://localhost:14000/dir', verify=False, timeout=10)

    @mock.patch('pebble_testbed.readiness.requests.get')
    def test_gives_up(self, mock_get):
        from pebble_testbed.readiness import check_until_timeout
        mock_get.side_effect = requests.exceptions.ConnectionError()
        with pytest.raises(errors.ReadinessError, match='did not respond after 4 attempts'):
            check_until_timeout('https://localhost:14000/dir', attempts=4)
        assert mock_get.call_count == 4

    @mock.patch('pebble_testbed.readiness.requests.get')
    def test_sleeps_before_each_attempt(self, mock_get):
        from pebble_testbed.readiness import check_until_timeout
        mock_get.return_value = mock.MagicMock(status_code=200)
        with mock.patch('pebble_testbed.readiness.time.sleep') as mock_sleep:
            check_until_timeout('https://localhost:14000/dir', interval=0.5)
        mock_sleep.assert_called_once_with(0.5)


class FetchDirectoryTest(unittest.TestCase):
    """Tests for pebble_testbed.readiness.fetch_directory."""

    def setUp(self):
        get_patch = mock.patch('pebble_testbed.readiness.requests.get')
        self.mock_get = get_patch.start()
        self.addCleanup(get_patch.stop)
        self.response = self.mock_get.return_value

    @classmethod
    def _call(cls):
        from pebble_testbed.readiness import fetch_directory
        return fetch_directory('https://localhost:14000/dir')

    def test_directory(self):
        self.response.json.return_value = test_util.directory_jobj()
        directory = self._call()
        assert isinstance(directory, messages.Directory)
        assert directory['newOrder'] == 'https://localhost:14000/order-plz'
        self.mock_get.assert_called_once_with(
            'https://localhost:14000/dir', verify=False, timeout=10)

    def test_missing_endpoints(self):
        jobj = test_util.directory_jobj()
        del jobj['newOrder']
        del jobj['keyChange']
        self.response.json.return_value = jobj
        with pytest.raises(errors.ReadinessError, match='lacks endpoints: newOrder, keyChange'):
            self._call()

    def test_not_json(self):
        self.response.json.side_effect = ValueError()
        with pytest.raises(errors.ReadinessError, match='not a JSON document'):
            self._call()

    def test_not_an_object(self):
        self.response.json.return_value = ['newOrder']
        with pytest.raises(errors.ReadinessError, match='not a JSON object'):
            self._call()

    def test_http_error(self):
        self.response.raise_for_status.side_effect = requests.exceptions.HTTPError('404')
        with pytest.raises(errors.ReadinessError, match='Unable to fetch directory'):
            self._call()


class WaitForDirectoryTest(unittest.TestCase):
    """Tests for pebble_testbed.readiness.wait_for_directory."""

    @mock.patch('pebble_testbed.readiness.fetch_directory')
    @mock.patch('pebble_testbed.readiness.check_until_timeout')
    def test_wait(self, mock_check, mock_fetch):
        from pebble_testbed.readiness import wait_for_directory
        assert wait_for_directory('https://x/dir', 3) is mock_fetch.return_value
        mock_check.assert_called_once_with('https://x/dir', 3)
        mock_fetch.assert_called_once_with('https://x/dir')


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
