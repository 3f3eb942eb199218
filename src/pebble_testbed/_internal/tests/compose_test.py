"""Tests for pebble_testbed.compose."""
import os
import sys
import unittest

import pytest
import yaml

from pebble_testbed import errors
from pebble_testbed._internal.tests import test_util


class DefaultServiceTest(unittest.TestCase):
    """Tests for pebble_testbed.compose.default_service."""

    def setUp(self):
        from pebble_testbed.compose import default_service
        self.service = default_service()

    def test_values(self):
        assert self.service.name == 'pebble'
        assert self.service.image == 'letsencrypt/pebble'
        assert self.service.command == 'pebble -config /test/my-pebble-config.json'
        assert self.service.network_mode == 'host'
        assert self.service.dns == ('127.0.0.1:10053',)
        assert self.service.host_ports == [14000, 15000]
        assert self.service.env == {'PEBBLE_VA_NOSLEEP': '1'}
        assert [volume.target for volume in self.service.volumes] == [
            '/test/my-pebble-config.json', '/test/cert.pem', '/test/key.pem']

    def test_all_volumes_are_binds(self):
        assert self.service.bind_mounts() == list(self.service.volumes)

    def test_matches_shipped_compose_file(self):
        from pebble_testbed.compose import loads
        assert loads(test_util.load_vector('docker-compose.yaml')) == self.service


class LoadsTest(unittest.TestCase):
    """Tests for pebble_testbed.compose.loads."""

    @classmethod
    def _call(cls, content, service_name=None):
        from pebble_testbed.compose import loads
        return loads(content, service_name)

    def test_invalid_yaml(self):
        with pytest.raises(errors.ComposeError, match='Invalid Compose YAML'):
            self._call('services: [unclosed')

    def test_no_services(self):
        with pytest.raises(errors.ComposeError, match='no services'):
            self._call('version: "3"\n')

    def test_ambiguous_service(self):
        content = 'services:\n  a:\n    image: x\n  b:\n    image: y\n'
        with pytest.raises(errors.ComposeError, match='pick one of: a, b'):
            self._call(content)
        assert self._call(content, 'b').image == 'y'

    def test_unknown_service(self):
        with pytest.raises(errors.ComposeError, match='not found'):
            self._call('services:\n  a:\n    image: x\n', 'pebble')

    def test_missing_image(self):
        with pytest.raises(errors.ComposeError, match='image'):
            self._call('services:\n  a:\n    command: x\n')

    def test_environment_mapping(self):
        service = self._call('services:\n  a:\n    image: x\n    environment:\n'
                             '      FOO: 1\n      BAR:\n')
        assert service.env == {'FOO': '1', 'BAR': ''}

    def test_environment_boolean_rejected(self):
        with pytest.raises(errors.ComposeError, match='must be quoted'):
            self._call('services:\n  a:\n    image: x\n    environment:\n'
                       '      DEBUG: true\n')

    def test_small_ports_not_base_sixty(self):
        from pebble_testbed.compose import PortMapping
        service = self._call('services:\n  a:\n    image: x\n    ports:\n'
                             '      - 22:22\n      - 59:1\n      - 14000\n')
        assert service.ports == (PortMapping(22, 22), PortMapping(59, 1),
                                 PortMapping(14000, 14000))

    def test_list_command(self):
        service = self._call('services:\n  a:\n    image: x\n'
                             '    command: ["pebble", "-config", "/test/my config.json"]\n')
        assert service.command == "pebble -config '/test/my config.json'"

    def test_invalid_command(self):
        with pytest.raises(errors.ComposeError, match='command must be'):
            self._call('services:\n  a:\n    image: x\n    command: {run: pebble}\n')

    def test_dns_string(self):
        service = self._call('services:\n  a:\n    image: x\n    dns: 8.8.8.8\n')
        assert service.dns == ('8.8.8.8',)

    def test_long_volume_syntax_rejected(self):
        content = ('services:\n  a:\n    image: x\n    volumes:\n'
                   '      - type: bind\n        source: ./a\n        target: /a\n')
        with pytest.raises(errors.ComposeError, match='short volume syntax'):
            self._call(content)


class ParsePortTest(unittest.TestCase):
    """Tests for pebble_testbed.compose.parse_port."""

    @classmethod
    def _call(cls, value):
        from pebble_testbed.compose import parse_port
        return parse_port(value)

    def test_forms(self):
        from pebble_testbed.compose import PortMapping
        assert self._call('14000:14000') == PortMapping(14000, 14000)
        assert self._call('8080:80/udp') == PortMapping(8080, 80, 'udp')
        assert self._call('127.0.0.1:8080:80') == PortMapping(8080, 80, 'tcp', '127.0.0.1')
        assert self._call(443) == PortMapping(443, 443)

    def test_str(self):
        assert str(self._call('127.0.0.1:8080:80/udp')) == '127.0.0.1:8080:80/udp'

    def test_invalid(self):
        for value in ('a:b', '1:2:3:4', '0:80', '70000:80', ''):
            with pytest.raises(errors.ComposeError):
                self._call(value)


class ParseVolumeTest(unittest.TestCase):
    """Tests for pebble_testbed.compose.parse_volume."""

    @classmethod
    def _call(cls, value):
        from pebble_testbed.compose import parse_volume
        return parse_volume(value)

    def test_bind_with_mode(self):
        volume = self._call('./key.pem:/test/key.pem:ro')
        assert volume.is_bind
        assert volume.mode == 'ro'
        assert str(volume) == './key.pem:/test/key.pem:ro'

    def test_named_volume(self):
        assert not self._call('data:/var/lib/data').is_bind

    def test_host_path(self):
        volume = self._call('./localhost/cert.pem:/test/cert.pem')
        assert volume.host_path('/srv') == os.path.normpath('/srv/localhost/cert.pem')
        assert self._call('/abs/cert.pem:/test/cert.pem').host_path('/srv') == '/abs/cert.pem'

    def test_invalid(self):
        for value in ('nocolon', ':/target', 'a:b:c:d'):
            with pytest.raises(errors.ComposeError):
                self._call(value)


class DumpWriteLoadTest(test_util.TempDirTestCase):
    """Tests for pebble_testbed.compose.dump/write/load."""

    def test_dump_structure(self):
        from pebble_testbed.compose import default_service, dump
        document = yaml.safe_load(dump(default_service()))
        assert document['version'] == '3'
        service = document['services']['pebble']
        assert service['ports'] == ['14000:14000', '15000:15000']
        assert service['environment'] == ['PEBBLE_VA_NOSLEEP=1']
        assert service['dns'] == ['127.0.0.1:10053']

    def test_write_then_load(self):
        from pebble_testbed.compose import default_service, load, write
        path = os.path.join(self.tempdir, 'docker-compose.yaml')
        write(default_service(), path)
        assert load(path) == default_service()

    def test_small_ports_round_trip(self):
        from pebble_testbed.compose import PortMapping, default_service, load, write
        service = default_service()._replace(ports=(PortMapping(22, 22),))
        path = os.path.join(self.tempdir, 'docker-compose.yaml')
        write(service, path)
        assert load(path) == service

    def test_load_missing_file(self):
        from pebble_testbed.compose import load
        with pytest.raises(errors.ComposeError, match='Unable to read'):
            load(os.path.join(self.tempdir, 'nope.yaml'))


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
