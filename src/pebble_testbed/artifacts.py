# pylint: disable=missing-module-docstring
import io
import logging
import os
import platform
import stat
import zipfile
from typing import Optional

import requests

from pebble_testbed import constants
from pebble_testbed import errors

logger = logging.getLogger(__name__)


def fetch(assets_path: str, version: str = constants.PEBBLE_VERSION) -> str:
    """Download the Pebble release binary unless already cached.

    :param str assets_path: directory caching downloaded binaries
    :param str version: Pebble release tag

    :returns: path of the executable
    :rtype: str

    """
    return _fetch_asset('pebble', assets_path, version)


def _fetch_asset(asset: str, assets_path: str, version: str) -> str:
    os_type, architecture = get_validated_os_and_architecture()
    os.makedirs(assets_path, exist_ok=True)
    asset_path = os.path.join(assets_path, f'{asset}_{version}_{os_type}_{architecture}')
    if not os.path.exists(asset_path):
        asset_url = (f'{constants.PEBBLE_RELEASES_URL}/{version}/'
                     f'{asset}-{os_type}-{architecture}.zip')
        logger.info('Downloading %s', asset_url)
        try:
            response = requests.get(asset_url, timeout=30)
            response.raise_for_status()
        except requests.exceptions.RequestException as error:
            raise errors.ArtifactError(f'Unable to download {asset_url}: {error}')
        asset_data = _unzip_asset(response.content, asset)
        if asset_data is None:
            raise errors.ArtifactError(f"zipfile {asset_url} didn't contain file {asset}")
        with open(asset_path, 'wb') as file_h:
            file_h.write(asset_data)
    os.chmod(asset_path, os.stat(asset_path).st_mode | stat.S_IEXEC)

    return asset_path


def get_validated_os_and_architecture() -> tuple[str, str]:
    """Release naming of the current platform.

    :raises .errors.ArtifactError: on platforms without a Pebble release

    """
    os_type = platform.system().lower()
    if os_type not in ('darwin', 'linux'):
        raise errors.ArtifactError(f'no Pebble release for {os_type} systems')

    architecture = platform.machine()
    if architecture in ('amd64', 'x86_64'):
        architecture = 'amd64'
    elif architecture in ('aarch64', 'arm64'):
        architecture = 'arm64'
    else:
        raise errors.ArtifactError(f'no Pebble release for {architecture} systems')

    return os_type, architecture


def _unzip_asset(zipped_data: bytes, asset_name: str) -> Optional[bytes]:
    with zipfile.ZipFile(io.BytesIO(zipped_data)) as zip_file:
        for entry in zip_file.filelist:
            if not entry.is_dir() and entry.filename.endswith(asset_name):
                return zip_file.read(entry)
    return None
