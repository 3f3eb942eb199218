import codecs
import os
import re

from setuptools import find_packages
from setuptools import setup


def read_file(filename, encoding='utf8'):
    """Read unicode from given file."""
    with codecs.open(filename, encoding=encoding) as fd:
        return fd.read()


here = os.path.abspath(os.path.dirname(__file__))

# read version number (and other metadata) from package init
init_fn = os.path.join(here, 'src', 'pebble_testbed', '__init__.py')
meta = dict(re.findall(r"""__([a-z]+)__ = '([^']+)""", read_file(init_fn)))

version = meta['version']

install_requires = [
    'acme>=3.0.0',
    'ConfigArgParse>=1.5.3',
    'cryptography>=43.0.0',
    'josepy>=1.13.0',
    'python-dateutil',
    'pyyaml',
    # requests unvendored its dependencies in version 2.16.0 and this code relies on that for
    # calling `urllib3.disable_warnings`.
    'requests>=2.16.0',
    'urllib3',
]

test_extras = [
    'pytest',
    'pytest-xdist',
    'types-python-dateutil',
    'types-PyYAML',
    'types-requests',
]

setup(
    name='pebble-testbed',
    version=version,
    description='Set up and exercise a local Pebble ACME test server',
    url='https://github.com/certbot/certbot',
    author="Certbot Project",
    author_email='certbot-dev@eff.org',
    license='Apache License 2.0',
    python_requires='>=3.9',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Security',
        'Topic :: Software Development :: Testing',
    ],

    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    include_package_data=True,
    install_requires=install_requires,
    extras_require={
        'test': test_extras,
    },

    entry_points={
        'console_scripts': [
            'testbed = pebble_testbed.main:main',
        ],
    },
)
