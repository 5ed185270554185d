# Always prefer setuptools over distutils
from setuptools import setup, find_packages
# To use a consistent encoding
from codecs import open
from os import path

from tsclient import __version__

here = path.abspath(path.dirname(__file__))

# Get the long description from the README file
with open(path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='timestamper',

    # Versions should comply with PEP440.  For a discussion on single-sourcing
    # the version across setup.py and the project code, see
    # https://packaging.python.org/en/latest/single_source_version.html
    version=__version__,

    description='Timestamp documents in the Bitcoin blockchain with OP_RETURN transactions and merkle proofs',
    long_description=long_description,
    long_description_content_type='text/markdown',

    # Author details
    author='The Timestamper developers',

    # Choose your license
    license='LGPL3',

    # See https://pypi.python.org/pypi?%3Aaction=list_classifiers
    classifiers=[
        'Development Status :: 3 - Alpha',

        'Intended Audience :: Developers',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Security :: Cryptography',

        'License :: OSI Approved :: GNU Lesser General Public License v3 or later (LGPLv3+)',

        'Programming Language :: Python :: 3 :: Only',
    ],

    keywords='cryptography timestamping bitcoin',

    packages=find_packages(exclude=['contrib', 'docs', 'tests', '*.tests', '*.tests.*']),

    # List run-time dependencies here.  These will be installed by pip when
    # your project is installed. For an analysis of "install_requires" vs pip's
    # requirements files see:
    # https://packaging.python.org/en/latest/requirements.html
    install_requires=['python-bitcoinlib>=0.11.0',
                      'PySocks>=1.5.0'],

    extras_require={},

    package_data={},

    data_files=[],

    # To provide executable scripts, use entry points in preference to the
    # "scripts" keyword. Entry points provide cross-platform support and allow
    # pip to create the appropriate form of executable for the target platform.
    entry_points={
        'console_scripts': [
            'timestamper = tsclient.main:main',
        ],
    },
)
