import os
from setuptools import setup

short_desc = "Reproducible, cached builds and developer shells for Rust workspaces"

try:
    fname = 'README.rst'
    long_desc = open(os.path.join(os.path.dirname(__file__), fname)).read()
except OSError:
    long_desc = short_desc

setup(
    name = "cratedist",
    version = "0.1",
    author = "cratedist Developers",
    description = (short_desc),
    license = "BSD",
    keywords = "build cache reproducibility rust cargo",
    python_requires = ">=3.11",
    packages=[
          'cratedist',
          'cratedist.cli',
          'cratedist.cli.test',
          'cratedist.core',
          'cratedist.core.test',
          'cratedist.formats',
          'cratedist.formats.test',
          'cratedist.util',
          ],
    package_data={
        "cratedist.util": ["logging_config.yaml"],
        },
    install_requires=[
        'PyYAML',
        'jsonschema',
        ],
    extras_require={
        'test': ['pytest'],
        },
    entry_points={
        'console_scripts': ['cratedist = cratedist.cli.main:main'],
        },
    long_description=long_desc,
    classifiers=[
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Topic :: Software Development :: Build Tools",
    "License :: OSI Approved :: BSD License",
    ],
)
