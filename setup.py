"""Setup."""

import os.path

from setuptools import setup

here = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(here, "README.rst"), encoding="utf-8") as f:
    LONG_DESCRIPTION = f.read()


PACKAGES = ("async_sonos_events",)


INSTALL_REQUIRES = [
    "voluptuous >= 0.12.1",
    "aiohttp >= 3.7.4",
    "async-timeout >= 3.0",
    "defusedxml >= 0.6.0",
    "psutil >= 5.8.0",
]


TEST_REQUIRES = [
    "pytest >= 6.2.4",
    "pytest-asyncio >= 0.15.1",
    "pytest-cov >= 2.12.1",
    "coverage >= 5.5",
]


setup(
    name="async_sonos_events",
    version="0.1.0",
    description="Async Sonos UPnP event subscriptions",
    long_description=LONG_DESCRIPTION,
    license="http://www.apache.org/licenses/LICENSE-2.0",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.8",
    packages=PACKAGES,
    package_data={
        "async_sonos_events": ["py.typed"],
    },
    install_requires=INSTALL_REQUIRES,
    tests_require=TEST_REQUIRES,
    extras_require={"test": TEST_REQUIRES},
    entry_points={"console_scripts": ["sonos-events=async_sonos_events.cli:main"]},
)
