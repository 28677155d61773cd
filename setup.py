#!/usr/bin/env python3
"""
Setup script for modemhub.
"""

from setuptools import setup, find_packages

setup(
    name="modemhub",
    version="0.1.0",
    description="AT command engine for GSM/LTE modems: connection pool, SMS PDU codec and event bus",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(include=["modemhub", "modemhub.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "pyserial>=3.5",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-timeout>=2.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "modemhub-cli=modemhub.cli:main",
        ],
    },
    keywords=["modem", "gsm", "lte", "sms", "pdu", "at-commands", "serial"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Communications",
        "Topic :: System :: Hardware :: Hardware Drivers",
        "Operating System :: POSIX :: Linux",
        "License :: OSI Approved :: MIT License",
    ],
)
