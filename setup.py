#!/usr/bin/env python
# -*- encoding: utf-8 -*-
import io
import re
from os.path import dirname, join

from setuptools import find_packages, setup


def read(*names, **kwargs):
    return io.open(
        join(dirname(__file__), *names), encoding=kwargs.get("encoding", "utf8")
    ).read()


def find_version(*file_paths):
    contents = read(*file_paths)
    match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", contents, re.M)
    if match:
        return match.group(1)
    raise RuntimeError("Unable to find version string.")


setup(
    name="credbroker",
    python_requires=">=3.8",
    version=find_version("src", "credbroker", "__init__.py"),
    license="MIT",
    description="CLI to broker short-lived cloud credentials for local tools",
    long_description="""`credbroker` is both a CLI and library that turns direct,
federated, and role-chained cloud accounts into short-lived credentials and
applies them to, or removes them from, the local credential file consumed by
the AWS CLI and SDKs.""",
    long_description_content_type="text/markdown",
    packages=find_packages("src"),
    package_dir={"": "src"},
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: Unix",
        "Operating System :: POSIX",
        "Operating System :: Microsoft :: Windows",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Utilities",
    ],
    keywords=["credbroker", "aws", "azure", "sts", "saml", "cli"],
    install_requires=[
        "boto3>=1.12.39",
        "botocore",
        "azure-core",
        "azure-identity",
        "bs4",
        "colorama",
        "requests_ntlm",
        "requests",
        "PyYAML>=3.10",
    ],
    tests_require=["pytest", "pytest-mock", "freezegun"],
    extras_require={"test": ["pytest", "pytest-mock", "freezegun"]},
    entry_points={
        "console_scripts": [
            "credbroker = credbroker.cli:main",
        ]
    },
)
