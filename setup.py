#!/usr/bin/env python3
"""
Setup script for the Line Chat Relay
"""

from setuptools import setup, find_namespace_packages

setup(
    name="line-chat-relay",
    version="1.0.0",
    description="Newline-delimited JSON chat relay with presence notifications",
    packages=find_namespace_packages(include=["server*", "shared*", "bridge*", "client*"]),
    install_requires=[
        "websockets>=15.0",
        "typer>=0.12.3",
        "rich>=13.9.2",
        "aioconsole>=0.8.1",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'relay-server=server.cli:main',
            'relay-bridge=bridge.cli:main',
            'relay-client=client.relay_cli:main',
        ],
    },
)
