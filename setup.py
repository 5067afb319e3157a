#!/usr/bin/env python
"""
Setup script for the Briefrr package.
This file exists for backward compatibility with older pip versions.
The actual configuration is in pyproject.toml.
"""

from setuptools import setup

if __name__ == "__main__":
    setup()
