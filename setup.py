#!/usr/bin/env python3

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Setup configuration for tedix_common package.

This shared library provides utilities for the brand discovery Lambdas:
- Domain normalization and URL classification
- Brand and URL persistence in DynamoDB
- Content storage in S3-compatible buckets
- Firecrawl and AI search clients
- Webhook processing and the reconciliation sweep
"""

from setuptools import find_packages, setup

setup(
    name="tedix_common",
    version="0.1.0",
    description="Shared utilities for brand discovery Lambda functions",
    package_dir={"": "lib"},
    packages=find_packages("lib"),
    python_requires=">=3.11",
    install_requires=[
        "boto3>=1.34.0",
        "httpx>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "moto[dynamodb,s3]>=5.0.0",
        ],
    },
    author="Development Team",
    license="MIT-0",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
)
