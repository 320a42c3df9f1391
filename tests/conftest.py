"""Global pytest configuration for all tests."""

import os
import sys
from pathlib import Path

# Shared library, importable without installing the package
LIB_PATH = str(Path(__file__).parent.parent / "lib")
if LIB_PATH not in sys.path:
    sys.path.insert(0, LIB_PATH)


def pytest_configure(config):
    """Set environment variables before any test collection or execution."""
    os.environ.setdefault("AWS_REGION", "us-east-1")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    # moto never talks to AWS, but botocore still wants credentials
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
