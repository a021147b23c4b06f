"""PyPI JSON API client and wheel selection."""

from common.http_client import get_json  # noqa: F401  re-exported for patching in tests
