"""Tests for the shared HTTP helpers."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import NetworkError, NotFoundError, PackageNotFound
from common.http_client import download_file, get_json


def _response(status=200, payload=None, chunks=(), json_error=False):
    res = MagicMock()
    res.status_code = status
    res.ok = 200 <= status < 300
    if json_error:
        res.json.side_effect = ValueError("not json")
    else:
        res.json.return_value = payload
    res.iter_content.return_value = list(chunks)
    return res


class TestGetJson:
    """Status and transport error mapping."""

    @patch("common.http_client.requests.get")
    def test_success(self, mock_get):
        mock_get.return_value = _response(payload={"info": {}})
        assert get_json("https://index.example/pypi/x/json", context="pypi") == {"info": {}}
        headers = mock_get.call_args.kwargs["headers"]
        assert headers["Accept"] == "application/json"
        assert headers["User-Agent"].startswith("wheelwright/")
        assert "timeout" in mock_get.call_args.kwargs

    @patch("common.http_client.requests.get")
    def test_not_found_uses_given_class(self, mock_get):
        mock_get.return_value = _response(status=404)
        with pytest.raises(PackageNotFound):
            get_json("https://index.example/pypi/x/json", context="pypi", not_found=PackageNotFound)

    @patch("common.http_client.requests.get")
    def test_server_error(self, mock_get):
        mock_get.return_value = _response(status=503)
        with pytest.raises(NetworkError):
            get_json("https://index.example/pypi/x/json", context="pypi")

    @patch("common.http_client.requests.get")
    def test_invalid_json(self, mock_get):
        mock_get.return_value = _response(json_error=True)
        with pytest.raises(NetworkError):
            get_json("https://index.example/pypi/x/json", context="pypi")

    @patch("common.http_client.requests.get")
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.Timeout("slow")
        with pytest.raises(NetworkError):
            get_json("https://index.example/pypi/x/json", context="pypi")

    @patch("common.http_client.requests.get")
    def test_connection_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkError):
            get_json("https://index.example/pypi/x/json", context="pypi")


class TestDownloadFile:
    """Streaming downloads."""

    @patch("common.http_client.requests.get")
    def test_writes_destination(self, mock_get, tmp_path):
        mock_get.return_value = _response(chunks=[b"abc", b"", b"def"])
        dest = tmp_path / "cache" / "pkg-1.0-py3-none-any.whl"
        assert download_file("https://files.example/pkg.whl", str(dest)) == str(dest)
        assert dest.read_bytes() == b"abcdef"
        assert mock_get.call_args.kwargs["stream"] is True
        assert [p.name for p in dest.parent.iterdir()] == [dest.name]

    @patch("common.http_client.requests.get")
    def test_not_found_leaves_nothing(self, mock_get, tmp_path):
        mock_get.return_value = _response(status=404)
        dest = tmp_path / "pkg.whl"
        with pytest.raises(NotFoundError):
            download_file("https://files.example/pkg.whl", str(dest))
        assert list(tmp_path.iterdir()) == []

    @patch("common.http_client.requests.get")
    def test_interrupted_transfer(self, mock_get, tmp_path):
        res = _response()
        res.iter_content.side_effect = requests.ConnectionError("reset")
        mock_get.return_value = res
        dest = tmp_path / "pkg.whl"
        with pytest.raises(NetworkError):
            download_file("https://files.example/pkg.whl", str(dest))
        assert list(tmp_path.iterdir()) == []
        res.close.assert_called_once()
