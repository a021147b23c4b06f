"""Tests for the PyPI client: metadata extraction and release selection."""
from unittest.mock import patch

import pytest

from errors import NetworkError, NoCompatibleWheel, PackageNotFound, PackageVersionNotFound
from registry.pypi.client import ArtifactKind, PyPIClient, select_release_version
from registry.pypi.tags import ArchFamily, OsFamily, TargetPlatform
from versioning.parser import parse_dependency

LINUX_X86 = TargetPlatform(OsFamily.LINUX, ArchFamily.X86_64)


def _doc(name, version, requires=None, files=None, releases=None):
    return {
        "info": {"name": name, "version": version, "requires_dist": requires},
        "urls": files if files is not None else [{
            "filename": f"{name}-{version}-py3-none-any.whl",
            "packagetype": "bdist_wheel",
            "url": f"https://files.example/{name}-{version}-py3-none-any.whl",
        }],
        "releases": releases or {},
    }


@pytest.fixture
def client():
    return PyPIClient("3.12.4", platform=LINUX_X86, index_url="https://index.example/pypi")


class TestProjectUrl:
    def test_normalized_name_and_trailing_slash(self, client):
        assert client.project_url("Flask_RESTful") == "https://index.example/pypi/flask-restful/json"
        assert client.project_url("pkg", "1.0") == "https://index.example/pypi/pkg/1.0/json"


class TestResolve:
    """Resolution of a requirement to ArtifactMetadata."""

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_latest_release(self, mock_get, client):
        mock_get.return_value = _doc("requests", "2.32.3", requires=[
            "charset-normalizer<4,>=2",
            "idna<4,>=2.5",
            "PySocks!=1.5.7,>=1.5.6; extra == \"socks\"",
        ])
        meta = client.resolve("requests")
        assert meta.name == "requests"
        assert meta.version == "2.32.3"
        assert meta.dependencies == ["charset-normalizer", "idna"]
        assert meta.kind is ArtifactKind.WHEEL
        assert meta.filename == "requests-2.32.3-py3-none-any.whl"
        assert meta.url.startswith("https://files.example/")
        mock_get.assert_called_once()
        assert mock_get.call_args[0][0] == "https://index.example/pypi/requests/json"

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_marker_evaluated_for_target_interpreter(self, mock_get, client):
        mock_get.return_value = _doc("pkg", "1.0", requires=[
            "tomli>=1.1; python_version < \"3.11\"",
            "exceptiongroup; python_version >= \"3.11\"",
        ])
        assert client.resolve("pkg").dependencies == ["exceptiongroup"]

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_duplicate_dependencies_collapsed(self, mock_get, client):
        mock_get.return_value = _doc("pkg", "1.0", requires=["a>=1", "A<3"])
        assert client.resolve("pkg").dependencies == ["a"]

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_sdist_when_no_wheel(self, mock_get, client):
        mock_get.return_value = _doc("pkg", "1.0", files=[
            {"filename": "pkg-1.0.tar.gz", "packagetype": "sdist", "url": "https://files.example/pkg-1.0.tar.gz"},
        ])
        meta = client.resolve("pkg")
        assert meta.kind is ArtifactKind.SDIST
        assert meta.filename == "pkg-1.0.tar.gz"

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_no_artifacts(self, mock_get, client):
        mock_get.return_value = _doc("pkg", "1.0", files=[])
        with pytest.raises(NoCompatibleWheel):
            client.resolve("pkg")

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_constraint_selects_older_release(self, mock_get, client):
        project = _doc("pkg", "2.1", releases={
            "1.4": [{"filename": "x"}],
            "1.9": [{"filename": "x"}],
            "2.0b1": [{"filename": "x"}],
            "2.1": [{"filename": "x"}],
        })
        release = _doc("pkg", "1.9")
        mock_get.side_effect = [project, release]
        meta = client.resolve("pkg<2")
        assert meta.version == "1.9"
        assert mock_get.call_args_list[1][0][0] == "https://index.example/pypi/pkg/1.9/json"

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_satisfied_latest_needs_one_fetch(self, mock_get, client):
        mock_get.return_value = _doc("pkg", "2.1")
        client.resolve("pkg>=2")
        assert mock_get.call_count == 1

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_unsatisfiable_constraint(self, mock_get, client):
        mock_get.return_value = _doc("pkg", "2.1", releases={"2.1": [{"filename": "x"}]})
        with pytest.raises(PackageVersionNotFound):
            client.resolve("pkg<1")

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_not_found_propagates(self, mock_get, client):
        mock_get.side_effect = PackageNotFound("missing")
        with pytest.raises(PackageNotFound):
            client.resolve("missing")

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_network_error_propagates(self, mock_get, client):
        mock_get.side_effect = NetworkError("down")
        with pytest.raises(NetworkError):
            client.resolve("pkg")

    @patch("registry.pypi.client.pypi_pkg.get_json")
    def test_document_without_info(self, mock_get, client):
        mock_get.return_value = {"message": "nope"}
        with pytest.raises(PackageNotFound):
            client.resolve("pkg")


class TestSelectReleaseVersion:
    """Choosing among listed releases."""

    def test_highest_satisfying(self):
        releases = {"1.0": [{}], "1.2": [{}], "1.10": [{}], "2.0": [{}]}
        assert select_release_version(releases, parse_dependency("pkg<2")) == "1.10"

    def test_prereleases_only_as_last_resort(self):
        releases = {"1.0": [{}], "2.0rc1": [{}]}
        assert select_release_version(releases, parse_dependency("pkg>=1")) == "1.0"
        assert select_release_version(releases, parse_dependency("pkg>1.5")) == "2.0rc1"

    def test_skips_empty_yanked_and_invalid(self):
        releases = {
            "1.0": [{}],
            "1.1": [],
            "1.2": [{"yanked": True}],
            "banana": [{}],
        }
        assert select_release_version(releases, parse_dependency("pkg")) == "1.0"

    def test_none_when_unsatisfied(self):
        assert select_release_version({"1.0": [{}]}, parse_dependency("pkg>3")) is None
