"""Tests for the recursive installer."""
import shutil

import pytest

from conftest import make_wheel
from errors import BuildFailed, NetworkError, PackageNotFound, UnsupportedFormat, UserInputError
from install.cache import PackageCache
from install.installer import InstallReport, PackageInstaller, remove_packages
from install.tracker import InstalledRecord, InstalledSet
from registry.pypi.client import ArtifactKind, ArtifactMetadata


def _meta(name, version, dependencies=(), kind=ArtifactKind.WHEEL, filename=None):
    module = name.replace("-", "_")
    if filename is None:
        filename = (f"{module}-{version}-py3-none-any.whl" if kind is ArtifactKind.WHEEL
                    else f"{name}-{version}.tar.gz")
    return ArtifactMetadata(
        name=name,
        version=version,
        dependencies=list(dependencies),
        url=f"https://files.example/{filename}",
        filename=filename,
        kind=kind,
    )


class FakeResolver:
    """Answers from a fixed graph and counts lookups per name."""

    def __init__(self, graph):
        self.graph = graph
        self.calls = []

    def resolve(self, spec):
        self.calls.append(spec.name)
        if spec.name not in self.graph:
            raise PackageNotFound(f"{spec.name} not found")
        outcome = self.graph[spec.name]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeDownloader:
    """Writes a real wheel wherever the installer asks."""

    def __init__(self, tmp_path, graph):
        self.tmp_path = tmp_path
        self.graph = graph
        self.urls = []

    def __call__(self, url, dest):
        self.urls.append(url)
        meta = next(m for m in self.graph.values() if getattr(m, "url", None) == url)
        if meta.kind is ArtifactKind.SDIST:
            with open(dest, "wb") as fh:
                fh.write(b"sdist")
            return dest
        wheel = make_wheel(self.tmp_path / "built-wheels", meta.name, meta.version)
        shutil.copy(wheel, dest)
        return dest


class FakeBuilder:
    def __init__(self, tmp_path):
        self.tmp_path = tmp_path
        self.calls = []

    def build_sdist(self, archive, out_dir):
        self.calls.append((archive, out_dir))
        name, version = archive.name[: -len(".tar.gz")].rsplit("-", 1)
        return make_wheel(out_dir, name, version)


@pytest.fixture
def make_installer(tmp_path, venv):
    def factory(graph, tracker=None):
        resolver = FakeResolver(graph)
        downloader = FakeDownloader(tmp_path, graph)
        builder = FakeBuilder(tmp_path)
        installer = PackageInstaller(
            environment=venv,
            cache=PackageCache(tmp_path / "cache"),
            tracker=tracker if tracker is not None else InstalledSet(),
            resolver=resolver,
            builder=builder,
            downloader=downloader,
        )
        return installer, resolver, downloader, builder
    return factory


class TestInstall:
    """Recursive installation."""

    def test_dependencies_installed_first(self, make_installer, venv):
        graph = {"app": _meta("app", "1.0", ["lib>=1"]), "lib": _meta("lib", "2.0")}
        installer, _, _, _ = make_installer(graph)
        report = installer.install("app")
        assert report.ok
        assert report.installed == [InstalledRecord("lib", "2.0"), InstalledRecord("app", "1.0")]
        site = venv.site_packages
        assert (site / "app" / "__init__.py").is_file()
        assert (site / "lib-2.0.dist-info" / "METADATA").is_file()
        assert not (site / "lib-2.0.data").exists()

    def test_cycle_installs_each_once(self, make_installer):
        graph = {"a": _meta("a", "1.0", ["b"]), "b": _meta("b", "1.0", ["a"])}
        installer, resolver, downloader, _ = make_installer(graph)
        report = installer.install("a")
        assert resolver.calls == ["a", "b"]
        assert len(downloader.urls) == 2
        assert [r.name for r in report.installed] == ["b", "a"]
        assert report.skipped == ["a"]

    def test_diamond_visits_shared_dependency_once(self, make_installer):
        graph = {
            "top": _meta("top", "1.0", ["left", "right"]),
            "left": _meta("left", "1.0", ["base"]),
            "right": _meta("right", "1.0", ["base>=2"]),
            "base": _meta("base", "3.0"),
        }
        installer, resolver, _, _ = make_installer(graph)
        installer.install("top")
        assert resolver.calls.count("base") == 1

    def test_already_tracked_skipped(self, make_installer):
        tracker = InstalledSet()
        tracker.mark_installed("lib", "0.5")
        graph = {"app": _meta("app", "1.0", ["lib>=1"]), "lib": _meta("lib", "2.0")}
        installer, resolver, downloader, _ = make_installer(graph, tracker)
        report = installer.install("app")
        assert resolver.calls == ["app"]
        assert len(downloader.urls) == 1
        assert report.skipped == ["lib"]
        assert tracker.version_of("lib") == "0.5"

    def test_tracker_uses_normalized_names(self, make_installer):
        tracker = InstalledSet()
        tracker.mark_installed("Typing_Extensions", "4.12.2")
        graph = {"app": _meta("app", "1.0", ["typing-extensions"])}
        installer, resolver, _, _ = make_installer(graph, tracker)
        installer.install("app")
        assert resolver.calls == ["app"]

    def test_dependency_failure_recorded(self, make_installer, venv):
        graph = {
            "app": _meta("app", "1.0", ["missing", "lib"]),
            "lib": _meta("lib", "1.0"),
        }
        installer, _, _, _ = make_installer(graph)
        report = installer.install("app")
        assert not report.ok
        assert [f.name for f in report.failed] == ["missing"]
        assert report.failed[0].error_type == "PackageNotFound"
        assert (venv.site_packages / "app").is_dir()
        assert (venv.site_packages / "lib").is_dir()

    def test_top_level_failure_propagates(self, make_installer):
        installer, _, _, _ = make_installer({"app": NetworkError("index unreachable")})
        with pytest.raises(NetworkError):
            installer.install("app")

    def test_install_all_continues(self, make_installer):
        graph = {"ok": _meta("ok", "1.0")}
        installer, _, _, _ = make_installer(graph)
        report = installer.install_all(["ghost", "ok"])
        assert [r.name for r in report.installed] == ["ok"]
        assert [f.name for f in report.failed] == ["ghost"]
        assert report.summary() == "1 installed, 0 already present, 1 failed"


class TestArtifacts:
    """Cache reuse and source builds."""

    def test_cached_artifact_not_downloaded(self, make_installer, tmp_path):
        graph = {"lib": _meta("lib", "1.0")}
        installer, _, downloader, _ = make_installer(graph)
        cached = installer.cache.artifact_path("lib", "1.0", graph["lib"].filename)
        shutil.copy(make_wheel(tmp_path / "pre", "lib", "1.0"), cached)
        installer.install("lib")
        assert downloader.urls == []

    def test_sdist_built_into_wheel(self, make_installer, venv):
        graph = {"native": _meta("native", "0.3", kind=ArtifactKind.SDIST)}
        installer, _, _, builder = make_installer(graph)
        installer.install("native")
        assert len(builder.calls) == 1
        archive, out_dir = builder.calls[0]
        assert archive.name == "native-0.3.tar.gz"
        assert out_dir == installer.cache.built_dir("native", "0.3")
        assert (venv.site_packages / "native" / "__init__.py").is_file()

    def test_build_failure_of_dependency_recorded(self, make_installer):
        graph = {
            "app": _meta("app", "1.0", ["native"]),
            "native": _meta("native", "0.3", kind=ArtifactKind.SDIST),
        }
        installer, _, _, builder = make_installer(graph)

        def fail(archive, out_dir):
            raise BuildFailed("compiler missing")

        builder.build_sdist = fail
        report = installer.install("app")
        assert [(f.name, f.error_type) for f in report.failed] == [("native", "BuildFailed")]

    def test_unknown_kind_rejected(self, make_installer):
        meta = _meta("odd", "1.0", filename="odd-1.0.egg")
        meta.kind = "bdist_egg"
        installer, _, downloader, _ = make_installer({"odd": meta})
        with pytest.raises(UnsupportedFormat):
            installer.install("odd")
        assert downloader.urls == []


class TestReport:
    def test_merge(self):
        first = InstallReport("a", installed=[InstalledRecord("a", "1")])
        second = InstallReport("b", skipped=["c"])
        first.merge(second)
        assert first.summary() == "1 installed, 1 already present, 0 failed"


class TestRemovePackages:
    def test_present_and_absent(self, venv):
        site = venv.site_packages
        (site / "lib").mkdir()
        (site / "lib-1.0.dist-info").mkdir()
        assert remove_packages(venv, ["lib", "ghost"]) == ["lib"]
        assert not (site / "lib").exists()

    def test_invalid_name_aborts_before_removal(self, venv):
        site = venv.site_packages
        (site / "lib").mkdir()
        (site / "lib-1.0.dist-info").mkdir()
        with pytest.raises(UserInputError):
            remove_packages(venv, ["lib", ".."])
        assert (site / "lib").is_dir()
        assert site.is_dir()
