"""Tests for release/orchestrator.py.

External tools are replaced at the module seams: build_artifact and
compress are monkeypatched, the container engine is a recording subclass
and the registry talks to a MockHttpClient.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path

import pytest

from glabu.container.engine import ContainerEngine
from glabu.core.config import BuildConfig, CompressConfig, InstallConfig, ReleaseConfig
from glabu.core.result import Err, Ok, Result
from glabu.git.repository import GitError
from glabu.output.console import ConsoleProtocol, MockConsole
from glabu.platform.detection import Arch, parse_arch
from glabu.platform.process import ProcessError
from glabu.registry.http import HttpError, MockHttpClient
from glabu.registry.packages import FailureReason, PackageRegistry
from glabu.release import build as build_mod
from glabu.release import compress as compress_mod
from glabu.release import install as install_mod
from glabu.release.errors import ReleaseError, Stage
from glabu.release.model import ReleaseTarget, VersionTag
from glabu.release.orchestrator import ReleaseOrchestrator

COMMIT = "abc1234"
REGISTRY = "registry.gitlab.com/puterize/glabu"
PROJECT = "https://gitlab.com/api/v4/projects/puterize%2Fprebuilt"
PACKAGES_URL = (
    f"{PROJECT}/packages?package_type=generic&package_name=glabu"
    f"&order_by=created_at&sort=desc&per_page=100&package_version={COMMIT}"
)


def _file_url(arch: str) -> str:
    return f"{PROJECT}/packages/generic/glabu/{COMMIT}/glabu-{arch}"


# =============================================================================
# Fakes
# =============================================================================


class FakeRepository:
    def __init__(self, result: Result[str, GitError] | None = None) -> None:
        self.result = result if result is not None else Ok(COMMIT)

    def short_head(self) -> Result[str, GitError]:
        return self.result


class FakeEngine(ContainerEngine):
    """Records podman calls; keeps a set of local manifests like podman does."""

    def __init__(self, root: Path, *, fail: set[str] | None = None) -> None:
        super().__init__(root)
        self.calls: list[tuple[str, ...]] = []
        self.manifests: set[str] = set()
        self.fail = fail or set()
        self._lock = threading.Lock()

    def _record(self, *call: str) -> Result[None, ProcessError]:
        with self._lock:
            self.calls.append(call)
        if call[0] in self.fail:
            return Err(ProcessError(command=call, returncode=125, stdout="", stderr="boom"))
        return Ok(None)

    def is_available(self) -> bool:
        return True

    def build_image(
        self, *, arch: Arch, tag: str, containerfile: str, context: str
    ) -> Result[None, ProcessError]:
        return self._record("build", tag)

    def push_image(self, tag: str) -> Result[None, ProcessError]:
        return self._record("push", tag)

    def manifest_exists(self, tag: str) -> Result[bool, ProcessError]:
        self.calls.append(("exists", tag))
        return Ok(tag in self.manifests)

    def manifest_create(self, tag: str) -> Result[None, ProcessError]:
        result = self._record("create", tag)
        if isinstance(result, Ok):
            self.manifests.add(tag)
        return result

    def manifest_remove(self, tag: str) -> Result[None, ProcessError]:
        result = self._record("rm", tag)
        if isinstance(result, Ok):
            self.manifests.discard(tag)
        return result

    def manifest_add(self, tag: str, member: str) -> Result[None, ProcessError]:
        return self._record("add", tag, member)

    def manifest_push(self, tag: str) -> Result[None, ProcessError]:
        return self._record("manifest-push", tag)

    def manifest_calls(self) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] in ("exists", "create", "rm", "add", "manifest-push")]


def _fake_build(monkeypatch: pytest.MonkeyPatch, *, fail: Arch | None = None) -> list[Arch]:
    built: list[Arch] = []
    lock = threading.Lock()

    def fake_build_artifact(
        *, root: Path, build: BuildConfig, arch: Arch, console: ConsoleProtocol
    ) -> Result[ReleaseTarget, ReleaseError]:
        with lock:
            built.append(arch)
        if arch == fail:
            return Err(
                ReleaseError(
                    stage=Stage.BUILD,
                    kind="build_error",
                    message=f"cargo build failed for {arch} (exit 101)",
                )
            )
        path = build_mod.binary_path(root=root, build=build, arch=arch)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(f"binary {arch}".encode())
        return Ok(ReleaseTarget(arch=arch, binary_path=path))

    monkeypatch.setattr(build_mod, "build_artifact", fake_build_artifact)
    return built


def _config(tmp_path: Path, **build: object) -> ReleaseConfig:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    return ReleaseConfig(
        build=replace(BuildConfig(), **build),  # type: ignore[arg-type]
        compress=CompressConfig(enabled=False),
        install=InstallConfig(dir=str(bin_dir)),
    )


def _orchestrator(
    tmp_path: Path,
    *,
    config: ReleaseConfig | None = None,
    http: MockHttpClient | None = None,
    engine: FakeEngine | None = None,
    host_arch: Arch = Arch.AMD64,
    console: MockConsole | None = None,
    repository: FakeRepository | None = None,
) -> ReleaseOrchestrator:
    if http is None:
        http = MockHttpClient()
        http.set_json(PACKAGES_URL, [])
    return ReleaseOrchestrator(
        root=tmp_path,
        config=config or _config(tmp_path),
        console=console or MockConsole(),
        host_arch=host_arch,
        registry=PackageRegistry(host="https://gitlab.com", http=http),
        engine=engine or FakeEngine(tmp_path),
        repository=repository or FakeRepository(),  # type: ignore[arg-type]
    )


def _tag(arch: str) -> str:
    return f"{REGISTRY}:{COMMIT}-{arch}"


# =============================================================================
# Single steps
# =============================================================================


class TestResolveVersionTag:
    def test_ok(self, tmp_path: Path) -> None:
        assert _orchestrator(tmp_path).resolve_version_tag() == Ok(VersionTag(COMMIT))

    def test_git_failure(self, tmp_path: Path) -> None:
        repository = FakeRepository(Err(GitError(command="rev-parse", message="not a repo")))

        result = _orchestrator(tmp_path, repository=repository).resolve_version_tag()

        assert isinstance(result, Err)
        assert result.error.kind == "vcs_error"
        assert result.error.stage == Stage.VERSION


class TestRecreateManifest:
    def test_twice_yields_empty_manifest(self, tmp_path: Path) -> None:
        engine = FakeEngine(tmp_path)
        orchestrator = _orchestrator(tmp_path, engine=engine)
        tag_root = f"{REGISTRY}:{COMMIT}"

        first = orchestrator.recreate_manifest(tag_root)
        second = orchestrator.recreate_manifest(tag_root)

        assert isinstance(first, Ok)
        assert isinstance(second, Ok)
        assert second.value.members == ()
        assert engine.manifest_calls() == [
            ("exists", tag_root),
            ("create", tag_root),
            ("exists", tag_root),
            ("rm", tag_root),
            ("create", tag_root),
        ]

    def test_remove_failure(self, tmp_path: Path) -> None:
        engine = FakeEngine(tmp_path, fail={"rm"})
        engine.manifests.add("reg:abc")

        result = _orchestrator(tmp_path, engine=engine).recreate_manifest("reg:abc")

        assert isinstance(result, Err)
        assert result.error.kind == "manifest_error"
        assert ("create", "reg:abc") not in engine.calls

    def test_create_failure(self, tmp_path: Path) -> None:
        engine = FakeEngine(tmp_path, fail={"create"})

        result = _orchestrator(tmp_path, engine=engine).recreate_manifest("reg:abc")

        assert isinstance(result, Err)
        assert result.error.stage == Stage.MANIFEST
        assert "create" in result.error.message
        assert result.error.hint == "boom"


class TestAddToManifest:
    def test_appends_in_order(self, tmp_path: Path) -> None:
        orchestrator = _orchestrator(tmp_path)
        manifest = orchestrator.recreate_manifest("reg:abc")
        assert isinstance(manifest, Ok)

        first = orchestrator.add_to_manifest(manifest.value, "reg:abc-amd64")
        assert isinstance(first, Ok)
        second = orchestrator.add_to_manifest(first.value, "reg:abc-arm64")

        assert isinstance(second, Ok)
        assert second.value.members == ("reg:abc-amd64", "reg:abc-arm64")

    def test_add_failure(self, tmp_path: Path) -> None:
        engine = FakeEngine(tmp_path, fail={"add"})
        orchestrator = _orchestrator(tmp_path, engine=engine)
        manifest = orchestrator.recreate_manifest("reg:abc")
        assert isinstance(manifest, Ok)

        result = orchestrator.add_to_manifest(manifest.value, "reg:abc-amd64")

        assert isinstance(result, Err)
        assert result.error.kind == "manifest_error"
        assert "reg:abc-amd64" in result.error.message


class TestUpload:
    def test_descriptor_names_file_after_arch(self, tmp_path: Path) -> None:
        descriptor = _orchestrator(tmp_path).descriptor_for(
            arch=Arch.ARM64, version=VersionTag(COMMIT), path=tmp_path / "glabu"
        )
        assert descriptor.namespace == "puterize/prebuilt"
        assert descriptor.package_name == "glabu"
        assert descriptor.package_version == COMMIT
        assert descriptor.file_name == "glabu-arm64"

    def test_missing_file(self, tmp_path: Path) -> None:
        orchestrator = _orchestrator(tmp_path)
        descriptor = orchestrator.descriptor_for(
            arch=Arch.AMD64, version=VersionTag(COMMIT), path=tmp_path / "missing"
        )

        result = orchestrator.upload(descriptor)

        assert isinstance(result, Err)
        assert result.error.kind == "upload_error"

    def test_conflict_is_rejected(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        http.set_json(PACKAGES_URL, [{"id": 7, "name": "glabu", "version": COMMIT}])
        http.set_json(
            f"{PROJECT}/packages/7/package_files?per_page=100",
            [{"id": 1, "package_id": 7, "file_name": "glabu-amd64"}],
        )
        (tmp_path / "glabu").write_bytes(b"bin")
        orchestrator = _orchestrator(tmp_path, http=http)

        result = orchestrator.upload(
            orchestrator.descriptor_for(
                arch=Arch.AMD64, version=VersionTag(COMMIT), path=tmp_path / "glabu"
            )
        )

        assert isinstance(result, Err)
        assert result.error.reason == FailureReason.CONFLICT
        assert http.count("PUT") == 0

    def test_overwrite_policy(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        config = _config(tmp_path)
        config = replace(config, package=replace(config.package, on_conflict="overwrite"))
        (tmp_path / "glabu").write_bytes(b"bin")
        orchestrator = _orchestrator(tmp_path, http=http, config=config)

        result = orchestrator.upload(
            orchestrator.descriptor_for(
                arch=Arch.AMD64, version=VersionTag(COMMIT), path=tmp_path / "glabu"
            )
        )

        assert isinstance(result, Ok)
        assert result.value.url == _file_url("amd64")
        assert result.value.size == 3
        assert http.count("GET") == 0

    def test_missing_project_is_unknown(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        http.set_json(PACKAGES_URL, [])
        http.set_put(
            _file_url("amd64"),
            HttpError(url=_file_url("amd64"), status=404, message="404 Project Not Found"),
        )
        (tmp_path / "glabu").write_bytes(b"bin")
        orchestrator = _orchestrator(tmp_path, http=http)

        result = orchestrator.upload(
            orchestrator.descriptor_for(
                arch=Arch.AMD64, version=VersionTag(COMMIT), path=tmp_path / "glabu"
            )
        )

        assert isinstance(result, Err)
        assert result.error.reason == FailureReason.UNKNOWN
        assert result.error.hint == "Check the project path (namespace/project)."


class TestPlan:
    def test_plan(self, tmp_path: Path) -> None:
        plan = _orchestrator(tmp_path).plan(VersionTag(COMMIT))

        assert plan.tag_root == f"{REGISTRY}:{COMMIT}"
        assert [a.arch for a in plan.archs] == [Arch.AMD64, Arch.ARM64]
        assert [a.image_tag for a in plan.archs] == [_tag("amd64"), _tag("arm64")]
        assert plan.archs[1].binary_path == (
            tmp_path / "target" / "aarch64-unknown-linux-musl" / "release" / "glabu"
        )
        assert plan.install_path == tmp_path / "bin" / "glabu"

    def test_no_install_for_unknown_host(self, tmp_path: Path) -> None:
        plan = _orchestrator(tmp_path, host_arch=Arch.UNKNOWN).plan(VersionTag(COMMIT))
        assert plan.install_path is None


# =============================================================================
# Full runs
# =============================================================================


class TestRun:
    def test_two_arch_release(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _fake_build(monkeypatch)
        http = MockHttpClient()
        http.set_json(PACKAGES_URL, [])
        engine = FakeEngine(tmp_path)
        tag_root = f"{REGISTRY}:{COMMIT}"

        result = _orchestrator(
            tmp_path, http=http, engine=engine, host_arch=parse_arch("x86_64")
        ).run()

        assert isinstance(result, Ok)
        report = result.value
        assert [u.url for u in report.uploads] == [_file_url("amd64"), _file_url("arm64")]
        assert http.count("PUT") == 2
        assert report.manifest.members == (_tag("amd64"), _tag("arm64"))
        assert engine.manifest_calls() == [
            ("exists", tag_root),
            ("create", tag_root),
            ("add", tag_root, _tag("amd64")),
            ("add", tag_root, _tag("arm64")),
            ("manifest-push", tag_root),
        ]
        assert report.installed == tmp_path / "bin" / "glabu"
        assert (tmp_path / "bin" / "glabu").read_bytes() == b"binary amd64"
        assert report.install_warning is None

    def test_failed_upload_leaves_manifest_untouched(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _fake_build(monkeypatch)
        http = MockHttpClient()
        http.set_json(PACKAGES_URL, [])
        http.set_put(_file_url("arm64"), HttpError(_file_url("arm64"), 500, "Internal Error"))
        engine = FakeEngine(tmp_path)
        console = MockConsole()

        result = _orchestrator(tmp_path, http=http, engine=engine, console=console).run()

        assert isinstance(result, Err)
        assert result.error.stage == Stage.UPLOAD
        assert result.error.reason == FailureReason.UNKNOWN
        assert engine.manifest_calls() == []
        assert console.find(f"already published: {_file_url('amd64')}")
        assert not (tmp_path / "bin" / "glabu").exists()

    def test_build_failure_stops_sequential_run(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        built = _fake_build(monkeypatch, fail=Arch.AMD64)
        engine = FakeEngine(tmp_path)
        http = MockHttpClient()

        result = _orchestrator(tmp_path, engine=engine, http=http).run()

        assert isinstance(result, Err)
        assert result.error.kind == "build_error"
        assert built == [Arch.AMD64]
        assert engine.calls == []
        assert http.count("PUT") == 0

    def test_rerun_for_same_commit_replaces_manifest(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _fake_build(monkeypatch)
        engine = FakeEngine(tmp_path)
        tag_root = f"{REGISTRY}:{COMMIT}"
        engine.manifests.add(tag_root)

        result = _orchestrator(tmp_path, engine=engine).run()

        assert isinstance(result, Ok)
        calls = engine.manifest_calls()
        assert calls[:3] == [("exists", tag_root), ("rm", tag_root), ("create", tag_root)]
        assert result.value.manifest.members == (_tag("amd64"), _tag("arm64"))

    def test_install_failure_is_only_a_warning(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _fake_build(monkeypatch)

        def failing_install(**_: object) -> Result[Path | None, ReleaseError]:
            return Err(
                ReleaseError(
                    stage=Stage.INSTALL,
                    kind="install_error",
                    message="permission denied writing /usr/local/bin/glabu",
                    hint="sudo install ...",
                )
            )

        monkeypatch.setattr(install_mod, "install_locally", failing_install)
        console = MockConsole()

        result = _orchestrator(tmp_path, console=console).run()

        assert isinstance(result, Ok)
        assert result.value.installed is None
        assert result.value.install_warning == "permission denied writing /usr/local/bin/glabu"
        assert console.has_warning()

    def test_no_install_when_host_not_built(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _fake_build(monkeypatch)
        config = _config(tmp_path, architectures=(Arch.ARM64,))

        result = _orchestrator(tmp_path, config=config, host_arch=Arch.AMD64).run()

        assert isinstance(result, Ok)
        assert result.value.installed is None
        assert list((tmp_path / "bin").iterdir()) == []

    def test_parallel_jobs_keep_arch_order(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        built = _fake_build(monkeypatch)
        http = MockHttpClient()
        http.set_json(PACKAGES_URL, [])

        result = _orchestrator(tmp_path, http=http, config=_config(tmp_path, jobs=2)).run()

        assert isinstance(result, Ok)
        assert sorted(built, key=str) == [Arch.AMD64, Arch.ARM64]
        assert [o.target.arch for o in result.value.outcomes] == [Arch.AMD64, Arch.ARM64]
        assert result.value.manifest.members == (_tag("amd64"), _tag("arm64"))
        assert http.count("PUT") == 2

    def test_parallel_failure_skips_manifest(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        built = _fake_build(monkeypatch, fail=Arch.ARM64)
        engine = FakeEngine(tmp_path)

        result = _orchestrator(tmp_path, engine=engine, config=_config(tmp_path, jobs=2)).run()

        assert isinstance(result, Err)
        assert sorted(built, key=str) == [Arch.AMD64, Arch.ARM64]
        assert engine.manifest_calls() == []

    def test_compression_runs_per_arch(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _fake_build(monkeypatch)
        compressed: list[Arch] = []

        def fake_compress(
            *, target: ReleaseTarget, settings: CompressConfig, console: ConsoleProtocol
        ) -> Result[ReleaseTarget, ReleaseError]:
            compressed.append(target.arch)
            return Ok(target.mark_compressed())

        monkeypatch.setattr(compress_mod, "compress", fake_compress)
        config = replace(_config(tmp_path), compress=CompressConfig(enabled=True))

        result = _orchestrator(tmp_path, config=config).run()

        assert isinstance(result, Ok)
        assert compressed == [Arch.AMD64, Arch.ARM64]
        assert all(o.target.compressed for o in result.value.outcomes)

    def test_image_push_failure(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _fake_build(monkeypatch)
        engine = FakeEngine(tmp_path, fail={"push"})

        result = _orchestrator(tmp_path, engine=engine).run()

        assert isinstance(result, Err)
        assert result.error.stage == Stage.IMAGE
        assert engine.manifest_calls() == []

    def test_manifest_push_failure(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _fake_build(monkeypatch)
        engine = FakeEngine(tmp_path, fail={"manifest-push"})

        result = _orchestrator(tmp_path, engine=engine).run()

        assert isinstance(result, Err)
        assert result.error.kind == "manifest_error"

    def test_missing_container_tool(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        built = _fake_build(monkeypatch)
        engine = FakeEngine(tmp_path)
        monkeypatch.setattr(engine, "is_available", lambda: False)

        result = _orchestrator(tmp_path, engine=engine).run()

        assert isinstance(result, Err)
        assert result.error.kind == "tool_missing"
        assert built == []
