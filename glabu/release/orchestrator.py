"""End-to-end release of one commit to every configured architecture.

Run order:

    resolve version
      -> per architecture: build -> compress -> upload package -> publish image
      -> recreate manifest -> add members -> push manifest
      -> install the host binary (failure is only a warning)

The per-architecture pipelines are independent and may run on a thread
pool. The manifest is touched only after every pipeline succeeded, so a
failed upload never leaves a half-assembled manifest behind. Nothing is
rolled back: artifacts uploaded before a failure stay in the registry.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from glabu.container.engine import ContainerEngine
from glabu.core.config import ReleaseConfig
from glabu.core.result import Err, Ok, Result
from glabu.git.repository import Repository
from glabu.output.console import ConsoleProtocol, Style
from glabu.platform.detection import Arch
from glabu.platform.process import ProcessError
from glabu.registry.packages import FailureReason, PackageRegistry
from glabu.release import build as build_mod
from glabu.release import compress as compress_mod
from glabu.release import install as install_mod
from glabu.release.errors import ReleaseError, Stage
from glabu.release.model import (
    ArchOutcome,
    PlannedArch,
    ReleaseManifest,
    ReleasePlan,
    ReleaseReport,
    ReleaseTarget,
    UploadDescriptor,
    UploadResult,
    VersionTag,
)

__all__ = ["ReleaseOrchestrator"]


def _manifest_error(action: str, tag: str, error: ProcessError) -> ReleaseError:
    return ReleaseError(
        stage=Stage.MANIFEST,
        kind="manifest_error",
        message=f"manifest {action} failed for {tag} (exit {error.returncode})",
        hint=error.detail or None,
    )


def _upload_reason(reason: FailureReason) -> FailureReason:
    # A release upload fails as auth, network, conflict or unknown.
    if reason == FailureReason.NOT_FOUND:
        return FailureReason.UNKNOWN
    return reason


class ReleaseOrchestrator:
    """Releases the project at `root` according to `config`.

    Collaborators are injected so tests can replace the registry and the
    container engine; the project root is explicit and the process working
    directory is never changed.
    """

    def __init__(
        self,
        *,
        root: Path,
        config: ReleaseConfig,
        console: ConsoleProtocol,
        host_arch: Arch,
        registry: PackageRegistry,
        engine: ContainerEngine,
        repository: Repository | None = None,
    ) -> None:
        self.root = root
        self.config = config
        self.console = console
        self.host_arch = host_arch
        self.registry = registry
        self.engine = engine
        self.repository = repository or Repository(root)

    # -------------------------------------------------------------------------
    # Single steps
    # -------------------------------------------------------------------------

    def resolve_version_tag(self) -> Result[VersionTag, ReleaseError]:
        return (
            self.repository.short_head()
            .map(lambda commit: VersionTag(commit=commit))
            .map_err(
                lambda e: ReleaseError(
                    stage=Stage.VERSION,
                    kind="vcs_error",
                    message=f"cannot resolve HEAD in {self.root}: {e.message}",
                    hint="Run inside a git repository with at least one commit.",
                )
            )
        )

    def build_artifact(self, arch: Arch) -> Result[ReleaseTarget, ReleaseError]:
        return build_mod.build_artifact(
            root=self.root, build=self.config.build, arch=arch, console=self.console
        )

    def compress(self, target: ReleaseTarget) -> Result[ReleaseTarget, ReleaseError]:
        if not self.config.compress.enabled:
            return Ok(target)
        return compress_mod.compress(
            target=target, settings=self.config.compress, console=self.console
        )

    def descriptor_for(self, *, arch: Arch, version: VersionTag, path: Path) -> UploadDescriptor:
        package = self.config.package
        return UploadDescriptor(
            namespace=package.namespace,
            package_name=package.name,
            package_version=version.package_version,
            file_name=f"{self.config.build.binary_name}-{arch}",
            file_path=path,
        )

    def upload(self, descriptor: UploadDescriptor) -> Result[UploadResult, ReleaseError]:
        try:
            data = descriptor.file_path.read_bytes()
        except OSError as e:
            return Err(
                ReleaseError(
                    stage=Stage.UPLOAD,
                    kind="upload_error",
                    message=f"cannot read {descriptor.file_path}: {e}",
                    reason=FailureReason.UNKNOWN,
                )
            )

        self.console.print(
            f"upload {descriptor.file_name} -> {descriptor.namespace} "
            f"({descriptor.package_name}/{descriptor.package_version})",
            Style.DIM,
        )
        result = self.registry.package_upload(
            descriptor.namespace,
            descriptor.package_name,
            descriptor.package_version,
            descriptor.file_name,
            data,
            overwrite=self.config.package.on_conflict == "overwrite",
        )
        if isinstance(result, Err):
            e = result.error
            return Err(
                ReleaseError(
                    stage=Stage.UPLOAD,
                    kind="upload_error",
                    message=e.message,
                    hint=e.hint,
                    reason=_upload_reason(e.reason),
                )
            )
        return Ok(UploadResult(descriptor=descriptor, url=result.value, size=len(data)))

    def publish_image(self, arch: Arch, version: VersionTag) -> Result[str, ReleaseError]:
        image = self.config.image
        tag = version.member_tag(image.registry, arch)
        self.console.print(
            f"{self.engine.tool} build --platform {arch.container_platform} -t {tag}", Style.DIM
        )
        built = self.engine.build_image(
            arch=arch, tag=tag, containerfile=image.containerfile, context=image.context
        )
        if isinstance(built, Err):
            return Err(
                ReleaseError(
                    stage=Stage.IMAGE,
                    kind="build_error",
                    message=f"image build failed for {tag} (exit {built.error.returncode})",
                    hint=f"Check {image.containerfile} builds for {arch.container_platform}.",
                )
            )

        self.console.print(f"{self.engine.tool} push {tag}", Style.DIM)
        pushed = self.engine.push_image(tag)
        if isinstance(pushed, Err):
            return Err(
                ReleaseError(
                    stage=Stage.IMAGE,
                    kind="upload_error",
                    message=f"image push failed for {tag} (exit {pushed.error.returncode})",
                    hint=f"podman login {image.registry.split('/', 1)[0]}",
                    reason=FailureReason.UNKNOWN,
                )
            )
        return Ok(tag)

    def recreate_manifest(self, tag_root: str) -> Result[ReleaseManifest, ReleaseError]:
        """Start from an empty manifest, removing any leftover one first."""
        exists = self.engine.manifest_exists(tag_root)
        if isinstance(exists, Err):
            return Err(_manifest_error("exists", tag_root, exists.error))

        if exists.value:
            self.console.print(f"manifest {tag_root} already exists, removing it", Style.DIM)
            removed = self.engine.manifest_remove(tag_root)
            if isinstance(removed, Err):
                return Err(_manifest_error("rm", tag_root, removed.error))

        return (
            self.engine.manifest_create(tag_root)
            .map(lambda _: ReleaseManifest(tag_root=tag_root))
            .map_err(lambda e: _manifest_error("create", tag_root, e))
        )

    def add_to_manifest(
        self, manifest: ReleaseManifest, tag: str
    ) -> Result[ReleaseManifest, ReleaseError]:
        return (
            self.engine.manifest_add(manifest.tag_root, tag)
            .map(lambda _: manifest.with_member(tag))
            .map_err(lambda e: _manifest_error("add", tag, e))
        )

    def push_manifest(self, manifest: ReleaseManifest) -> Result[None, ReleaseError]:
        self.console.print(f"{self.engine.tool} manifest push {manifest.tag_root}", Style.DIM)
        return self.engine.manifest_push(manifest.tag_root).map_err(
            lambda e: _manifest_error("push", manifest.tag_root, e)
        )

    def install_locally(self, target: ReleaseTarget) -> Result[Path | None, ReleaseError]:
        return install_mod.install_locally(
            target=target,
            host_arch=self.host_arch,
            settings=self.config.install,
            binary_name=self.config.build.binary_name,
            console=self.console,
        )

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def plan(self, version: VersionTag) -> ReleasePlan:
        archs: list[PlannedArch] = []
        for arch in self.config.build.architectures:
            path = build_mod.binary_path(root=self.root, build=self.config.build, arch=arch)
            archs.append(
                PlannedArch(
                    arch=arch,
                    binary_path=path,
                    upload=self.descriptor_for(arch=arch, version=version, path=path),
                    image_tag=version.member_tag(self.config.image.registry, arch),
                )
            )

        install_path: Path | None = None
        if self.config.install.enabled and any(
            a.matches(self.host_arch) for a in self.config.build.architectures
        ):
            install_path = install_mod.install_destination(
                settings=self.config.install, binary_name=self.config.build.binary_name
            )

        return ReleasePlan(
            version=version,
            tag_root=version.tag_root(self.config.image.registry),
            archs=tuple(archs),
            install_path=install_path,
        )

    def release_arch(self, arch: Arch, version: VersionTag) -> Result[ArchOutcome, ReleaseError]:
        """Build, compress, upload and publish the image for one architecture."""
        self.console.info(f"[{arch}] build")
        built = self.build_artifact(arch)
        if isinstance(built, Err):
            return built

        self.console.info(f"[{arch}] compress")
        target = self.compress(built.value)
        if isinstance(target, Err):
            return target

        self.console.info(f"[{arch}] upload")
        descriptor = self.descriptor_for(
            arch=arch, version=version, path=target.value.binary_path
        )
        uploaded = self.upload(descriptor)
        if isinstance(uploaded, Err):
            return uploaded

        self.console.info(f"[{arch}] image")
        image_tag = self.publish_image(arch, version)
        if isinstance(image_tag, Err):
            return image_tag

        self.console.success(f"[{arch}] {uploaded.value.url}")
        return Ok(
            ArchOutcome(target=target.value, upload=uploaded.value, image_tag=image_tag.value)
        )

    def _release_all(self, version: VersionTag) -> Result[tuple[ArchOutcome, ...], ReleaseError]:
        archs = self.config.build.architectures
        workers = min(self.config.build.jobs, len(archs))

        results: list[Result[ArchOutcome, ReleaseError]] = []
        if workers <= 1:
            for arch in archs:
                results.append(self.release_arch(arch, version))
                if isinstance(results[-1], Err):
                    break
        else:
            # Running builds cannot be cancelled; every worker finishes.
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self.release_arch, arch, version) for arch in archs]
                results = [future.result() for future in futures]

        outcomes = tuple(r.value for r in results if isinstance(r, Ok))
        for result in results:
            if isinstance(result, Err):
                for outcome in outcomes:
                    self.console.print(f"already published: {outcome.upload.url}", Style.DIM)
                return result
        return Ok(outcomes)

    def run(self) -> Result[ReleaseReport, ReleaseError]:
        self.console.header("Version")
        version = self.resolve_version_tag()
        if isinstance(version, Err):
            return version
        self.console.print(f"commit {version.value}", Style.DIM)

        if not self.engine.is_available():
            return Err(
                ReleaseError(
                    stage=Stage.IMAGE,
                    kind="tool_missing",
                    message=f"{self.engine.tool}: missing",
                    hint="Install podman: https://podman.io/docs/installation",
                )
            )

        self.console.header("Artifacts")
        outcomes = self._release_all(version.value)
        if isinstance(outcomes, Err):
            return outcomes

        self.console.header("Manifest")
        tag_root = version.value.tag_root(self.config.image.registry)
        manifest = self.recreate_manifest(tag_root)
        if isinstance(manifest, Err):
            return manifest
        assembled = manifest.value
        for outcome in outcomes.value:
            added = self.add_to_manifest(assembled, outcome.image_tag)
            if isinstance(added, Err):
                return added
            assembled = added.value
        pushed = self.push_manifest(assembled)
        if isinstance(pushed, Err):
            return pushed
        self.console.success(f"manifest {tag_root} ({len(assembled.members)} members)")

        installed: Path | None = None
        install_warning: str | None = None
        if self.config.install.enabled:
            self.console.header("Install")
            host_outcomes = [o for o in outcomes.value if o.target.arch.matches(self.host_arch)]
            if not host_outcomes:
                self.console.print(f"no artifact for host architecture {self.host_arch}", Style.DIM)
            else:
                result = self.install_locally(host_outcomes[0].target)
                if isinstance(result, Err):
                    install_warning = result.error.message
                    self.console.warning(result.error.message)
                    if result.error.hint:
                        self.console.print(f"hint: {result.error.hint}", Style.DIM)
                else:
                    installed = result.value
                    if installed is not None:
                        self.console.success(f"installed {installed}")

        return Ok(
            ReleaseReport(
                version=version.value,
                outcomes=outcomes.value,
                manifest=assembled,
                installed=installed,
                install_warning=install_warning,
            )
        )
