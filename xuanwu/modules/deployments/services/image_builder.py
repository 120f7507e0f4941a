"""Image builder contract and the local builder.

An image builder turns a repository, a branch and a build type into a
pushed image reference of the form
``<registry host>/<registry namespace>/<application name>:<version>``.
"""
import asyncio
from collections.abc import Mapping
from typing import Protocol

from pydantic import BaseModel

from xuanwu.core.config import Settings
from xuanwu.core.logging import get_logger
from xuanwu.modules.deployments.errors import ImageBuildError
from xuanwu.modules.projects.schemas import BuildType
from .build_templates import BuildTemplateRegistry

logger = get_logger(__name__)


class RegistryConfig(BaseModel):
    """Where built images are pushed."""
    host: str = "registry.example.com"
    namespace: str = "xuanwu"

    @classmethod
    def from_settings(cls, settings: Settings) -> "RegistryConfig":
        return cls(host=settings.REGISTRY_HOST, namespace=settings.REGISTRY_NAMESPACE)


def image_reference(registry: RegistryConfig, image_name: str, version: str) -> str:
    """Format the reference an image is pushed under."""
    return f"{registry.host}/{registry.namespace}/{image_name}:{version}"


class ImageBuilder(Protocol):
    """Protocol for image builder implementations."""

    async def build(
        self,
        repository: str,
        branch: str,
        build_type: BuildType,
        *,
        image_name: str,
        version: str,
        dockerfile_path: str | None = None,
        build_config: Mapping[str, str] | None = None,
    ) -> str: ...


class LocalImageBuilder:
    """
    Simulated builder for local development.

    Resolves the Dockerfile the build would use (the repository's own file
    for container-file builds, a rendered runtime template otherwise),
    waits for the configured build time and returns the image reference.
    """

    def __init__(
        self,
        registry: RegistryConfig,
        templates: BuildTemplateRegistry | None = None,
        build_delay: float = 0.0,
    ):
        """
        Initialize the builder.

        Args:
            registry: Registry the image reference points at
            templates: Build templates for runtime builds
            build_delay: Seconds a simulated build takes
        """
        self.registry = registry
        self.templates = templates or BuildTemplateRegistry()
        self.build_delay = build_delay

    def resolve_dockerfile(
        self,
        build_type: BuildType,
        dockerfile_path: str | None = None,
        build_config: Mapping[str, str] | None = None,
    ) -> str:
        """Return the Dockerfile location (container-file builds) or rendered content."""
        if build_type == BuildType.DOCKERFILE:
            return dockerfile_path or "Dockerfile"
        return self.templates.render(build_type, build_config)

    async def build(
        self,
        repository: str,
        branch: str,
        build_type: BuildType,
        *,
        image_name: str,
        version: str,
        dockerfile_path: str | None = None,
        build_config: Mapping[str, str] | None = None,
    ) -> str:
        if not repository:
            raise ImageBuildError("Repository URL is required to build an image")
        try:
            build_type = BuildType(build_type)
        except ValueError:
            raise ImageBuildError(f"Unsupported build type: {build_type}")

        dockerfile = self.resolve_dockerfile(build_type, dockerfile_path, build_config)
        logger.debug(
            "Resolved Dockerfile",
            repository=repository,
            branch=branch,
            build_type=build_type.value,
            dockerfile=dockerfile,
        )

        if self.build_delay:
            await asyncio.sleep(self.build_delay)

        image = image_reference(self.registry, image_name, version)
        logger.info("Image built", repository=repository, branch=branch, image=image)
        return image
