"""Container support.

This module handles:
- Detecting podman or docker
- Describing and building the layered toolchain and project images
- Running commands inside the project image
"""

from sgdk_helper.container.engine import (
    ContainerEngine,
    ContainerEngineNotFoundError,
)
from sgdk_helper.container.images import (
    ContainerImage,
    ImageLayerManager,
    project_image,
    toolchain_image,
)

__all__ = [
    "ContainerEngine",
    "ContainerEngineNotFoundError",
    "ContainerImage",
    "ImageLayerManager",
    "project_image",
    "toolchain_image",
]
