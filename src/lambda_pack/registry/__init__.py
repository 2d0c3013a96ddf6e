"""Package registry helpers."""

from lambda_pack.registry.descriptors import (
    SHARED_LIB_DIR,
    PackageDescriptor,
    PackageRegistry,
    build_registry,
    descriptor_from_config,
)

__all__ = [
    "SHARED_LIB_DIR",
    "PackageDescriptor",
    "PackageRegistry",
    "build_registry",
    "descriptor_from_config",
]
