"""Immutable package registry: name -> handler naming and required shared libraries."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from lambda_pack.config import AppSettings, PackageConfig
from lambda_pack.errors import PackageNotFoundError

SHARED_LIB_DIR = "lib"


@dataclass(frozen=True, slots=True)
class PackageDescriptor:
    """Naming contract for one package, shared by the builder and the consistency audit."""

    name: str
    published_handler: str
    source_handler: str
    required_shared_libs: tuple[str, ...]

    @property
    def renames_handler(self) -> bool:
        return self.source_handler != self.published_handler

    @property
    def handler_module(self) -> str:
        """Module name the deployment runtime imports for the published handler."""

        return self.published_handler.removesuffix(".py")

    @property
    def archive_name(self) -> str:
        return f"{self.name}.zip"

    def shared_lib_entry(self, lib_name: str) -> str:
        return f"{SHARED_LIB_DIR}/{lib_name}"

    def shared_lib_module(self, lib_name: str) -> str:
        return f"{SHARED_LIB_DIR}.{lib_name.removesuffix('.py')}"


class PackageRegistry(Mapping[str, PackageDescriptor]):
    """Read-only lookup table built once at startup."""

    __slots__ = ("_descriptors",)

    def __init__(self, descriptors: Mapping[str, PackageDescriptor]) -> None:
        self._descriptors = MappingProxyType(dict(descriptors))

    def __getitem__(self, name: str) -> PackageDescriptor:
        return self._descriptors[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def resolve(self, name: str) -> PackageDescriptor:
        """Return the descriptor for ``name`` or raise ``PackageNotFoundError``."""

        try:
            return self._descriptors[name]
        except KeyError:
            raise PackageNotFoundError(name, list(self._descriptors)) from None


def descriptor_from_config(name: str, config: PackageConfig) -> PackageDescriptor:
    return PackageDescriptor(
        name=name,
        published_handler=config.published_handler,
        source_handler=config.source_handler,
        required_shared_libs=tuple(config.required_shared_libs),
    )


def build_registry(settings: AppSettings) -> PackageRegistry:
    """Freeze the configured package table into a registry."""

    return PackageRegistry(
        {name: descriptor_from_config(name, config) for name, config in sorted(settings.packages.items())}
    )
