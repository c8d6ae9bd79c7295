"""PluginMount: discovers plugins, loads them in isolation and mounts their routers.

A plugin is a Python module (a ``.py`` file or a package directory) that
exposes a module-level ``plugin`` object::

    # my_plugin/__init__.py
    __version__ = "1.2.0"

    class _Plugin:
        display_name = "My Plugin"
        description = "Does plugin things"
        router_path = "/my-plugin"
        homepage_url = "https://example.com"

        def init(self, context): ...
        def router(self): return my_sub_router
        def applications(self): return [Application(name="My App", path="/")]
        def deinit(self): ...

    plugin = _Plugin()

Sources are loaded one at a time. A source that fails to import or validate
is recorded with its failure reason and discovery moves on to the next one;
isolation is best effort, since all plugins share one interpreter.
"""

import importlib.util
import logging
import sys
import types
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Protocol

from doorway._internal.invoke import invoke
from doorway.config import ServerConfig
from doorway.errors import PluginError
from doorway.middleware.protocol import SubApp, WebSocketSubApp
from doorway.routes.apps import applications_router
from doorway.routing.entry import RouteEntry

logger = logging.getLogger("doorway.plugins")

APPLICATIONS_PREFIX = "/api/applications"
DEFAULT_PLUGIN_VERSION = "0.0.0"

_MODULE_NAMESPACE = "doorway_plugins"


class Plugin(Protocol):
    """What a plugin module's ``plugin`` object provides.

    ``homepage_url``, ``ws_router``, ``applications`` and ``deinit`` are
    optional and looked up with ``getattr``.
    """

    display_name: str
    description: str
    router_path: str

    def init(self, context: "PluginContext") -> Any: ...

    def router(self) -> SubApp: ...


@dataclass(frozen=True, slots=True)
class Application:
    """An application a plugin contributes to ``/api/applications``."""

    name: str
    path: str = ""
    icon_path: str = ""
    version: str = ""
    description: str = ""
    homepage_url: str = ""


@dataclass(frozen=True, slots=True)
class LoadResult:
    """Outcome of loading one plugin source."""

    ok: bool
    reason: str = ""

    @classmethod
    def success(cls) -> "LoadResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: str) -> "LoadResult":
        return cls(ok=False, reason=reason)


@dataclass(frozen=True, slots=True)
class PluginContext:
    """Handed to ``plugin.init()``."""

    identifier: str
    logger: logging.Logger
    config: ServerConfig


@dataclass(frozen=True, slots=True)
class PluginDescriptor:
    """One discovered plugin source and what came of loading it."""

    identifier: str
    source: Path
    load_result: LoadResult
    mount_path: str = ""
    version: str = DEFAULT_PLUGIN_VERSION
    display_name: str = ""
    description: str = ""
    homepage_url: str = ""
    router: SubApp | None = field(default=None, repr=False, compare=False)
    ws_router: WebSocketSubApp | None = field(default=None, repr=False, compare=False)
    plugin: Any = field(default=None, repr=False, compare=False)

    @property
    def loaded(self) -> bool:
        return self.load_result.ok

    def metadata(self) -> dict[str, str]:
        """The plugin fields reported alongside each of its applications."""
        return {
            "name": self.identifier,
            "version": self.version,
            "modulePath": str(self.source),
            "displayName": self.display_name,
            "description": self.description,
            "routerPath": self.mount_path,
            "homepageURL": self.homepage_url,
        }


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _is_plugin_source(path: Path) -> bool:
    if path.name.startswith(("_", ".")):
        return False
    if path.is_dir():
        return (path / "__init__.py").is_file()
    return path.suffix == ".py"


def discover_sources(
    plugin_paths: Iterable[str | Path] = (),
    search_dirs: Iterable[str | Path] = (),
) -> list[Path]:
    """Plugin sources in load order: explicit paths, then search dir children.

    Search directories that do not exist are skipped; their children are
    visited in name order.
    """
    sources = [Path(p).expanduser() for p in plugin_paths]
    for directory in search_dirs:
        root = Path(directory).expanduser()
        if not root.is_dir():
            logger.debug("Plugin search directory %s does not exist", root)
            continue
        sources.extend(child for child in sorted(root.iterdir()) if _is_plugin_source(child))
    return sources


def _identifier(source: Path) -> str:
    return source.stem if source.suffix == ".py" else source.name


def _import_source(identifier: str, source: Path) -> types.ModuleType:
    """Import *source* as ``doorway_plugins.<identifier>``."""
    if source.is_dir():
        init_file = source / "__init__.py"
        if not init_file.is_file():
            msg = f"{source} is not a Python package (no __init__.py)"
            raise PluginError(msg)
        spec = importlib.util.spec_from_file_location(
            f"{_MODULE_NAMESPACE}.{identifier}",
            init_file,
            submodule_search_locations=[str(source)],
        )
    elif source.is_file():
        spec = importlib.util.spec_from_file_location(f"{_MODULE_NAMESPACE}.{identifier}", source)
    else:
        msg = f"{source} does not exist"
        raise PluginError(msg)

    if spec is None or spec.loader is None:
        msg = f"Cannot import {source}"
        raise PluginError(msg)

    module = importlib.util.module_from_spec(spec)
    # Registered before exec so the package's relative imports resolve
    sys.modules[spec.name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(spec.name, None)
        raise
    return module


def _validate(plugin: Any, source: Path) -> None:
    for attr in ("display_name", "description", "router_path"):
        value = getattr(plugin, attr, None)
        if not isinstance(value, str) or not value:
            msg = f"{source}: plugin.{attr} is required"
            raise PluginError(msg)
    if not plugin.router_path.startswith("/"):
        msg = f"{source}: plugin.router_path must start with '/', got {plugin.router_path!r}"
        raise PluginError(msg)
    if plugin.router_path.rstrip("/") == "":
        msg = f"{source}: plugin.router_path cannot be '/'"
        raise PluginError(msg)
    for attr in ("init", "router"):
        if not callable(getattr(plugin, attr, None)):
            msg = f"{source}: plugin.{attr}() is required"
            raise PluginError(msg)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PluginRegistry:
    """Loads plugins once and exposes their routers as route entries.

    Usage::

        registry = PluginRegistry.from_config(config)
        await registry.load()
        entries = registry.route_entries()
        ...
        await registry.dispose()
    """

    __slots__ = ("_config", "_descriptors", "_loaded", "_sources")

    def __init__(self, config: ServerConfig, sources: Sequence[Path] | None = None) -> None:
        self._config = config
        self._sources: tuple[Path, ...] = tuple(
            sources
            if sources is not None
            else discover_sources(config.plugin_paths, config.plugin_search_dirs)
        )
        self._descriptors: tuple[PluginDescriptor, ...] = ()
        self._loaded = False

    @classmethod
    def from_config(cls, config: ServerConfig) -> "PluginRegistry":
        return cls(config)

    @property
    def sources(self) -> tuple[Path, ...]:
        return self._sources

    @property
    def descriptors(self) -> tuple[PluginDescriptor, ...]:
        """Every source's descriptor, successful or not, in load order."""
        return self._descriptors

    @property
    def plugins(self) -> tuple[PluginDescriptor, ...]:
        """Successfully loaded plugins, in load order."""
        return tuple(d for d in self._descriptors if d.loaded)

    async def load(self) -> tuple[PluginDescriptor, ...]:
        """Load every source. Runs once; later calls return the same result."""
        if self._loaded:
            return self._descriptors

        descriptors: list[PluginDescriptor] = []
        seen: set[str] = set()
        for source in self._sources:
            identifier = _identifier(source)
            if identifier in seen:
                logger.warning("Ignoring duplicate plugin %s at %s", identifier, source)
                descriptors.append(
                    PluginDescriptor(identifier, source, LoadResult.failed("duplicate plugin"))
                )
                continue
            seen.add(identifier)
            descriptors.append(await self._load_one(identifier, source))

        self._descriptors = tuple(descriptors)
        self._loaded = True
        logger.info(
            "Loaded %d of %d plugin%s",
            len(self.plugins),
            len(descriptors),
            "" if len(descriptors) == 1 else "s",
        )
        return self._descriptors

    async def _load_one(self, identifier: str, source: Path) -> PluginDescriptor:
        try:
            module = _import_source(identifier, source)
            plugin = getattr(module, "plugin", None)
            if plugin is None:
                msg = f"{source}: module has no 'plugin' attribute"
                raise PluginError(msg)
            _validate(plugin, source)

            context = PluginContext(
                identifier=identifier,
                logger=logger.getChild(identifier),
                config=self._config,
            )
            await invoke(plugin.init, context)
            router = plugin.router()
            ws_factory = getattr(plugin, "ws_router", None)
            ws_router = ws_factory() if callable(ws_factory) else None
        except Exception as exc:
            logger.error("Failed to load plugin %s from %s: %s", identifier, source, exc, exc_info=exc)
            return PluginDescriptor(identifier, source, LoadResult.failed(str(exc) or type(exc).__name__))

        logger.info("Loaded plugin %s at %s", identifier, plugin.router_path)
        return PluginDescriptor(
            identifier=identifier,
            source=source,
            load_result=LoadResult.success(),
            mount_path="/" + plugin.router_path.strip("/"),
            version=str(getattr(module, "__version__", DEFAULT_PLUGIN_VERSION)),
            display_name=plugin.display_name,
            description=plugin.description,
            homepage_url=getattr(plugin, "homepage_url", "") or "",
            router=router,
            ws_router=ws_router,
            plugin=plugin,
        )

    # -- Mounting --

    def route_entries(self) -> list[RouteEntry]:
        """Entries for every loaded plugin plus the applications listing.

        Each plugin is mounted at its own path and again under
        ``/api/applications``. The listing answers only the exact path.
        """
        entries: list[RouteEntry] = []
        for descriptor in self.plugins:
            entries.append(
                RouteEntry(
                    descriptor.mount_path,
                    descriptor.router,
                    descriptor.ws_router,
                    name=f"plugin:{descriptor.identifier}",
                )
            )
        entries.append(RouteEntry(APPLICATIONS_PREFIX, applications_router(self), name="applications"))
        for descriptor in self.plugins:
            entries.append(
                RouteEntry(
                    APPLICATIONS_PREFIX + descriptor.mount_path,
                    descriptor.router,
                    descriptor.ws_router,
                    name=f"plugin-api:{descriptor.identifier}",
                )
            )
        return entries

    async def applications(self) -> list[dict[str, Any]]:
        """Applications of every loaded plugin, paths resolved under the plugin."""
        apps: list[dict[str, Any]] = []
        for descriptor in self.plugins:
            provider = getattr(descriptor.plugin, "applications", None)
            if not callable(provider):
                continue
            for app in await invoke(provider):
                apps.append(_application_json(app, descriptor))
        return apps

    async def dispose(self) -> None:
        """Call ``deinit()`` on every loaded plugin; failures are logged."""
        for descriptor in self.plugins:
            deinit = getattr(descriptor.plugin, "deinit", None)
            if not callable(deinit):
                continue
            try:
                await invoke(deinit)
            except Exception as exc:
                logger.error("Plugin %s failed to deinit: %s", descriptor.identifier, exc, exc_info=exc)


def _join(mount_path: str, path: str) -> str:
    if not path:
        return mount_path
    return mount_path.rstrip("/") + "/" + path.lstrip("/")


def _application_json(app: Application | Mapping[str, Any], descriptor: PluginDescriptor) -> dict[str, Any]:
    data = asdict(app) if isinstance(app, Application) else dict(app)
    if "name" not in data:
        msg = f"Plugin {descriptor.identifier} returned an application without a name"
        raise PluginError(msg)
    return {
        "name": data["name"],
        "version": data.get("version", ""),
        "description": data.get("description", ""),
        "homepageURL": data.get("homepage_url", ""),
        "path": _join(descriptor.mount_path, data.get("path", "")),
        "iconPath": _join(descriptor.mount_path, data["icon_path"]) if data.get("icon_path") else "",
        "plugin": descriptor.metadata(),
    }
