"""Isolated import environment built from the nested archives.

The environment is a meta path finder placed in front of ``sys.meta_path``.
Top-level names are looked up in the nested archives in order and the first
archive providing a name wins, except that namespace package portions from
several archives are merged. Submodules are found through their parent
package's ``__path__``, which already points into the archive(s) providing it.

Closing the environment uninstalls the finder and forgets every module it
loaded, so nothing keeps referring to files in the workspace after it is gone.
"""

from collections.abc import Sequence
import importlib
import importlib.abc
import importlib.machinery
import logging
import os
import pathlib
import sys
import types
import zipimport

from pyexploder.log import get_logger


class IsolatedEnvironment(importlib.abc.MetaPathFinder):
    """Ordered lookup context over a sequence of zip archives."""

    _archives: tuple[pathlib.Path, ...]
    _importers: dict[pathlib.Path, zipimport.zipimporter | None]
    _installed: bool
    _closed: bool
    _logger: logging.Logger

    def __init__(self, archives: Sequence[pathlib.Path], *, logger: logging.Logger | None = None) -> None:
        """Initialize the environment (not yet installed).

        :param archives: Nested archive paths; earlier entries take precedence.
        :param logger: Optional logger.
        """

        self._archives = tuple(archives)
        self._importers = {}
        self._installed = False
        self._closed = False
        self._logger = get_logger(logger)

    @property
    def archives(self) -> tuple[pathlib.Path, ...]:
        return self._archives

    @property
    def closed(self) -> bool:
        return self._closed

    def _importer(self, archive: pathlib.Path) -> zipimport.zipimporter | None:
        """Return a cached importer for ``archive`` (``None`` if unreadable)."""

        if archive in self._importers:
            return self._importers[archive]

        importer: zipimport.zipimporter | None
        try:
            importer = zipimport.zipimporter(str(archive))
        except (zipimport.ZipImportError, OSError) as e:
            if self._logger.isEnabledFor(logging.DEBUG) is True:
                self._logger.debug(f"Skipping unreadable archive [{archive}]: {e}")
            importer = None
        self._importers[archive] = importer
        return importer

    def find_spec(  # type: ignore[override]
        self,
        fullname: str,
        path: object | None,
        target: object | None = None,
    ) -> importlib.machinery.ModuleSpec | None:
        """Find a top-level module in the nested archives.

        The first archive holding a regular module or package wins. Namespace
        portions are collected from every archive, in order, and returned as a
        single namespace spec when no archive has a regular package.

        :param fullname: Module name being imported.
        :param path: Package path (set for submodules, which are left to the path finder).
        :param target: Target module (unused).
        :returns: Spec from the first archive providing ``fullname``, or ``None``.
        """

        if self._closed is True or path is not None:
            return None

        portions: list[str] = []
        for archive in self._archives:
            importer: zipimport.zipimporter | None = self._importer(archive)
            if importer is None:
                continue
            spec: importlib.machinery.ModuleSpec | None = importer.find_spec(fullname)
            if spec is None:
                continue
            if spec.loader is None and spec.submodule_search_locations is not None:
                portions.extend(spec.submodule_search_locations)
                continue
            if self._logger.isEnabledFor(logging.DEBUG) is True:
                self._logger.debug(f"Module [{fullname}] found in [{archive}]")
            return spec

        if len(portions) == 0:
            return None
        if self._logger.isEnabledFor(logging.DEBUG) is True:
            self._logger.debug(f"Namespace package [{fullname}] spans {portions}")
        namespace: importlib.machinery.ModuleSpec = importlib.machinery.ModuleSpec(fullname, None, is_package=True)
        namespace.submodule_search_locations = portions
        return namespace

    def provides(self, fullname: str) -> bool:
        """Return whether the top-level package of ``fullname`` comes from the archives."""

        top: str = fullname.partition(".")[0]
        return self.find_spec(top, None) is not None

    def owns(self, module: types.ModuleType) -> bool:
        """Return whether ``module`` was loaded from one of the nested archives."""

        locations: list[str] = []
        spec: object = getattr(module, "__spec__", None)
        origin: object = getattr(spec, "origin", None)
        if isinstance(origin, str) is True:
            locations.append(origin)
        search: object = getattr(spec, "submodule_search_locations", None)
        if search is not None:
            locations.extend(str(p) for p in search)
        file: object = getattr(module, "__file__", None)
        if isinstance(file, str) is True:
            locations.append(file)

        for location in locations:
            if self._is_inside(location) is True:
                return True
        return False

    def _is_inside(self, location: str) -> bool:
        for archive in self._archives:
            a: str = str(archive)
            if location == a or location.startswith(a + os.sep):
                return True
        return False

    def import_module(self, name: str) -> types.ModuleType:
        """Import ``name`` through this environment.

        :param name: Dotted module name.
        :returns: The imported module.
        :raises ImportError: If the module is not provided by the nested archives.
        """

        if self._installed is False or self._closed is True:
            raise ImportError(f"Environment is not active; cannot import {name!r}")
        if self.provides(name) is False:
            raise ImportError(f"No module named {name!r} in the nested archives", name=name)

        module: types.ModuleType = importlib.import_module(name)
        if self.owns(module) is False:
            raise ImportError(
                f"Module {name!r} is shadowed by an already imported module from {getattr(module, '__file__', None)!r}",
                name=name,
            )
        return module

    def install(self) -> None:
        """Put the environment at the front of ``sys.meta_path``."""

        if self._installed is True:
            return
        sys.meta_path.insert(0, self)
        self._installed = True

    def close(self) -> None:
        """Release the environment.

        Uninstalls the finder, drops every module loaded from the archives and
        the path importer cache entries pointing into them. Safe to call twice.
        """

        if self._closed is True:
            return
        self._closed = True

        if self in sys.meta_path:
            sys.meta_path.remove(self)

        purged: list[str] = [name for name, module in list(sys.modules.items()) if self.owns(module)]
        for name in purged:
            del sys.modules[name]

        for key in list(sys.path_importer_cache):
            if self._is_inside(key) is True:
                del sys.path_importer_cache[key]

        self._importers.clear()
        importlib.invalidate_caches()
        if self._logger.isEnabledFor(logging.DEBUG) is True:
            self._logger.debug(f"Environment released ({len(purged)} modules unloaded)")

    def __enter__(self) -> "IsolatedEnvironment":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"IsolatedEnvironment({[str(a) for a in self._archives]!r})"


def build_environment(
    nested: Sequence[pathlib.Path],
    *,
    logger: logging.Logger | None = None,
) -> IsolatedEnvironment:
    """Build and install an environment over ``nested``.

    The paths are not validated here; an unreadable archive simply provides no
    modules.

    :param nested: Nested archive paths in precedence order.
    :param logger: Optional logger.
    :returns: Installed environment; close it before the workspace is removed.
    """

    log: logging.Logger = get_logger(logger)
    env: IsolatedEnvironment = IsolatedEnvironment(nested, logger=log)
    if log.isEnabledFor(logging.DEBUG) is True:
        log.debug(f"Search path is {[str(a) for a in env.archives]}")
    env.install()
    return env
