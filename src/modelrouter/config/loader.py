"""YAML configuration loader with a modification-time cache.

The loader is an ordinary object: construct one per application (or per
test) and pass it to whoever needs configuration. Entries are keyed by the
resolved file path and reused while the file's ``st_mtime_ns`` is unchanged.

Loads of the same path are serialized, so a watcher-triggered reload never
overlaps an in-flight load.
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import yaml

from modelrouter.config.models import RouterConfig, default_config
from modelrouter.config.validator import ConfigError, parse_config

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "router.config.yaml"


def default_config_path() -> Path:
    """Config file location: $MODELROUTER_CONFIG or ./router.config.yaml."""
    env = os.environ.get("MODELROUTER_CONFIG")
    return Path(env) if env else Path.cwd() / CONFIG_FILENAME


def state_dir() -> Path:
    """Directory for persisted state: $MODELROUTER_HOME or ~/.modelrouter."""
    env = os.environ.get("MODELROUTER_HOME")
    return Path(env) if env else Path.home() / ".modelrouter"


@dataclass
class _CacheEntry:
    mtime_ns: int
    config: RouterConfig


class ConfigLoader:
    """Read-through cache of parsed router configurations.

    Usage:
        loader = ConfigLoader()
        config = loader.load("router.config.yaml")
        config is loader.load("router.config.yaml")  # True until the file changes
    """

    def __init__(self) -> None:
        self._cache: dict[Path, _CacheEntry] = {}
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.parse_count = 0  # Number of actual file parses, for diagnostics

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    def load(self, path: str | Path) -> RouterConfig:
        """Load and validate the configuration at ``path``.

        Raises:
            ConfigError: file missing, unparseable or structurally invalid.
        """
        resolved = Path(path).expanduser().resolve()

        with self._lock_for(resolved):
            try:
                mtime_ns = resolved.stat().st_mtime_ns
            except FileNotFoundError:
                raise ConfigError(
                    f"Configuration file not found: {resolved}", file=str(resolved))

            entry = self._cache.get(resolved)
            if entry is not None and entry.mtime_ns == mtime_ns:
                return entry.config

            try:
                raw = yaml.safe_load(resolved.read_text(encoding="utf-8"))
            except yaml.YAMLError as e:
                raise ConfigError(
                    f"Failed to parse configuration: {e}", file=str(resolved)) from e
            except OSError as e:
                raise ConfigError(
                    f"Failed to read configuration: {e}", file=str(resolved)) from e

            config = parse_config(raw, file=str(resolved))
            self.parse_count += 1
            self._cache[resolved] = _CacheEntry(mtime_ns=mtime_ns, config=config)
            logger.info(
                f"Loaded router config {resolved} "
                f"(profile '{config.active_profile}', {len(config.profiles)} profile(s))")
            return config

    def invalidate(self, path: str | Path | None = None) -> None:
        """Drop the cached entry for ``path``, or every entry."""
        if path is None:
            self._cache.clear()
            return
        self._cache.pop(Path(path).expanduser().resolve(), None)

    def is_cached(self, path: str | Path) -> bool:
        return Path(path).expanduser().resolve() in self._cache

    def save(self, config: RouterConfig, path: str | Path) -> Path:
        """Serialize ``config`` to YAML at ``path``."""
        target = Path(path).expanduser().resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        with self._lock_for(target):
            target.write_text(
                yaml.safe_dump(config.to_dict(), sort_keys=False, indent=2),
                encoding="utf-8",
            )
            self._cache.pop(target, None)
        return target

    def create_default(self, path: str | Path) -> Path:
        """Write the default configuration to ``path``."""
        target = self.save(default_config(), path)
        logger.info(f"Created default router config at {target}")
        return target

    def load_or_create(self, path: str | Path) -> RouterConfig:
        """Load ``path``, bootstrapping a default config if it does not exist."""
        if not Path(path).expanduser().exists():
            self.create_default(path)
        return self.load(path)

    def watch(
        self,
        path: str | Path,
        callback: Callable[[RouterConfig], None],
        interval: float = 1.0,
    ) -> "ConfigWatcher":
        """Create a watcher that reloads ``path`` when it changes.

        Call ``start()`` on the result from inside a running event loop.
        """
        return ConfigWatcher(self, Path(path), callback, interval=interval)


class ConfigWatcher:
    """Polls a config file's modification time and reloads on change.

    Reload errors are logged and the previous configuration stays in
    effect; the callback only sees configurations that validated.
    """

    def __init__(
        self,
        loader: ConfigLoader,
        path: Path,
        callback: Callable[[RouterConfig], None],
        interval: float = 1.0,
    ):
        self.loader = loader
        self.path = path.expanduser().resolve()
        self.callback = callback
        self.interval = interval
        self._task: asyncio.Task | None = None
        self._last_mtime: int | None = self._mtime()

    def _mtime(self) -> int | None:
        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.check()

    def check(self) -> bool:
        """Reload once if the file changed. Returns True if the callback ran."""
        mtime = self._mtime()
        if mtime is None or mtime == self._last_mtime:
            return False
        self._last_mtime = mtime

        self.loader.invalidate(self.path)
        try:
            config = self.loader.load(self.path)
        except ConfigError as e:
            logger.error(f"Error reloading configuration {self.path}: {e}")
            return False

        self.callback(config)
        return True
