"""Main daemon entry point: periodic reconciliation and configuration reload."""

import logging
import os
import queue
import signal
import sys
import threading
from pathlib import Path

from uni_sync import reconcile
from uni_sync.config import DaemonConfig
from uni_sync.model import ConfigLoadError, ConfigSet, load_configs, save_configs
from uni_sync.temperature import list_available_sensors

log = logging.getLogger(__name__)

RECONCILE_INTERVAL = 5.0  # seconds between reconciliation passes
WATCH_INTERVAL = 1.0  # seconds between configuration directory scans


class ConfigWatcher(threading.Thread):
    """Polls a directory tree and posts a notification when any file changes.

    Runs on its own thread and never touches configuration or devices; the
    loop coalesces pending notifications into a single reload.
    """

    def __init__(
        self, directory: Path, notify: queue.SimpleQueue, stop: threading.Event,
    ) -> None:
        super().__init__(name="config-watcher", daemon=True)
        self._directory = directory
        self._notify = notify
        self._stop_event = stop
        self._snapshot = self.scan()

    def scan(self) -> dict[str, int]:
        """Return modification times of all files under the directory."""
        snapshot = {}
        for root, _dirs, files in os.walk(self._directory):
            for name in files:
                path = os.path.join(root, name)
                try:
                    snapshot[path] = os.stat(path).st_mtime_ns
                except OSError:
                    continue
        return snapshot

    def poll(self) -> bool:
        """Rescan once; post a notification and return True if anything changed."""
        snapshot = self.scan()
        if snapshot == self._snapshot:
            return False
        self._snapshot = snapshot
        log.debug("Change detected under %s", self._directory)
        self._notify.put_nowait(None)
        return True

    def run(self) -> None:
        while not self._stop_event.wait(WATCH_INTERVAL):
            self.poll()


class Daemon:
    """Applies the device configuration every RECONCILE_INTERVAL seconds."""

    def __init__(self, config: DaemonConfig, configs: ConfigSet) -> None:
        self._config_path = Path(config.config_path)
        self._configs = configs
        self._saved = configs
        self._mtime = self._file_mtime()
        self._file_broken = False
        self.stop = threading.Event()
        # SimpleQueue.put is reentrant, so the SIGHUP handler can never
        # deadlock against the loop draining the queue
        self.changes: queue.SimpleQueue = queue.SimpleQueue()

    @property
    def configs(self) -> ConfigSet:
        return self._configs

    def _on_shutdown(self, signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        log.info("Received %s, shutting down", sig_name)
        self.stop.set()

    def _on_reload(self, _signum: int, _frame: object) -> None:
        self.changes.put_nowait(None)

    def _drain_changes(self) -> bool:
        """Empty the notification queue; True if anything was pending."""
        pending = False
        while True:
            try:
                self.changes.get_nowait()
            except queue.Empty:
                return pending
            pending = True

    def _file_mtime(self) -> int | None:
        try:
            return self._config_path.stat().st_mtime_ns
        except OSError:
            return None

    def _file_changed(self) -> bool:
        """True if the file was modified since it was last loaded or saved."""
        return self._file_mtime() != self._mtime

    def _reload(self) -> None:
        log.info("Configuration or fan curve file changed, reloading")
        self._mtime = self._file_mtime()
        try:
            configs = load_configs(self._config_path)
        except ConfigLoadError as e:
            log.error("Failed to reload configuration, keeping current one: %s", e)
            self._file_broken = True
            return
        self._configs = configs
        self._saved = configs
        self._file_broken = False

    def _save(self) -> None:
        try:
            save_configs(self._config_path, self._configs)
        except OSError as e:
            log.warning("Failed to save configuration to %s: %s", self._config_path, e)
            return
        self._saved = self._configs
        self._mtime = self._file_mtime()

    def run_once(self) -> None:
        """Reload if needed, run one reconciliation pass and persist changes."""
        if self._drain_changes() or self._file_changed():
            self._reload()

        self._configs = reconcile.run(self._configs, self._config_path.parent)

        if self._configs == self._saved or self._file_broken:
            return

        # An edit made during the pass wins over our copy; it is loaded next pass
        if self._file_changed() or not self.changes.empty():
            log.info("%s was modified during the pass, not saving", self._config_path)
            return

        self._save()

    def run(self) -> None:
        """Main loop. Returns once shutdown has been requested."""
        log.info("Uni-sync service started (config: %s)", self._config_path)

        signal.signal(signal.SIGTERM, self._on_shutdown)
        signal.signal(signal.SIGINT, self._on_shutdown)
        signal.signal(signal.SIGHUP, self._on_reload)

        while not self.stop.is_set():
            self.run_once()
            self.stop.wait(RECONCILE_INTERVAL)

        log.info("Uni-sync service stopped")


def main() -> None:
    """Entry point."""
    try:
        config = DaemonConfig.load()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    if config.list_sensors:
        print("Available sensors:")
        for sensor in list_available_sensors():
            print(f"  {sensor}")
        return

    config.setup_logging()

    try:
        configs = load_configs(config.config_path)
    except ConfigLoadError as e:
        log.error("%s", e)
        sys.exit(1)

    daemon = Daemon(config, configs)
    watch_dir = Path(config.config_path).parent
    try:
        ConfigWatcher(watch_dir, daemon.changes, daemon.stop).start()
    except (OSError, RuntimeError) as e:
        log.error("Failed to watch %s: %s", watch_dir, e)
        sys.exit(1)

    daemon.run()


if __name__ == "__main__":
    main()
