"""Badge discovery and slot-based selection"""

import logging
import os
import random
import re
import threading
import time

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".gif", ".png")
DEFAULT_DISCOVERY_INTERVAL = 300
DEFAULT_TIME_WINDOW = 2

SLOT_PATTERN = re.compile(r"[+-]?[0-9]+")


class BadgeError(Exception):
    """Base error for anything that stops a badge from being served"""

    status_code = 500
    message = "Badge error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message is not None:
            self.message = message


class DiscoveryError(BadgeError):
    """The badge directory could not be scanned"""

    message = "Badge discovery failed"


class EmptyCatalogError(BadgeError):
    """No eligible badges are known"""

    status_code = 404
    message = "No badges available"


class SelectionError(BadgeError):
    """The selector reached a state its guards should rule out"""

    message = "Error selecting badge"


class FileMissingError(BadgeError):
    """A catalogued badge is gone from disk"""

    status_code = 404

    def __init__(self, filename: str):
        super().__init__(f"Badge file not found: {filename}")
        self.filename = filename


def is_badge_filename(name: str) -> bool:
    """Check the name against the allowed image extensions, ignoring case"""
    return name.lower().endswith(IMAGE_EXTENSIONS)


def scan_badges(directory: str) -> list[str]:
    """List eligible badge files in `directory`, sorted by code point"""
    try:
        names = os.listdir(directory)
    except OSError as exc:
        raise DiscoveryError(f"Cannot scan {directory}: {exc}") from exc

    return sorted(
        name
        for name in names
        if is_badge_filename(name) and os.path.isfile(os.path.join(directory, name))
    )


class BadgeCatalog:
    """Sorted badge filenames for one directory, rebuilt when stale.

    The snapshot is an immutable tuple swapped wholesale under the lock, so
    readers see either the old list or the new one. Scans are serialized by a
    separate refresh lock so an older listing never replaces a newer one, and
    readers only wait for the swap.
    """

    def __init__(self, directory: str, interval: float = DEFAULT_DISCOVERY_INTERVAL):
        self._directory = directory
        self._interval = interval
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._badges: tuple[str, ...] = ()
        self._last_refresh: float | None = None

    @property
    def directory(self) -> str:
        return self._directory

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def last_refresh(self) -> float | None:
        with self._lock:
            return self._last_refresh

    def __len__(self) -> int:
        with self._lock:
            return len(self._badges)

    def refresh(self, now: float | None = None) -> bool:
        """Rescan the directory; keep the previous snapshot on failure"""
        with self._refresh_lock:
            logger.info("Discovering badges in %s...", self._directory)
            try:
                discovered = tuple(scan_badges(self._directory))
            except DiscoveryError:
                logger.exception(
                    "Badge discovery failed, keeping %d known badges", len(self)
                )
                return False

            with self._lock:
                self._badges = discovered
                self._last_refresh = time.time() if now is None else now

        if discovered:
            logger.info("Discovered %d badges: %s", len(discovered), list(discovered))
        else:
            logger.warning("No .gif or .png badges found in %s", self._directory)
        return True

    def is_stale(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        with self._lock:
            if not self._badges or self._last_refresh is None:
                return True
            return now - self._last_refresh > self._interval

    def refresh_if_stale(self, now: float | None = None) -> bool:
        """Refresh when the snapshot is empty or older than the interval"""
        if not self.is_stale(now):
            return False
        return self.refresh(now)

    def snapshot(self) -> tuple[str, ...]:
        with self._lock:
            return self._badges

    get = snapshot

    def path_for(self, filename: str) -> str:
        return os.path.join(self._directory, filename)


def time_seed(now: float, window: int = DEFAULT_TIME_WINDOW) -> int:
    """Seed that stays constant for `window` seconds of wall-clock time"""
    if window < 1:
        raise ValueError(f"time window must be at least 1 second, got {window}")
    return int(now) // window


def slot_permutation(size: int, seed: int) -> list[int]:
    """Shuffle catalog indices reproducibly for a seed"""
    indices = list(range(size))
    random.Random(seed).shuffle(indices)
    return indices


def parse_slot(raw) -> int:
    """Normalize a slot query value; anything invalid becomes slot 1"""
    if not isinstance(raw, str) or not SLOT_PATTERN.fullmatch(raw):
        return 1
    slot = int(raw)
    return slot if slot >= 1 else 1


def select_badge(badges, slot: int, seed: int) -> str:
    """Pick the badge shown in `slot` for the window identified by `seed`.

    Slots 1..N map to N distinct badges within a window, and slots beyond N
    wrap around modulo the catalog size.
    """
    if not badges:
        raise EmptyCatalogError()

    permutation = slot_permutation(len(badges), seed)
    if len(permutation) != len(badges):
        raise SelectionError(
            f"Permutation of {len(permutation)} indices for {len(badges)} badges"
        )

    index = (slot - 1) % len(permutation)
    if index < len(permutation):
        return badges[permutation[index]]

    logger.warning("Slot index %d out of bounds, serving first available badge", index)
    return badges[0]


def content_type_for(filename: str) -> str:
    if filename.lower().endswith(".png"):
        return "image/png"
    return "image/gif"
