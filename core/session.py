"""
Larm -- Session Store
Server-side registry of uploaded images, keyed by opaque session id.

Each session owns its SourceImage and proxy tier exclusively. Previews and
exports render into freshly allocated buffers per call, so any number of
requests against the same session can run concurrently. Sessions live
until removed; there is no eviction.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field

from core.config import LOUPE_SIZE, PROXY_WIDTH
from core.engine import GrainEngine, render_tier
from core.errors import SessionNotFound
from core.imaging import SourceImage, decode_image
from core.params import EffectParameters
from core.tiers import Tier, TierKind, build_crop, build_original, build_proxy

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Session:
    id: str
    source: SourceImage
    proxy: Tier
    created: float = field(default_factory=time.time)

    @property
    def width(self) -> int:
        return self.source.width

    @property
    def height(self) -> int:
        return self.source.height

    def proxy_image(self):
        """The unprocessed proxy, decoded from its input buffer."""
        return self.proxy.input_image()

    def preview(self, engine: GrainEngine, params: EffectParameters,
                mode: TierKind = TierKind.PROXY, x: float = 0.5, y: float = 0.5,
                crop_size: int = LOUPE_SIZE):
        """Render a proxy (grain scaled) or a native-resolution crop (unscaled)."""
        if mode is TierKind.PROXY:
            return render_tier(engine, self.proxy, params, fresh=True)
        if mode in (TierKind.LOUPE, TierKind.CROP):
            return render_tier(engine, build_crop(self.source, x, y, crop_size), params)
        raise ValueError(f"Unsupported preview mode: {mode.value}")

    def export(self, engine: GrainEngine, params: EffectParameters):
        """Full-resolution render with unscaled parameters."""
        return render_tier(engine, build_original(self.source), params)


class SessionStore:
    """Thread-safe id -> Session map. Callers need no extra locking."""

    def __init__(self, proxy_width: int = PROXY_WIDTH):
        self.proxy_width = proxy_width
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def store_image(self, data: bytes, name: str = "") -> Session:
        """Decode an upload, build its proxy and register a new session.

        Raises:
            DecodeFailure: If the bytes are not a readable image.
        """
        # Decode outside the lock; only the insert is serialized
        source = decode_image(data, name=name)
        proxy = build_proxy(source, self.proxy_width)
        session = Session(id=str(uuid.uuid4()), source=source, proxy=proxy)
        with self._lock:
            self._sessions[session.id] = session
        log.info(
            "Session %s: full=%dx%d, proxy=%dx%d",
            session.id, session.width, session.height, proxy.width, proxy.height,
        )
        return session

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        """Like get(), but raises SessionNotFound for unknown ids."""
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def remove(self, session_id: str) -> bool:
        """Drop a session. Returns False if it was not present."""
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            log.info("Session %s removed", session_id)
        return removed

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id) -> bool:
        with self._lock:
            return session_id in self._sessions
