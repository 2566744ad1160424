"""
Larm -- Interactive Workspace
One loaded image with pre-filled proxy and loupe tiers, plus the Studio
that owns the single current workspace and its render coordinator.

Proxy and loupe buffers are reused across renders. That is only safe
because every interactive render goes through the Studio's coordinator,
which runs one render at a time.
"""

import logging
import threading
import time
from pathlib import Path

from core.config import DEBOUNCE_MS, EXPORT_FILENAME, LOUPE_SIZE, PROXY_WIDTH
from core.engine import GrainEngine, render_tier
from core.imaging import SourceImage, decode_image, save_png
from core.params import EffectParameters
from core.render import RenderCoordinator, RenderRequest, RenderResult
from core.tiers import Tier, TierKind, build_crop, build_loupe, build_original, build_proxy

log = logging.getLogger(__name__)


class Workspace:
    """A SourceImage and its derived tiers. Replaced wholesale on reload."""

    def __init__(self, source: SourceImage, proxy: Tier, loupe: Tier, loupe_size: int = LOUPE_SIZE):
        self.source = source
        self.proxy = proxy
        self.loupe = loupe
        self.loupe_size = loupe_size

    @classmethod
    def load(cls, source, proxy_width: int = PROXY_WIDTH, loupe_size: int = LOUPE_SIZE) -> "Workspace":
        """Decode source (path, bytes or SourceImage) and build its tiers.

        Raises:
            DecodeFailure: If the image cannot be read.
        """
        if not isinstance(source, SourceImage):
            source = decode_image(source)
        start = time.perf_counter()
        proxy = build_proxy(source, proxy_width)
        loupe = build_loupe(source, loupe_size)
        log.info(
            "Workspace %s: original %dx%d, proxy %dx%d (scale %.3f), loupe %dx%d in %.0fms",
            source.name or "<bytes>", source.width, source.height,
            proxy.width, proxy.height, proxy.scale_factor,
            loupe.width, loupe.height, (time.perf_counter() - start) * 1000,
        )
        return cls(source, proxy, loupe, loupe_size)

    @property
    def original_size(self) -> tuple[int, int]:
        return self.source.size

    def tier_for(self, request: RenderRequest) -> Tier:
        if request.mode is TierKind.PROXY:
            return self.proxy
        if request.mode is TierKind.LOUPE:
            return self.loupe
        if request.mode is TierKind.CROP:
            x, y = request.focus or (0.5, 0.5)
            return build_crop(self.source, x, y, self.loupe_size)
        raise ValueError(f"Cannot preview tier '{request.mode.value}'; use export()")

    def render(self, request: RenderRequest, engine: GrainEngine):
        """Render the requested preview tier in place and return the image."""
        return render_tier(engine, self.tier_for(request), request.params)

    def export(self, params: EffectParameters, engine: GrainEngine):
        """Full-resolution render into a freshly built original tier."""
        tier = build_original(self.source)
        return render_tier(engine, tier, params)

    def export_to(self, output_path, params: EffectParameters, engine: GrainEngine) -> Path:
        image = self.export(params, engine)
        path = save_png(image, output_path)
        log.info("Exported %dx%d to %s", image.width, image.height, path)
        return path


class Studio:
    """Holds the current Workspace and coalesces its preview renders.

    Loading a new image swaps the workspace and discards pending or
    in-flight results for the old one.
    """

    def __init__(self, engine: GrainEngine, proxy_width: int = PROXY_WIDTH,
                 loupe_size: int = LOUPE_SIZE, debounce: float = DEBOUNCE_MS / 1000.0):
        self.engine = engine
        self.proxy_width = proxy_width
        self.loupe_size = loupe_size
        self._lock = threading.Lock()
        self._workspace: Workspace | None = None
        self.coordinator = RenderCoordinator(self._render, debounce=debounce)

    @property
    def workspace(self) -> Workspace | None:
        with self._lock:
            return self._workspace

    def load(self, source) -> Workspace:
        workspace = Workspace.load(source, self.proxy_width, self.loupe_size)
        with self._lock:
            self._workspace = workspace
            self.coordinator.reset()
        return workspace

    def request(self, params: EffectParameters, mode: TierKind = TierKind.PROXY,
                focus: tuple[float, float] | None = None) -> int:
        """Submit a preview request. Returns its sequence number."""
        return self.coordinator.submit(RenderRequest(params=params, mode=mode, focus=focus))

    def latest(self) -> RenderResult | None:
        return self.coordinator.latest()

    def export(self, params: EffectParameters, output_path=EXPORT_FILENAME) -> Path:
        workspace = self.workspace
        if workspace is None:
            raise RuntimeError("No image loaded")
        return workspace.export_to(output_path, params, self.engine)

    def close(self) -> None:
        self.coordinator.close()

    def _render(self, request: RenderRequest):
        workspace = self.workspace
        if workspace is None:
            raise RuntimeError("No image loaded")
        return workspace.render(request, self.engine)
