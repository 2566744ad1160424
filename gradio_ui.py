#!/usr/bin/env python3
"""
Larm -- Gradio Visual Interface
Load a photo, drag the grain controls, watch a live preview, export at
full resolution. Launches at http://localhost:7860

Slider and view changes only submit render requests; the Studio's
coordinator decides when the engine actually runs. A timer polls the
result slot and repaints only when a newer render has been published.
"""

import os
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import gradio as gr

from core.config import EXPORT_FILENAME, UI_PORT
from core.engine import load_engine
from core.errors import DecodeFailure
from core.params import EffectParameters, INTEGER_PARAMS, PARAM_ORDER, PARAM_RANGES, PARAM_SECTIONS
from core.safety import SafetyError, validate_params
from core.tiers import TierKind
from core.workspace import Studio

VIEW_FIT = "Fit"
VIEW_LOUPE = "100%"
POLL_SECONDS = 0.1

_studio: Studio | None = None


def view_mode(view: str) -> TierKind:
    return TierKind.LOUPE if view == VIEW_LOUPE else TierKind.PROXY


def params_from_values(values) -> EffectParameters:
    """Slider values in PARAM_ORDER -> validated EffectParameters."""
    data = dict(zip(PARAM_ORDER, values))
    return validate_params(EffectParameters(**data))


def submit_render(view, *values):
    """Queue a preview for the current controls. Returns a status line."""
    if _studio is None or _studio.workspace is None:
        return "Select an image to begin"
    try:
        params = params_from_values(values)
    except SafetyError as e:
        return f"Error: {e}"
    _studio.request(params, view_mode(view))
    return "Rendering preview…"


def load_image(image_path, view, *values):
    """Build a new workspace for the dropped file and queue its first render."""
    if _studio is None:
        return "Engine not loaded"
    if not image_path:
        return "Select an image to begin"
    try:
        workspace = _studio.load(image_path)
    except (DecodeFailure, FileNotFoundError) as e:
        return f"Error: {e}"
    submit_render(view, *values)
    width, height = workspace.original_size
    return f"Loaded – {width}×{height}"


def poll_result(shown_seq):
    """Return (preview, status, seq); no-op updates if nothing new was published."""
    result = _studio.latest() if _studio is not None else None
    if result is None or result.seq <= shown_seq:
        return gr.update(), gr.update(), shown_seq
    label = "100% Loupe" if result.request.mode is TierKind.LOUPE else "Fit View"
    status = f"{label} | {result.elapsed * 1000:.0f}ms"
    return result.image, status, result.seq


def export_image(*values):
    """Render the original at full resolution and offer it as a download."""
    if _studio is None or _studio.workspace is None:
        return None, "Select an image to begin"
    try:
        params = params_from_values(values)
        output = Path(tempfile.mkdtemp(prefix="larm_")) / EXPORT_FILENAME
        path = _studio.export(params, output)
    except Exception as e:
        return None, f"Export error: {e}"
    return str(path), f"Saved to {path.name}"


def _slider(name: str, label: str, default: float):
    lo, hi = PARAM_RANGES[name]
    step = 1 if name in INTEGER_PARAMS else round((hi - lo) / 1000, 4)
    return gr.Slider(label=label, minimum=lo, maximum=hi, step=step, value=default)


def build_ui() -> gr.Blocks:
    defaults = EffectParameters()
    with gr.Blocks(title="Larm -- Film Grain") as app:
        gr.Markdown("# Larm\n### 3D film grain")
        shown_seq = gr.State(0)

        with gr.Row():
            with gr.Column(scale=1):
                sliders = []
                for section, fields in PARAM_SECTIONS:
                    gr.Markdown(f"**{section}**")
                    for name, label in fields:
                        sliders.append(_slider(name, label, getattr(defaults, name)))

            with gr.Column(scale=2):
                image_input = gr.Image(label="Drop Image Here", type="filepath", height=160)
                view = gr.Radio(choices=[VIEW_FIT, VIEW_LOUPE], value=VIEW_FIT, label="View")
                status_text = gr.Textbox(label="Status", value="Select an image to begin", interactive=False)
                preview = gr.Image(label="Preview", type="pil", interactive=False)
                export_btn = gr.Button("Export Full Resolution", variant="primary")
                export_file = gr.File(label="Export")

        controls = [view, *sliders]

        image_input.change(fn=load_image, inputs=[image_input, *controls], outputs=[status_text])
        for control in controls:
            control.change(fn=submit_render, inputs=controls, outputs=[status_text])

        gr.Timer(POLL_SECONDS).tick(
            fn=poll_result,
            inputs=[shown_seq],
            outputs=[preview, status_text, shown_seq],
        )
        export_btn.click(fn=export_image, inputs=sliders, outputs=[export_file, status_text])

    return app


def launch_ui(engine=None, port: int = UI_PORT, block: bool = True):
    """Bind the engine, build the Studio and serve the UI.

    Raises:
        EngineUnavailable: If no engine is given and the native one cannot load.
    """
    global _studio
    if _studio is None:
        _studio = Studio(engine or load_engine())
    app = build_ui()
    app.queue()
    app.launch(server_name="127.0.0.1", server_port=port, prevent_thread_lock=not block)
    return app


if __name__ == "__main__":
    from core.config import LOG_LEVEL
    from core.logging_config import setup_logging

    setup_logging(LOG_LEVEL)
    launch_ui()
