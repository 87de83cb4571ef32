"""Pipeline orchestrators for the Timeline Render Service."""

from app.pipelines.render_pipeline import RenderPipeline
from app.pipelines.run_render import main

__all__ = ["RenderPipeline", "main"]
