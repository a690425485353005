from timeline_render.render.asset_resolver import AssetResolver, ResolvedAsset
from timeline_render.render.compiler import GraphCompiler
from timeline_render.render.emitter import CommandEmitter
from timeline_render.render.executor import RenderJobExecutor
from timeline_render.render.graph import CompiledCommand, GraphNode, InputSpec
from timeline_render.render.merge_fields import MergeFieldResolver
from timeline_render.render.validator import TimelineValidator

__all__ = [
    "AssetResolver",
    "ResolvedAsset",
    "GraphCompiler",
    "CommandEmitter",
    "RenderJobExecutor",
    "CompiledCommand",
    "GraphNode",
    "InputSpec",
    "MergeFieldResolver",
    "TimelineValidator",
]
