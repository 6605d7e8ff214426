"""
IC_Libs - Imaging Cache Library Modules

On-demand image derivatives (crop, resize, watermark, rotate) with
filesystem-backed caching, organized into specialized sub-packages:

- GeometryLib: Image types, colors and geometry resolution
- BackendsLib: Interchangeable image engines (numpy, Pillow, ImageMagick)
- PipelineLib: Deferred operation queue and fluent pipelines
- CacheLib: Configuration, storage abstraction and the cache manager
"""

__version__ = "0.1.0"
