"""
Fluent builder for multi-step derivatives.

Example:
    >>> ref = (
    ...     manager.pipeline("photos/cat.jpg", "photos/cat-card.png")
    ...     .crop(10)
    ...     .resize(300, 200, pad=True)
    ...     .watermark("/srv/logo.png", "right", "bottom", 8)
    ...     .run()
    ... )
"""

from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from IC_Libs.GeometryLib.image_types import XPosition, YPosition

# Step applied to an ImageHandle
Step = Callable[[Any], Any]


class ImagePipeline:
    """
    Collects steps and hands them to CacheManager.make() as one callback.

    Steps only queue operations on the handle; the manager runs the queue
    once all steps were applied.
    """

    def __init__(self, manager: Any, source: str, derivative: str, force: bool = False):
        self.manager = manager
        self.source = source
        self.derivative = derivative
        self._force = force
        self._steps: List[Step] = []

    @property
    def steps(self) -> List[Step]:
        return list(self._steps)

    def force(self, force: bool = True) -> "ImagePipeline":
        self._force = force
        return self

    def then(self, callback: Step) -> "ImagePipeline":
        if not callable(callback):
            raise ValueError(f"callback must be callable, got {type(callback)}")
        self._steps.append(callback)
        return self

    def call(self, callback: Step) -> "ImagePipeline":
        return self.then(callback)

    def crop(self, x1, y1=None, x2=None, y2=None, add_padding: bool = False) -> "ImagePipeline":
        return self.then(lambda handle: handle.crop(x1, y1, x2, y2, add_padding))

    def resize(self, width, height=None, keep_ratio: bool = True, pad: bool = False) -> "ImagePipeline":
        return self.then(lambda handle: handle.resize(width, height, keep_ratio, pad))

    def watermark(
        self,
        overlay_path: Union[str, Path],
        x_position=XPosition.RIGHT,
        y_position=YPosition.BOTTOM,
        x_pad: int = 0,
        y_pad: Optional[int] = None,
    ) -> "ImagePipeline":
        overlay = Path(overlay_path)
        return self.then(
            lambda handle: handle.watermark(overlay, x_position, y_position, x_pad, y_pad)
        )

    def rotate(self, degrees: int) -> "ImagePipeline":
        return self.then(lambda handle: handle.rotate(degrees))

    def run(self):
        """
        Build (or reuse) the derivative.

        Returns:
            DerivativeReference from CacheManager.make()
        """
        steps = list(self._steps)

        def apply(handle):
            for step in steps:
                step(handle)

        return self.manager.make(self.source, self.derivative, apply, self._force)
