"""Pydantic data models for images, annotations and training examples."""

import numpy as np
from pydantic import BaseModel, field_validator, model_validator


class BoundingBox(BaseModel):
    """Axis-aligned box in pixel coordinates; ``right`` and ``bottom`` are exclusive."""

    left: float
    top: float
    right: float
    bottom: float

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _ordered(self) -> "BoundingBox":
        if self.right < self.left or self.bottom < self.top:
            raise ValueError(
                f"Box corners out of order: ({self.left}, {self.top}, {self.right}, {self.bottom})"
            )
        return self

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return self.width * self.height


class ImageFeatures(BaseModel):
    """Visual-word features of one image.

    ``points`` has shape ``(k, 2)`` holding ``(x, y)`` positions and ``words``
    has shape ``(k,)`` holding the visual word index of each point.
    """

    name: str
    width: int
    height: int
    points: np.ndarray
    words: np.ndarray

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @field_validator("width", "height")
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("image sides must be > 0")
        return v

    @model_validator(mode="after")
    def _validate_shapes(self) -> "ImageFeatures":
        if not isinstance(self.points, np.ndarray) or self.points.ndim != 2 or self.points.shape[1] != 2:
            raise ValueError("points must be a numpy.ndarray of shape (k, 2)")
        if not isinstance(self.words, np.ndarray) or self.words.ndim != 1:
            raise ValueError("words must be a 1-D numpy.ndarray")
        if len(self.words) != len(self.points):
            raise ValueError("points and words must have the same length")
        return self

    @property
    def num_points(self) -> int:
        return len(self.words)


class Example(BaseModel):
    """An image paired with one annotated object box."""

    image: ImageFeatures
    box: BoundingBox

    model_config = {"frozen": True, "arbitrary_types_allowed": True}
