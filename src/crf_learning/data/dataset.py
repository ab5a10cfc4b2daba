"""Loading of visual-word features and object annotations.

File formats (whitespace separated, no header):

* subset list: ``name width height`` per image;
* feature file ``<images>/<name>.txt``: ``x y word`` per interest point;
* annotation file: ``name left top right bottom`` per object box. An image may
  have several boxes; boxes of images outside the subset are ignored.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import pandera.errors as pe

from ..persistence.weights import load_weights
from ..utils.exceptions import DataFileNotFoundError, DataFormatError
from .models import BoundingBox, Example, ImageFeatures
from .schema import BBOX_SCHEMA, FEATURE_SCHEMA, SUBSET_SCHEMA

logger = logging.getLogger(__name__)

FEATURE_SUFFIX = ".txt"


def _read_table(path: Path, columns: list[str], schema, dtype=None, allow_empty=False) -> pd.DataFrame:
    if not path.is_file():
        logger.error("Data file not found: %s", path)
        raise DataFileNotFoundError(path)
    try:
        frame = pd.read_csv(path, sep=r"\s+", header=None, names=columns, dtype=dtype, comment="#")
    except pd.errors.EmptyDataError:
        if not allow_empty:
            raise DataFormatError(f"{path} is empty") from None
        frame = pd.DataFrame({column: pd.Series(dtype=float) for column in columns})
    except (pd.errors.ParserError, ValueError) as exc:
        raise DataFormatError(f"Could not parse {path}: {exc}") from exc
    try:
        return schema.validate(frame)
    except (pe.SchemaError, pe.SchemaErrors) as exc:
        raise DataFormatError(f"Invalid contents in {path}: {exc}") from exc


class LocalizationDataset:
    """Images with visual-word features and their annotated object boxes.

    Images keep the order of the subset list; examples are ``(image, box)``
    pairs in image order, then annotation order.
    """

    def __init__(
        self,
        images: list[ImageFeatures] | None = None,
        boxes: dict[str, list[BoundingBox]] | None = None,
    ):
        self._images: dict[str, ImageFeatures] = {image.name: image for image in images or []}
        self._boxes: dict[str, list[BoundingBox]] = {name: list(b) for name, b in (boxes or {}).items()}
        self.weights: np.ndarray | None = None

    @classmethod
    def from_paths(
        cls,
        images_path: str | Path,
        subset_file: str | Path,
        bboxes_file: str | Path,
        weights_path: str | Path | None = None,
    ) -> "LocalizationDataset":
        """Load images and boxes, and optionally a stored weight vector."""
        dataset = cls()
        dataset.load_images(images_path, subset_file)
        dataset.load_bboxes(bboxes_file)
        if weights_path is not None:
            dataset.weights = load_weights(weights_path)
        return dataset

    def load_images(self, path: str | Path, subset_file: str | Path) -> None:
        """Load the feature file of every image named in ``subset_file``.

        Raises:
            DataFileNotFoundError: If the subset list or a feature file is missing.
            DataFormatError: If a file does not match its expected layout.

        """
        path = Path(path)
        subset = _read_table(Path(subset_file), ["name", "width", "height"], SUBSET_SCHEMA, dtype={"name": str})
        images = {}
        for row in subset.itertuples(index=False):
            features = _read_table(
                path / f"{row.name}{FEATURE_SUFFIX}", ["x", "y", "word"], FEATURE_SCHEMA, allow_empty=True
            )
            images[row.name] = ImageFeatures(
                name=row.name,
                width=int(row.width),
                height=int(row.height),
                points=features[["x", "y"]].to_numpy(dtype=np.float64),
                words=features["word"].to_numpy(dtype=np.int64),
            )
        self._images = images
        logger.info("Loaded features of %d image(s) from %s", len(images), path)

    def load_bboxes(self, path: str | Path) -> None:
        """Load object boxes for the loaded images.

        Raises:
            DataFileNotFoundError: If the annotation file is missing.
            DataFormatError: If the annotation file is malformed.

        """
        frame = _read_table(
            Path(path), ["name", "left", "top", "right", "bottom"], BBOX_SCHEMA, dtype={"name": str}
        )
        boxes: dict[str, list[BoundingBox]] = {}
        skipped = 0
        for row in frame.itertuples(index=False):
            name = self._resolve_name(row.name)
            if name is None:
                skipped += 1
                continue
            boxes.setdefault(name, []).append(
                BoundingBox(left=row.left, top=row.top, right=row.right, bottom=row.bottom)
            )
        self._boxes = boxes
        if skipped:
            logger.debug("Ignored %d box(es) of images outside the subset", skipped)
        unannotated = [name for name in self._images if name not in boxes]
        if unannotated:
            logger.warning("%d image(s) have no annotated box, e.g. %s", len(unannotated), unannotated[0])
        logger.info("Loaded %d box(es) from %s", sum(len(b) for b in boxes.values()), path)

    def _resolve_name(self, name: str) -> str | None:
        if name in self._images:
            return name
        stem = Path(name).stem
        return stem if stem in self._images else None

    @property
    def images(self) -> list[ImageFeatures]:
        return list(self._images.values())

    def image(self, name: str) -> ImageFeatures:
        return self._images[name]

    def boxes_for(self, name: str) -> list[BoundingBox]:
        return list(self._boxes.get(name, []))

    @property
    def examples(self) -> list[Example]:
        return [
            Example(image=image, box=box)
            for name, image in self._images.items()
            for box in self._boxes.get(name, [])
        ]

    @property
    def num_words(self) -> int:
        """One more than the largest visual word index seen, 0 without points."""
        largest = [int(image.words.max()) for image in self._images.values() if image.num_points]
        return max(largest) + 1 if largest else 0

    def __len__(self) -> int:
        return len(self._images)
