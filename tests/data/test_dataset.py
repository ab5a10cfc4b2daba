import numpy as np
import pytest

from crf_learning.data.dataset import LocalizationDataset
from crf_learning.data.models import BoundingBox
from crf_learning.persistence.weights import save_weights
from crf_learning.utils.exceptions import DataFileNotFoundError, DataFormatError, ErrorKind


def test_load_images_and_boxes(dataset_files):
    dataset = LocalizationDataset()
    dataset.load_images(dataset_files["images"], dataset_files["subset"])
    dataset.load_bboxes(dataset_files["bboxes"])

    assert len(dataset) == 2
    assert [image.name for image in dataset.images] == ["cow1", "cow2"]
    image = dataset.image("cow1")
    assert (image.width, image.height) == (16, 12)
    assert image.points.shape == (25, 2)
    assert image.words.dtype == np.int64

    # "cow2.png" resolves to "cow2"; "unknown" is not in the subset
    assert dataset.boxes_for("cow2") == [
        BoundingBox(left=4, top=2, right=16, bottom=12),
        BoundingBox(left=0, top=0, right=4, bottom=4),
    ]
    assert len(dataset.examples) == 3
    assert dataset.num_words == max(int(i.words.max()) for i in dataset.images) + 1


def test_from_paths_attaches_weights(dataset_files):
    weights_path = save_weights(np.array([0.5, -0.5]), dataset_files["root"] / "w.txt")
    dataset = LocalizationDataset.from_paths(
        dataset_files["images"], dataset_files["subset"], dataset_files["bboxes"], weights_path=weights_path
    )
    np.testing.assert_array_equal(dataset.weights, [0.5, -0.5])


def test_missing_subset_file(dataset_files):
    missing = dataset_files["root"] / "nope.txt"
    with pytest.raises(DataFileNotFoundError) as info:
        LocalizationDataset().load_images(dataset_files["images"], missing)
    assert info.value.path == str(missing)
    assert info.value.kind is ErrorKind.FILE_NOT_FOUND
    assert isinstance(info.value, FileNotFoundError)


def test_missing_feature_file(dataset_files):
    (dataset_files["images"] / "cow2.txt").unlink()
    with pytest.raises(DataFileNotFoundError, match="cow2.txt"):
        LocalizationDataset().load_images(dataset_files["images"], dataset_files["subset"])


def test_missing_annotation_file(dataset_files):
    with pytest.raises(DataFileNotFoundError):
        LocalizationDataset().load_bboxes(dataset_files["root"] / "missing.ess")


def test_inverted_box_is_rejected(dataset_files):
    dataset = LocalizationDataset()
    dataset.load_images(dataset_files["images"], dataset_files["subset"])
    bad = dataset_files["root"] / "bad.ess"
    bad.write_text("cow1 8 0 0 8\n")
    with pytest.raises(DataFormatError):
        dataset.load_bboxes(bad)


def test_negative_word_is_rejected(dataset_files):
    (dataset_files["images"] / "cow1.txt").write_text("1.0 2.0 -3\n")
    with pytest.raises(DataFormatError):
        LocalizationDataset().load_images(dataset_files["images"], dataset_files["subset"])


def test_empty_feature_file_gives_image_without_points(dataset_files):
    (dataset_files["images"] / "cow1.txt").write_text("")
    dataset = LocalizationDataset()
    dataset.load_images(dataset_files["images"], dataset_files["subset"])
    assert dataset.image("cow1").num_points == 0
