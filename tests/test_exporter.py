"""Tests for the UniformExporter module."""

import json

import numpy as np
import pytest

from shaderpulse.core.composer import UniformRecord
from shaderpulse.io.exporter import ManifestMetadata, UniformExporter


class TestUniformExporter:
    """Tests for manifest serialization."""

    @pytest.fixture
    def records(self):
        return [
            UniformRecord(time=i / 60, energy=i / 10, color1=(1.0, 0.123456, 0.0))
            for i in range(10)
        ]

    @pytest.fixture
    def metadata(self):
        return ManifestMetadata(fps=60, duration=10 / 60, n_frames=10, bpm=120.0)

    def test_build_manifest_structure(self, records, metadata):
        manifest = UniformExporter().build_manifest(records, metadata)

        assert set(manifest) == {"metadata", "frames"}
        assert manifest["metadata"]["fps"] == 60
        assert manifest["metadata"]["mode"] == "adaptive"
        assert len(manifest["frames"]) == manifest["metadata"]["n_frames"]

    def test_frame_fields(self, records, metadata):
        frame = UniformExporter().build_manifest(records, metadata)["frames"][3]

        assert frame["frame_index"] == 3
        for field in UniformRecord().as_dict():
            assert field in frame, f"Missing field: {field}"
        assert frame["use_color_controls"] is True
        assert isinstance(frame["color1"], list)

    def test_precision_parameter(self, records, metadata):
        """Precision should limit decimal places."""
        frame = UniformExporter(precision=2).build_manifest(records, metadata)["frames"][0]

        assert frame["color1"] == [1.0, 0.12, 0.0]

    def test_export_json(self, records, metadata, tmp_path):
        output_path = tmp_path / "uniforms.json"
        result_path = UniformExporter().export_json(records, metadata, output_path)

        assert result_path.exists()
        with open(result_path) as f:
            loaded = json.load(f)
        assert loaded["metadata"]["bpm"] == 120.0
        assert len(loaded["frames"]) == 10

    def test_export_numpy(self, records, metadata, tmp_path):
        output_path = tmp_path / "uniforms.npz"
        result_path = UniformExporter().export_numpy(records, metadata, output_path)

        assert result_path.exists()
        data = np.load(result_path)
        assert data["energy"].shape == (10,)
        assert data["color1"].shape == (10, 3)
        assert data["use_color_controls"].dtype == bool
        assert int(data["n_frames"]) == 10
