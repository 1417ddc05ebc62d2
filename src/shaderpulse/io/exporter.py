"""
Uniform manifest serialization.

Exports the per-frame uniform records produced by a replay to JSON for
renderers and offline inspection, or to a compressed NumPy archive.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence, Union

import numpy as np

from shaderpulse.core.composer import UniformRecord


@dataclass
class ManifestMetadata:
    """Metadata header for the uniform manifest."""

    fps: int
    duration: float
    n_frames: int
    mode: str = "adaptive"
    policy: str = "strobe"
    bpm: float | None = None
    schema_version: str = "1.0"


class UniformExporter:
    """
    Exports uniform records to a JSON manifest.

    Each frame holds every field of a UniformRecord; colors are written as
    ``[r, g, b]`` lists.
    """

    def __init__(self, precision: int = 4):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision

    def _round(self, value: float) -> float:
        """Round to configured precision."""
        return round(float(value), self.precision)

    def _build_frame(self, index: int, record: UniformRecord) -> dict[str, Any]:
        frame: dict[str, Any] = {"frame_index": index}
        for key, value in record.as_dict().items():
            if isinstance(value, bool):
                frame[key] = value
            elif isinstance(value, (tuple, list)):
                frame[key] = [self._round(c) for c in value]
            else:
                frame[key] = self._round(value)
        return frame

    def build_manifest(
        self,
        records: Sequence[UniformRecord],
        metadata: ManifestMetadata,
    ) -> dict[str, Any]:
        """
        Build the complete manifest dictionary.

        Args:
            records: Per-frame uniform records, in order.
            metadata: Header values.

        Returns:
            Manifest dictionary ready for serialization.
        """
        return {
            "metadata": {
                "fps": metadata.fps,
                "duration": self._round(metadata.duration),
                "n_frames": metadata.n_frames,
                "mode": metadata.mode,
                "policy": metadata.policy,
                "bpm": None if metadata.bpm is None else self._round(metadata.bpm),
                "schema_version": metadata.schema_version,
            },
            "frames": [self._build_frame(i, r) for i, r in enumerate(records)],
        }

    def export_json(
        self,
        records: Sequence[UniformRecord],
        metadata: ManifestMetadata,
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """
        Export the manifest to a JSON file.

        Returns:
            Path to written file.
        """
        manifest = self.build_manifest(records, metadata)
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=indent)

        return output_path

    def export_numpy(
        self,
        records: Sequence[UniformRecord],
        metadata: ManifestMetadata,
        output_path: Union[str, Path],
    ) -> Path:
        """
        Export records as a NumPy .npz archive.

        Scalars become 1-D columns, colors ``(n_frames, 3)`` arrays.

        Returns:
            Path to written file.
        """
        output_path = Path(output_path)

        columns: dict[str, list] = {}
        for record in records:
            for key, value in record.as_dict().items():
                columns.setdefault(key, []).append(value)

        arrays = {}
        for key, values in columns.items():
            dtype = bool if key == "use_color_controls" else np.float64
            arrays[key] = np.asarray(values, dtype=dtype)

        np.savez_compressed(
            output_path,
            fps=metadata.fps,
            n_frames=metadata.n_frames,
            **arrays,
        )

        return output_path
