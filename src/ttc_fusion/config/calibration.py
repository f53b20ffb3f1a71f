"""
Projection calibration for LiDAR-to-image projection.

Loads the three matrices (intrinsic P_rect, rectification R_rect, LiDAR-to-camera
extrinsic RT) once at startup and validates them. Malformed matrices are a
configuration error and abort the run.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import yaml

from ttc_fusion.gateway.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _as_matrix(value: Any, name: str) -> np.ndarray:
    try:
        matrix = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} is not numeric: {e}") from e
    if not np.all(np.isfinite(matrix)):
        raise ConfigurationError(f"{name} contains non-finite values")
    return matrix


def _to_homogeneous(matrix: np.ndarray, name: str) -> np.ndarray:
    """Pad a 3x3 or 3x4 matrix to 4x4 with a [0, 0, 0, 1] bottom row."""
    if matrix.shape == (4, 4):
        return matrix
    result = np.eye(4)
    if matrix.shape == (3, 3):
        result[:3, :3] = matrix
    elif matrix.shape == (3, 4):
        result[:3, :] = matrix
    else:
        raise ConfigurationError(f"{name} must be 3x3, 3x4 or 4x4, got {matrix.shape}")
    return result


@dataclass(frozen=True)
class ProjectionCalibration:
    """Validated projection matrices."""
    p_rect: np.ndarray   # (3, 4) intrinsic projection after rectification
    r_rect: np.ndarray   # (4, 4) rectifying rotation
    rt: np.ndarray       # (4, 4) LiDAR-to-camera rigid transform

    @classmethod
    def from_matrices(cls, p_rect, r_rect, rt) -> 'ProjectionCalibration':
        """
        Build and validate a calibration.

        Args:
            p_rect: 3x4 intrinsic matrix
            r_rect: 3x3 or 4x4 rectification matrix
            rt: 3x4 or 4x4 extrinsic matrix

        Raises:
            ConfigurationError: On wrong shapes, non-finite or degenerate matrices
        """
        p_rect = _as_matrix(p_rect, 'P_rect')
        if p_rect.shape != (3, 4):
            raise ConfigurationError(f"P_rect must be 3x4, got {p_rect.shape}")
        if np.linalg.matrix_rank(p_rect) < 3:
            raise ConfigurationError("P_rect is rank deficient")

        r_rect = _to_homogeneous(_as_matrix(r_rect, 'R_rect'), 'R_rect')
        rt = _to_homogeneous(_as_matrix(rt, 'RT'), 'RT')

        for name, matrix in (('R_rect', r_rect), ('RT', rt)):
            if not np.allclose(matrix[3], [0.0, 0.0, 0.0, 1.0]):
                raise ConfigurationError(f"{name} bottom row must be [0, 0, 0, 1]")
            if abs(np.linalg.det(matrix[:3, :3])) < 1e-9:
                raise ConfigurationError(f"{name} rotation block is singular")

        return cls(p_rect=p_rect, r_rect=r_rect, rt=rt)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ProjectionCalibration':
        """
        Build a calibration from a parsed YAML mapping.

        Expected keys: 'P_rect', 'R_rect' and either 'RT' or
        'velo_to_cam' with 'R' (3x3) and 'T' (3,).
        """
        if not isinstance(config, dict):
            raise ConfigurationError("Calibration must be a mapping")
        missing = [key for key in ('P_rect', 'R_rect') if key not in config]
        if missing:
            raise ConfigurationError(f"Calibration missing keys: {missing}")

        if 'RT' in config:
            rt = config['RT']
        elif 'velo_to_cam' in config:
            velo_to_cam = config['velo_to_cam'] or {}
            if 'R' not in velo_to_cam or 'T' not in velo_to_cam:
                raise ConfigurationError("velo_to_cam requires 'R' and 'T'")
            rotation = _as_matrix(velo_to_cam['R'], 'velo_to_cam.R')
            translation = _as_matrix(velo_to_cam['T'], 'velo_to_cam.T').reshape(-1)
            if rotation.shape != (3, 3) or translation.shape != (3,):
                raise ConfigurationError(
                    f"velo_to_cam needs R 3x3 and T 3, got {rotation.shape} and {translation.shape}"
                )
            rt = np.hstack([rotation, translation[:, None]])
        else:
            raise ConfigurationError("Calibration needs 'RT' or 'velo_to_cam'")

        return cls.from_matrices(config['P_rect'], config['R_rect'], rt)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'ProjectionCalibration':
        """Load a calibration from a YAML file."""
        try:
            with open(path, 'r') as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not load calibration from {path}: {e}") from e

        calibration = cls.from_dict(config)
        logger.info(f"Loaded projection calibration from {path}")
        return calibration
