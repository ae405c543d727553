"""
Detection configuration: global tunables plus per-region-type settings.

Configs are immutable values. JSON shapes exported by the editor are
accepted verbatim, either nested::

    {"global": {"threshold": 128, ...}, "regionTypes": {"header": {...}}}

or as flat detection options::

    {"threshold": 128, "minRegionSize": 200, ..., "regionTypeConfig": {...}}

Missing fields take their defaults and unknown keys are ignored.
"""

import json
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from pagesplit.region import FOOTER, HEADER, LEFT_MARGIN, LEFT_TEXT, RIGHT_MARGIN, RIGHT_TEXT

# Hard cap on returned regions
MAX_REGIONS = 25
# Expansion used for types without their own settings
DEFAULT_BOUNDARY_EXPANSION = 50


class ConfigValidationError(ValueError):
    """Raised when a configuration value is out of range."""


# camelCase (editor JSON) -> field name
_TYPE_KEYS = {
    'minConfidence': 'min_confidence',
    'boundaryExpansion': 'boundary_expansion',
    'maxWidthRatio': 'max_width_ratio',
    'minWidthRatio': 'min_width_ratio',
    'maxHeightRatio': 'max_height_ratio',
    'minHeightRatio': 'min_height_ratio',
    'preferTemplatePosition': 'prefer_template_position',
    'allowHeightAdjustment': 'allow_height_adjustment',
    'requireTextDensity': 'require_text_density',
    'minWidth': 'min_width',
    'minHeight': 'min_height',
}

_GLOBAL_KEYS = {
    'threshold': 'threshold',
    'minRegionSize': 'min_region_size',
    'confidenceThreshold': 'confidence_threshold',
    'preventOverlap': 'prevent_overlap',
    'overlapTolerance': 'overlap_tolerance',
    'templateAdherence': 'template_adherence',
    'useTemplateGuidance': 'use_template_guidance',
    'sampleStride': 'sample_stride',
    'maxGroupDistance': 'max_group_distance',
}


@dataclass(frozen=True)
class RegionTypeConfig:
    """Settings for one region type."""

    # None falls back to the global confidence_threshold
    min_confidence: Optional[float] = None
    boundary_expansion: float = 10
    # Bounds as fractions of the page width / height
    max_width_ratio: Optional[float] = None
    min_width_ratio: Optional[float] = None
    max_height_ratio: Optional[float] = None
    min_height_ratio: Optional[float] = None
    # None means "not set"; variants only flip flags that are set
    prefer_template_position: Optional[bool] = None
    allow_height_adjustment: Optional[bool] = None
    # Minimum ink pixels per blob-box pixel before confidence is floored
    require_text_density: Optional[float] = None
    min_width: float = 20
    min_height: float = 10

    def __post_init__(self):
        if self.min_confidence is not None:
            _check_unit('min_confidence', self.min_confidence)
        if self.boundary_expansion < 0:
            raise ConfigValidationError(
                f"boundary_expansion must be >= 0, got {self.boundary_expansion}")
        for name in ('max_width_ratio', 'min_width_ratio',
                     'max_height_ratio', 'min_height_ratio', 'require_text_density'):
            value = getattr(self, name)
            if value is not None:
                _check_unit(name, value)
        if self.min_width < 0 or self.min_height < 0:
            raise ConfigValidationError("min_width/min_height must be >= 0")

    @classmethod
    def from_dict(cls, data: Mapping) -> 'RegionTypeConfig':
        return cls(**_pick(data, _TYPE_KEYS, cls))

    def to_dict(self) -> dict:
        out = {}
        for camel, name in _TYPE_KEYS.items():
            value = getattr(self, name)
            if value is not None:
                out[camel] = value
        return out

    def with_overrides(self, **changes) -> 'RegionTypeConfig':
        return replace(self, **changes)


def default_region_types() -> Dict[str, RegionTypeConfig]:
    margin = RegionTypeConfig(min_confidence=0.3, boundary_expansion=5,
                              max_width_ratio=0.15, prefer_template_position=True)
    text = RegionTypeConfig(min_confidence=0.4, boundary_expansion=10,
                            min_width_ratio=0.25, allow_height_adjustment=True)
    band = RegionTypeConfig(min_confidence=0.3, boundary_expansion=8,
                            max_height_ratio=0.1, require_text_density=0.05)
    return {
        LEFT_MARGIN: margin,
        RIGHT_MARGIN: margin,
        LEFT_TEXT: text,
        RIGHT_TEXT: text,
        HEADER: band,
        FOOTER: band,
    }


@dataclass(frozen=True)
class DetectionConfig:
    """Tunables for one detection run."""

    # Pixels with gray < threshold are ink
    threshold: int = 128
    # Components with this many pixels or fewer are dropped as noise
    min_region_size: int = 200
    # Fallback minimum confidence for types without their own setting
    confidence_threshold: float = 0.5
    prevent_overlap: bool = True
    # Allowed overlap area (px^2) between accepted regions
    overlap_tolerance: float = 5
    # 0 = pure text-driven, 1 = strict template
    template_adherence: float = 0.7
    use_template_guidance: bool = True
    # Flood-fill seed sampling step; 1 = every pixel
    sample_stride: int = 5
    # Center distance for grouping blobs without a template
    max_group_distance: float = 80
    region_types: Mapping[str, RegionTypeConfig] = field(default_factory=default_region_types,
                                                         hash=False)

    def __post_init__(self):
        if not 0 <= self.threshold <= 255:
            raise ConfigValidationError(f"threshold must be in [0, 255], got {self.threshold}")
        if self.min_region_size < 0:
            raise ConfigValidationError(
                f"min_region_size must be >= 0, got {self.min_region_size}")
        _check_unit('confidence_threshold', self.confidence_threshold)
        _check_unit('template_adherence', self.template_adherence)
        if self.overlap_tolerance < 0:
            raise ConfigValidationError(
                f"overlap_tolerance must be >= 0, got {self.overlap_tolerance}")
        if self.sample_stride < 1:
            raise ConfigValidationError(f"sample_stride must be >= 1, got {self.sample_stride}")
        if self.max_group_distance <= 0:
            raise ConfigValidationError(
                f"max_group_distance must be > 0, got {self.max_group_distance}")
        # Read-only private copy of the per-type map
        object.__setattr__(self, 'region_types', MappingProxyType(dict(self.region_types)))

    @property
    def max_regions(self) -> int:
        return MAX_REGIONS

    def type_config(self, region_type: str) -> Optional[RegionTypeConfig]:
        return self.region_types.get(region_type)

    def min_confidence_for(self, region_type: str) -> float:
        """Per-type minimum, falling back to the global threshold."""
        type_config = self.type_config(region_type)
        if type_config is None or type_config.min_confidence is None:
            return self.confidence_threshold
        return type_config.min_confidence

    def boundary_expansion_for(self, region_type: str) -> float:
        type_config = self.type_config(region_type)
        if type_config is None:
            return DEFAULT_BOUNDARY_EXPANSION
        return type_config.boundary_expansion

    def with_overrides(self, **changes) -> 'DetectionConfig':
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> 'DetectionConfig':
        """Build from any accepted JSON shape."""
        if not data:
            return cls()

        settings = dict(data.get('global') or {})
        settings.update({k: v for k, v in data.items()
                         if k not in ('global', 'regionTypes', 'regionTypeConfig', 'region_types')})
        kwargs = _pick(settings, _GLOBAL_KEYS, cls)
        kwargs.pop('region_types', None)

        types_data = (data.get('regionTypes') or data.get('regionTypeConfig')
                      or data.get('region_types'))
        if types_data:
            kwargs['region_types'] = {
                str(name): RegionTypeConfig.from_dict(settings_for_type)
                for name, settings_for_type in types_data.items()
            }
        return cls(**kwargs)

    def to_dict(self) -> dict:
        """Nested editor shape: {"global": {...}, "regionTypes": {...}}."""
        return {
            'global': {camel: getattr(self, name) for camel, name in _GLOBAL_KEYS.items()},
            'regionTypes': {name: cfg.to_dict() for name, cfg in self.region_types.items()},
        }


def load_config(path: str) -> DetectionConfig:
    """
    Read a configuration exported as JSON.

    Raises:
        OSError: if the file cannot be read
        json.JSONDecodeError: for malformed JSON
        ConfigValidationError: for out-of-range values
    """
    with open(path) as f:
        return DetectionConfig.from_dict(json.load(f))


def save_config(config: DetectionConfig, path: str) -> None:
    with open(path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)


def _check_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigValidationError(f"{name} must be in [0, 1], got {value}")


def _pick(data: Mapping, camel_keys: Mapping[str, str], cls) -> dict:
    """Collect known fields from camelCase or snake_case keys."""
    names = {f.name for f in fields(cls)}
    out = {}
    for key, value in data.items():
        name = camel_keys.get(key, key)
        if name in names:
            out[name] = value
    return out
