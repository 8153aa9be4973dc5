"""
Layout context and compiler configuration.

LayoutContext carries the per-document layout settings (algorithm,
direction, spacing, iteration budget, seed, engine options). It is read from
the document's configuration block with LayoutContext.from_config().

CompilerConfig holds the process-level settings of an EDSLCompiler
(threading, caching, text measurement). It is built once, before any
compilation, and never changes afterwards.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "dagre"

# Keys read from the configuration block by LayoutContext.from_config
CONTEXT_KEYS = {
    "layout",
    "algorithm",
    "direction",
    "node_spacing",
    "nodeSpacing",
    "layer_spacing",
    "layerSpacing",
    "rank_spacing",
    "rankSpacing",
    "iterations",
    "seed",
    "padding",
}

# Keys holding global style defaults; consumed by the builder
STYLE_KEYS = {
    "strokeColor",
    "stroke_color",
    "backgroundColor",
    "background_color",
    "fontSize",
    "font_size",
    "font",
    "textColor",
    "text_color",
    "roughness",
    "sketchiness",
    "strokeWidth",
    "stroke_width",
    "strokeStyle",
    "stroke_style",
    "fill",
    "fillStyle",
    "fill_style",
    "shape",
}

# Other keys that are understood by an outer tool (themes, serializers)
PASSTHROUGH_KEYS = {"theme", "title", "edge_routing", "edgeRouting"}


class Direction(Enum):
    """Primary flow direction of layered layouts."""

    TB = "TB"
    BT = "BT"
    LR = "LR"
    RL = "RL"

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        if isinstance(value, Direction):
            return value
        text = str(value).strip().upper()
        aliases = {"TD": "TB", "DOWN": "TB", "UP": "BT", "RIGHT": "LR", "LEFT": "RL"}
        text = aliases.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise ConfigurationError(
                f"Invalid direction {value!r}: expected one of TB, BT, LR, RL"
            ) from None

    @property
    def is_horizontal(self) -> bool:
        return self in (Direction.LR, Direction.RL)

    @property
    def is_reversed(self) -> bool:
        return self in (Direction.BT, Direction.RL)


def _positive_number(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"'{key}' must be positive, got {value!r}")
    return float(value)


def _non_negative_number(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"'{key}' must not be negative, got {value!r}")
    return float(value)


def _non_negative_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"'{key}' must be an integer, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"'{key}' must not be negative, got {value!r}")
    return value


@dataclass(frozen=True)
class LayoutContext:
    """
    Settings handed to a layout strategy.

    Attributes:
        algorithm: Name of the registered strategy to run.
        direction: Primary flow direction (layered layouts).
        node_spacing: Gap between neighbouring nodes in a layer.
        layer_spacing: Gap between consecutive layers.
        iterations: Iteration budget of iterative engines (force).
        seed: Seed of iterative engines' random generator.
        container_padding: Space between a container border and its contents.
        options: Engine-specific options (e.g. ``crossing_passes``).
    """

    algorithm: str = DEFAULT_ALGORITHM
    direction: Direction = Direction.TB
    node_spacing: float = 80.0
    layer_spacing: float = 150.0
    iterations: int = 100
    seed: int = 42
    container_padding: float = 20.0
    options: Dict[str, Any] = field(default_factory=dict)

    def with_overrides(self, **overrides: Any) -> "LayoutContext":
        """Return a copy with the given fields replaced (None values ignored)."""
        values = {key: value for key, value in overrides.items() if value is not None}
        if "direction" in values:
            values["direction"] = Direction.parse(values["direction"])
        if "options" in values:
            merged = dict(self.options)
            merged.update(values["options"])
            values["options"] = merged
        return replace(self, **values)

    def option(self, name: str, default: Any = None) -> Any:
        return self.options.get(name, default)

    @property
    def margin(self) -> float:
        """The ``margin`` engine option, validated (0 when unset)."""
        return _non_negative_number("margin", self.option("margin", 0.0))

    def cache_key(self) -> Tuple:
        return (
            self.algorithm,
            self.direction.value,
            self.node_spacing,
            self.layer_spacing,
            self.iterations,
            self.seed,
            self.container_padding,
            tuple(sorted((k, repr(v)) for k, v in self.options.items())),
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[Mapping[str, Any]],
        default_algorithm: str = DEFAULT_ALGORITHM,
    ) -> "LayoutContext":
        """
        Build a context from a document configuration block.

        Args:
            config: Mapping parsed from the ``---`` block (may be None).
            default_algorithm: Algorithm used when the block names none.

        Returns:
            LayoutContext with every recognised key applied.

        Raises:
            ConfigurationError: If a recognised key has an invalid value.
        """
        config = dict(config or {})
        values: Dict[str, Any] = {}

        algorithm = config.get("layout", config.get("algorithm", default_algorithm))
        if not isinstance(algorithm, str) or not algorithm.strip():
            raise ConfigurationError(f"Invalid layout algorithm {algorithm!r}")
        values["algorithm"] = algorithm.strip().lower()

        if "direction" in config:
            values["direction"] = Direction.parse(config["direction"])

        for key in ("node_spacing", "nodeSpacing"):
            if key in config:
                values["node_spacing"] = _positive_number(key, config[key])
        for key in ("layer_spacing", "layerSpacing", "rank_spacing", "rankSpacing"):
            if key in config:
                values["layer_spacing"] = _positive_number(key, config[key])
        if "padding" in config:
            values["container_padding"] = _non_negative_number(
                "padding", config["padding"]
            )
        if "iterations" in config:
            values["iterations"] = _non_negative_int("iterations", config["iterations"])
        if "seed" in config:
            values["seed"] = _non_negative_int("seed", config["seed"])

        options: Dict[str, Any] = {}
        engine_options = config.get(values["algorithm"])
        if engine_options is not None:
            if not isinstance(engine_options, Mapping):
                raise ConfigurationError(
                    f"'{values['algorithm']}' options must be a mapping, "
                    f"got {engine_options!r}"
                )
            options.update(engine_options)
        values["options"] = options

        for key in config:
            if (
                key not in CONTEXT_KEYS
                and key not in STYLE_KEYS
                and key not in PASSTHROUGH_KEYS
                and not isinstance(config[key], Mapping)
            ):
                logger.warning("Ignoring unknown configuration key '%s'", key)

        return cls(**values)


@dataclass(frozen=True)
class CompilerConfig:
    """
    Process-level compiler settings, fixed before compilation starts.

    Attributes:
        default_algorithm: Algorithm used when a document does not name one.
        parallel: Lay out root containers concurrently.
        max_threads: Worker threads for parallel layout.
        cache_enabled: Reuse layouts of identical graphs.
        cache_size: Maximum number of cached layouts.
        measure: Text measurer (callable or object with ``measure``);
            None selects the Pillow measurer.
        overrides: LayoutContext fields that win over the document block
            (e.g. ``{"direction": "LR"}`` from the command line).
    """

    default_algorithm: str = DEFAULT_ALGORITHM
    parallel: bool = False
    max_threads: int = 4
    cache_enabled: bool = True
    cache_size: int = 100
    measure: Optional[Callable[..., Any]] = None
    overrides: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.max_threads, bool) or not isinstance(self.max_threads, int):
            raise ValueError(
                f"max_threads must be an integer, got {self.max_threads!r}"
            )
        if self.max_threads < 1:
            raise ValueError(f"max_threads must be at least 1, got {self.max_threads}")
        if self.cache_size < 1:
            raise ValueError(f"cache_size must be at least 1, got {self.cache_size}")
        if not self.default_algorithm:
            raise ValueError("default_algorithm must not be empty")

    def context_for(
        self, document_config: Optional[Mapping[str, Any]]
    ) -> LayoutContext:
        """Context for one document: its config block, then the overrides."""
        context = LayoutContext.from_config(document_config, self.default_algorithm)
        if self.overrides:
            context = context.with_overrides(**self.overrides)
        return context
