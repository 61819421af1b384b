"""Engine configuration threaded through parsing, evaluation and solving."""

from dataclasses import dataclass, field, fields, replace
from typing import Callable, Mapping, Optional

from algebra import storage


@dataclass(frozen=True)
class EngineConfig:
    """Immutable settings value.

    Build one with ``EngineConfig()`` for the defaults, with
    ``EngineConfig.from_settings(...)`` from a plain dict, or with
    :func:`load_config` from the persisted settings store.  Derive variants
    with :meth:`with_options`.

    *functions* maps extra function names to Python callables.  The parser
    treats those names like the built-in ones and the evaluator calls them
    with the evaluated arguments.
    """

    tolerance: float = 1e-9
    max_depth: int = 100
    max_passes: int = 50
    max_iterations: int = 100
    max_parts_depth: int = 3
    precise_decimals: bool = False
    decimal_precision: int = 28
    complex_mode: bool = False
    caret_is_xor: bool = False
    use_constants: bool = True
    log_level: str = "WARNING"
    functions: Mapping[str, Callable] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_settings(cls, settings: Optional[Mapping] = None) -> "EngineConfig":
        """Build a config from *settings*, ignoring keys it does not know."""
        known = {f.name for f in fields(cls)} - {"functions"}
        values = {k: v for k, v in (settings or {}).items() if k in known}
        return cls(**values)

    def with_options(self, **changes) -> "EngineConfig":
        return replace(self, **changes)

    def to_settings(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "functions"}


DEFAULT_CONFIG = EngineConfig()


def load_config() -> EngineConfig:
    """Return the config described by the persisted settings."""
    return EngineConfig.from_settings(storage.get_settings())


def resolve(config: Optional[EngineConfig]) -> EngineConfig:
    return DEFAULT_CONFIG if config is None else config
